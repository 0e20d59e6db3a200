"""
Entitlement domain service - who may download which product.

Access requires an active user record whose product set contains the
product. Entitlements are granted by admins or by confirmed payments and
are never modified by the OTP/download path.
"""

import logging
import secrets
from dataclasses import dataclass, field
from enum import Enum

from .codes import generate_user_code, normalize_email
from .exceptions import EmailDeliveryFailed, InvalidRequest
from .models import Clock, Product, UserRecord, UserStatus, utc_now
from .ports import EmailSender, UserRepository
from .templates import welcome_email

logger = logging.getLogger(__name__)


def require_product(catalog: dict[str, Product], product_id: str) -> Product:
    """
    Resolve a product id against the catalog.

    Raises:
        InvalidRequest: If the product is unknown
    """
    product = catalog.get(product_id)
    if product is None:
        raise InvalidRequest("Invalid productId")
    return product


class GrantStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


@dataclass(frozen=True)
class GrantResult:
    email: str
    status: GrantStatus
    message: str
    code: str | None = None


@dataclass
class EntitlementService:
    """Domain service for checking and granting product access."""

    users: UserRepository
    email_sender: EmailSender
    catalog: dict[str, Product]
    clock: Clock = field(default=utc_now)

    def has_access(self, email: str, product_id: str, access_code: str | None = None) -> bool:
        """
        Check whether an identity may request a download.

        Args:
            email: Email address (normalized here)
            product_id: Catalog product identifier
            access_code: Legacy per-user code; must match when supplied

        Returns:
            True iff the user exists, is active and owns the product
        """
        user = self.users.get(normalize_email(email))
        if user is None or not user.can_download(product_id):
            return False
        if access_code is not None:
            return secrets.compare_digest(user.code.encode(), access_code.strip().encode())
        return True

    def grant_product_access(self, email: str, product_id: str) -> GrantResult:
        """
        Create the user or add the product to an existing user.

        A welcome email is sent in both cases; its failure is logged and
        does not undo the grant.
        """
        product = require_product(self.catalog, product_id)
        normalized_email = normalize_email(email)
        now = self.clock()

        existing = self.users.get(normalized_email)
        if existing is not None:
            # Existing users keep their access code
            self.users.add_product(normalized_email, product.id, now)
            result = GrantResult(
                email=normalized_email,
                status=GrantStatus.UPDATED,
                message="Product added to existing user",
            )
            logger.info("User %s updated: product %s added", normalized_email, product.id)
        else:
            code = generate_user_code()
            self.users.create(
                UserRecord(
                    email=normalized_email,
                    code=code,
                    products=[product.id],
                    status=UserStatus.ACTIVE,
                    created_at=now,
                    updated_at=now,
                )
            )
            result = GrantResult(
                email=normalized_email,
                status=GrantStatus.CREATED,
                message="User created with new code",
                code=code,
            )
            logger.info("User %s created with product %s", normalized_email, product.id)

        self._send_welcome(normalized_email, product)
        return result

    def add_users(self, emails: list[str], product_id: str) -> list[GrantResult]:
        """Grant one product to several emails (admin workflow)."""
        require_product(self.catalog, product_id)
        return [self.grant_product_access(email, product_id) for email in emails]

    def _send_welcome(self, email: str, product: Product) -> None:
        template = welcome_email(product)
        try:
            self.email_sender.send_email(email, template.subject, template.html, template.text)
        except EmailDeliveryFailed as e:
            logger.error(
                "Failed to send welcome email to %s for product %s: %s", email, product.id, e
            )
