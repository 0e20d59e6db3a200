"""
Payment domain service - pay-to-unlock codes and the bank webhook.

A PayCode ties an expected amount to an (email, product) pair. It flips
from unused to used exactly once, when a transfer of at least the expected
amount is reported for it. The flip is a conditional update performed
before access is granted, so two concurrent webhook deliveries cannot both
grant.
"""

import logging
from dataclasses import dataclass, field

from .codes import (
    PAYMENT_CODE_PREFIX,
    extract_pay_code_id,
    generate_payment_code,
    normalize_email,
    normalize_ref_code,
)
from .entitlements import EntitlementService, GrantResult, require_product
from .exceptions import Conflict, InvalidRequest, NotFound
from .models import Clock, PayCodeRecord, Product, RateLimitRule, utc_now
from .ports import InternalUserRepository, PayCodeRepository
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedPayCode:
    payment_code: str
    email: str
    product_id: str
    amount: int


@dataclass(frozen=True)
class PayCodeStatus:
    exists: bool
    used: bool


@dataclass(frozen=True)
class VerifiedPayment:
    pay_code_id: str
    email: str
    product_id: str
    grant: GrantResult


@dataclass
class PaymentService:
    """Domain service for pay codes and payment confirmation."""

    pay_codes: PayCodeRepository
    internal_users: InternalUserRepository
    entitlements: EntitlementService
    rate_limiter: RateLimiter
    catalog: dict[str, Product]
    limit: RateLimitRule = field(
        default_factory=lambda: RateLimitRule(max_requests=10, window_minutes=15)
    )
    clock: Clock = field(default=utc_now)

    def create_pay_code(
        self,
        email: str,
        product_id: str,
        ip_address: str,
        ref_code: str | None = None,
        metadata: str = "",
    ) -> IssuedPayCode:
        """
        Create a pending payment for a product the email does not own yet.

        The ref code is kept only when it belongs to an internal user.

        Raises:
            InvalidRequest: Unknown product
            RateLimited: Too many pay codes requested from this IP
            Conflict: The email already has access to the product
        """
        product = require_product(self.catalog, product_id)
        normalized_email = normalize_email(email)

        self.rate_limiter.enforce(f"create_pay_code_{ip_address}", self.limit)

        if self.entitlements.has_access(normalized_email, product.id):
            raise Conflict("You already have access to this product")

        stored_ref_code = None
        if ref_code:
            candidate = normalize_ref_code(ref_code)
            if self.internal_users.get_by_ref_code(candidate) is not None:
                stored_ref_code = candidate
            else:
                logger.warning("Ignoring unknown ref code %s", candidate)

        now = self.clock()
        payment_code = generate_payment_code(now)
        pay_code_id = payment_code[len(PAYMENT_CODE_PREFIX) :]

        self.pay_codes.create(
            pay_code_id,
            PayCodeRecord(
                email=normalized_email,
                product_id=product.id,
                amount=product.price,
                metadata=metadata,
                ref_code=stored_ref_code,
                used=False,
                created_at=now,
                updated_at=now,
            ),
        )
        logger.info("Pay code %s created for %s / %s", pay_code_id, normalized_email, product.id)
        return IssuedPayCode(
            payment_code=payment_code,
            email=normalized_email,
            product_id=product.id,
            amount=product.price,
        )

    def check_pay_code(self, code: str) -> PayCodeStatus:
        """
        Report whether a payment code exists and has been used.

        Raises:
            InvalidRequest: Malformed code (no lookup is performed)
            NotFound: Unknown code
        """
        pay_code_id = self._parse(code)
        record = self.pay_codes.get(pay_code_id)
        if record is None:
            raise NotFound("Payment code not found", exists=False)
        return PayCodeStatus(exists=True, used=record.used)

    def verify_payment(self, code: str, transfer_amount: float) -> VerifiedPayment:
        """
        Consume a pay code for a reported transfer and grant the product.

        Raises:
            InvalidRequest: Malformed code, bad amount, used code or short payment
            NotFound: Unknown code
        """
        if transfer_amount <= 0:
            raise InvalidRequest("Missing or invalid transfer amount")

        pay_code_id = self._parse(code)
        record = self.pay_codes.get(pay_code_id)
        if record is None:
            logger.warning("Payment code not found: %s", pay_code_id)
            raise NotFound("Payment code not found")

        if record.used:
            logger.warning("Payment code already used: %s", pay_code_id)
            raise InvalidRequest("Payment code has already been used")

        if transfer_amount < record.amount:
            logger.warning(
                "Amount mismatch for payment code %s: expected %s, received %s",
                pay_code_id,
                record.amount,
                transfer_amount,
            )
            raise InvalidRequest(
                "Transfer amount does not match expected amount",
                expected=record.amount,
                received=transfer_amount,
            )

        if not self.pay_codes.mark_used(pay_code_id, self.clock()):
            logger.warning("Payment code consumed concurrently: %s", pay_code_id)
            raise InvalidRequest("Payment code has already been used")

        grant = self.entitlements.grant_product_access(record.email, record.product_id)
        logger.info("Payment verified and processed successfully: %s", pay_code_id)
        return VerifiedPayment(
            pay_code_id=pay_code_id,
            email=grant.email,
            product_id=record.product_id,
            grant=grant,
        )

    def _parse(self, code: str) -> str:
        pay_code_id = extract_pay_code_id(code)
        if pay_code_id is None:
            logger.warning("Invalid payment code format: %s", code)
            raise InvalidRequest("Invalid payment code format")
        return pay_code_id
