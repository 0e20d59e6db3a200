"""
Download domain service - the two-phase OTP download protocol.

States
======

    INIT --request_download--> OTP_REQUESTED --confirm_download--> OTP_CONFIRMED

Any call may end in REJECTED instead; rejection is not stored, it is just
the raised exception.

request_download gates, in order: known product, IP rate limit, email rate
limit, entitlement. Rate limiting runs before the entitlement lookup so
high-volume probing learns nothing about who owns what.

The OTP is stored before the email is sent and is not rolled back when
sending fails: the stored code still validates even though it was never
delivered.
"""

import base64
import logging
import mimetypes
import posixpath
from dataclasses import dataclass, field

from .codes import normalize_email
from .entitlements import EntitlementService, require_product
from .exceptions import AccessDenied, InvalidOTP, NotFound, OTPLocked
from .models import Product, RateLimitRule
from .otp import OTPService
from .ports import AssetStore, EmailSender, OTPResult
from .rate_limiter import RateLimiter
from .templates import otp_email

logger = logging.getLogger(__name__)

# base64 of "{{xxxxemailxxxx}}"; HTML assets embed it where the buyer's email goes
EMAIL_PLACEHOLDER = b"e3t4eHh4ZW1haWx4eHh4fX0="


def watermark_html(content: bytes, email: str) -> bytes:
    """Replace the first email placeholder with the base64-encoded buyer email."""
    return content.replace(EMAIL_PLACEHOLDER, base64.b64encode(email.encode()), 1)


@dataclass(frozen=True)
class DownloadLimits:
    """Rate limit rules for the download endpoints."""

    per_ip: RateLimitRule = field(
        default_factory=lambda: RateLimitRule(max_requests=10, window_minutes=15)
    )
    per_email: RateLimitRule = field(
        default_factory=lambda: RateLimitRule(max_requests=5, window_minutes=15)
    )
    confirm_per_ip: RateLimitRule = field(
        default_factory=lambda: RateLimitRule(max_requests=20, window_minutes=15)
    )


@dataclass(frozen=True)
class DownloadedAsset:
    filename: str
    content: bytes
    media_type: str


@dataclass
class DownloadService:
    """Orchestrates entitlement, rate limiting, OTP issuance and asset release."""

    otp_service: OTPService
    rate_limiter: RateLimiter
    entitlements: EntitlementService
    email_sender: EmailSender
    assets: AssetStore
    catalog: dict[str, Product]
    limits: DownloadLimits = field(default_factory=DownloadLimits)

    def request_download(
        self,
        email: str,
        product_id: str,
        ip_address: str,
        access_code: str | None = None,
    ) -> None:
        """
        Issue an OTP for (email, product_id) and email it.

        Raises:
            InvalidRequest: Unknown product
            RateLimited: IP or email window exceeded
            AccessDenied: No entitlement for the product
            EmailDeliveryFailed: The OTP email could not be sent
        """
        product = require_product(self.catalog, product_id)
        normalized_email = normalize_email(email)

        self.rate_limiter.enforce(ip_address, self.limits.per_ip)
        self.rate_limiter.enforce(f"email_{normalized_email}", self.limits.per_email)

        if not self.entitlements.has_access(normalized_email, product.id, access_code):
            logger.warning(
                "Download requested without access: %s / %s", normalized_email, product.id
            )
            raise AccessDenied("Invalid email, code, or you don't have access to this product")

        record = self.otp_service.issue(normalized_email, product.id)
        template = otp_email(record.code, self.otp_service.policy.ttl_minutes)
        self.email_sender.send_email(
            normalized_email, template.subject, template.html, template.text
        )

        logger.info("OTP sent to %s for product %s", normalized_email, product.id)

    def confirm_download(
        self, email: str, otp: str, product_id: str, ip_address: str
    ) -> DownloadedAsset:
        """
        Validate the OTP and release the protected asset.

        Raises:
            InvalidRequest: Unknown product
            RateLimited: IP confirm window exceeded
            OTPLocked: Too many failed OTP attempts for the pair
            InvalidOTP: Any other OTP rejection
            NotFound: The product has no stored asset
        """
        product = require_product(self.catalog, product_id)
        normalized_email = normalize_email(email)

        self.rate_limiter.enforce(f"confirm_download_{ip_address}", self.limits.confirm_per_ip)

        validation = self.otp_service.validate(normalized_email, otp, product.id, ip_address)
        if validation.result == OTPResult.LOCKED:
            raise OTPLocked(
                validation.message or "Too many failed attempts",
                retry_after_seconds=validation.retry_after_seconds,
            )
        if not validation.valid:
            raise InvalidOTP(validation.message or "Invalid OTP", reason=validation.result.value)

        logger.info(
            "OTP validated for %s, product %s, file download authorized",
            normalized_email,
            product.id,
        )

        content = self.assets.fetch(product.asset_key)
        if content is None:
            logger.error("File not found: %s for product %s", product.asset_key, product.id)
            raise NotFound("File not found")

        filename = posixpath.basename(product.asset_key)
        media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        if media_type == "text/html":
            content = watermark_html(content, normalized_email)
        return DownloadedAsset(filename=filename, content=content, media_type=media_type)
