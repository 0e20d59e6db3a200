"""
OTP domain service - issuance and validation of one-time download codes.

One OTP record lives per (email, product_id). Issuing a new code overwrites
the previous record and forgives earlier failures.

Validation order
================

1. Lockout: an active lock rejects immediately. No attempt is recorded and
   the OTP record is not read. An expired lock is cleared on first sight.
2. Missing record          -> failure recorded, NOT_FOUND
3. Record already used     -> failure recorded, ALREADY_USED
4. Record past expires_at  -> failure recorded, EXPIRED
5. Stored product differs  -> failure recorded, PRODUCT_MISMATCH
6. Code mismatch           -> failure recorded, INVALID_CODE
7. Success                 -> code consumed atomically, attempts reset

Every failure in steps 2-6 increments the same counter. The increment that
reaches max_attempts sets locked_until = now + lockout. All writes happen
before validate() returns.
"""

import logging
import math
import secrets
from dataclasses import dataclass, field

from .models import Clock, OTPPolicy, OTPRecord, utc_now
from .ports import OTPAttemptRepository, OTPRepository, OTPResult

logger = logging.getLogger(__name__)

OTP_LENGTH = 6

_FAILURE_MESSAGES = {
    OTPResult.NOT_FOUND: "OTP not found or expired",
    OTPResult.ALREADY_USED: "OTP has already been used",
    OTPResult.EXPIRED: "OTP has expired",
    OTPResult.PRODUCT_MISMATCH: "Product ID mismatch",
    OTPResult.INVALID_CODE: "Invalid OTP",
}


@dataclass(frozen=True)
class OTPValidation:
    """Outcome of OTPService.validate()."""

    result: OTPResult
    message: str | None = None
    record: OTPRecord | None = None
    retry_after_seconds: int | None = None

    @property
    def valid(self) -> bool:
        return self.result == OTPResult.SUCCESS


@dataclass
class OTPService:
    """
    Domain service for one-time download codes.

    Has its own failed-attempt lockout, independent of the request
    rate limiter.
    """

    otps: OTPRepository
    attempts: OTPAttemptRepository
    policy: OTPPolicy = field(default_factory=OTPPolicy)
    clock: Clock = field(default=utc_now)

    def generate_code(self) -> str:
        """
        Generate a 6-digit numeric code.

        Uses the secrets module for uniform cryptographic randomness.
        Returns string to preserve leading zeros.
        """
        return "".join(secrets.choice("0123456789") for _ in range(OTP_LENGTH))

    def issue(self, email: str, product_id: str) -> OTPRecord:
        """
        Create (or overwrite) the OTP for a pair after clearing prior failures.

        Args:
            email: Normalized email address
            product_id: Catalog product identifier

        Returns:
            The stored OTP record, including the plaintext code to deliver
        """
        self.attempts.reset(email, product_id)

        now = self.clock()
        record = OTPRecord(
            email=email,
            product_id=product_id,
            code=self.generate_code(),
            created_at=now,
            expires_at=now + self.policy.ttl,
            used=False,
        )
        self.otps.save(record)
        return record

    def validate(
        self, email: str, code: str, product_id: str, ip_address: str | None = None
    ) -> OTPValidation:
        """
        Validate a code for (email, product_id), consuming it on success.

        Args:
            email: Normalized email address
            code: Code supplied by the caller
            product_id: Catalog product identifier
            ip_address: Caller IP, stored on the attempt record

        Returns:
            OTPValidation with the result and a user-safe message
        """
        minutes_locked = self._locked_minutes_remaining(email, product_id)
        if minutes_locked is not None:
            return OTPValidation(
                OTPResult.LOCKED,
                f"Too many failed attempts. Please try again in {minutes_locked} "
                "minute(s) or request a new OTP.",
                retry_after_seconds=minutes_locked * 60,
            )

        record = self.otps.get(email, product_id)
        now = self.clock()

        if record is None:
            failure = OTPResult.NOT_FOUND
        elif record.used:
            failure = OTPResult.ALREADY_USED
        elif now > record.expires_at:
            failure = OTPResult.EXPIRED
        elif record.product_id != product_id:
            failure = OTPResult.PRODUCT_MISMATCH
        elif not secrets.compare_digest(record.code.encode(), code.encode()):
            failure = OTPResult.INVALID_CODE
        else:
            failure = None

        if failure is not None:
            self._record_failure(email, product_id, ip_address)
            return OTPValidation(failure, _FAILURE_MESSAGES[failure])

        # Conditional update: a concurrent validation may have consumed it first
        if not self.otps.mark_used(email, product_id, record.code):
            return OTPValidation(
                OTPResult.ALREADY_USED, _FAILURE_MESSAGES[OTPResult.ALREADY_USED]
            )

        self.attempts.reset(email, product_id)
        record.used = True
        return OTPValidation(OTPResult.SUCCESS, record=record)

    def _locked_minutes_remaining(self, email: str, product_id: str) -> int | None:
        """Minutes left on an active lock, or None. Clears locks that have expired."""
        attempt = self.attempts.get(email, product_id)
        if attempt is None or attempt.locked_until is None:
            return None

        now = self.clock()
        if now < attempt.locked_until:
            return math.ceil((attempt.locked_until - now).total_seconds() / 60)

        self.attempts.clear_lock(email, product_id)
        return None

    def _record_failure(self, email: str, product_id: str, ip_address: str | None) -> None:
        now = self.clock()
        attempt = self.attempts.record_failure(
            email,
            product_id,
            now=now,
            max_attempts=self.policy.max_attempts,
            lockout_until=now + self.policy.lockout,
            ip_address=ip_address,
        )
        if attempt.locked_until is not None and attempt.attempts >= self.policy.max_attempts:
            logger.warning(
                "OTP validation locked for %s / %s after %d failed attempts",
                email,
                product_id,
                attempt.attempts,
            )
