"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.

Every counter mutation (rate-limit count, OTP attempts) is an atomic
operation of the adapter, never a read-modify-write performed by a
service. Record creation is an overwrite: the last writer wins.
"""

from datetime import datetime
from enum import Enum
from typing import Protocol

from .models import (
    InternalUserRecord,
    OTPAttemptRecord,
    OTPRecord,
    PayCodeRecord,
    RateLimitRecord,
    UserRecord,
)


class OTPResult(Enum):
    """
    Result of an OTP validation attempt.

    Used by OTPService.validate() to indicate success or specific failure.
    """

    SUCCESS = "success"
    LOCKED = "locked"
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"
    PRODUCT_MISMATCH = "product_mismatch"
    INVALID_CODE = "invalid_code"


class OTPRepository(Protocol):
    """Port interface for OTP record persistence."""

    def save(self, record: OTPRecord) -> None:
        """Create or overwrite the OTP record for (email, product_id)."""
        ...

    def get(self, email: str, product_id: str) -> OTPRecord | None:
        """Return the OTP record for the pair, or None."""
        ...

    def mark_used(self, email: str, product_id: str, code: str) -> bool:
        """
        Atomically mark the OTP used.

        The update applies only if the stored record is unused and carries
        the given code.

        Returns:
            True if this call consumed the code, False otherwise
        """
        ...


class OTPAttemptRepository(Protocol):
    """Port interface for failed OTP validation tracking."""

    def get(self, email: str, product_id: str) -> OTPAttemptRecord | None:
        ...

    def record_failure(
        self,
        email: str,
        product_id: str,
        now: datetime,
        max_attempts: int,
        lockout_until: datetime,
        ip_address: str | None = None,
    ) -> OTPAttemptRecord:
        """
        Atomically increment the failure counter, creating the record if absent.

        When the incremented counter reaches max_attempts, locked_until is
        set to lockout_until.

        Returns:
            The record as stored after the increment
        """
        ...

    def clear_lock(self, email: str, product_id: str) -> None:
        """Reset attempts to 0 and drop locked_until."""
        ...

    def reset(self, email: str, product_id: str) -> None:
        """Delete the attempt record."""
        ...


class RateLimitRepository(Protocol):
    """Port interface for rate-limit windows."""

    def get(self, key: str) -> RateLimitRecord | None:
        ...

    def start_window(self, key: str, now: datetime) -> None:
        """Overwrite the record with count=1, window_start=now and no block."""
        ...

    def increment(self, key: str) -> None:
        """Atomically add one to the request count."""
        ...

    def block(self, key: str, until: datetime) -> None:
        """Set blocked_until without touching the counters."""
        ...


class UserRepository(Protocol):
    """Port interface for entitlement records."""

    def get(self, email: str) -> UserRecord | None:
        ...

    def create(self, record: UserRecord) -> None:
        ...

    def add_product(self, email: str, product_id: str, now: datetime) -> None:
        """Atomically add product_id to the user's products if not present."""
        ...


class PayCodeRepository(Protocol):
    """Port interface for pending payment codes."""

    def create(self, pay_code_id: str, record: PayCodeRecord) -> None:
        ...

    def get(self, pay_code_id: str) -> PayCodeRecord | None:
        ...

    def mark_used(self, pay_code_id: str, now: datetime) -> bool:
        """Atomically flip used to True; False if it was already used or missing."""
        ...

    def list_created_between(
        self, start: datetime, end: datetime, ref_code: str | None = None
    ) -> list[PayCodeRecord]:
        """Pay codes with start <= created_at < end, optionally for one ref code."""
        ...


class InternalUserRepository(Protocol):
    """Port interface for admin and collaborator accounts."""

    def get(self, email: str) -> InternalUserRecord | None:
        ...

    def get_by_ref_code(self, ref_code: str) -> InternalUserRecord | None:
        ...

    def create(self, record: InternalUserRecord) -> bool:
        """
        Create an internal user.

        Returns:
            True if created, False if the email or ref code is already taken
        """
        ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send_email(self, to: str, subject: str, html: str, text: str) -> None:
        """
        Send an email.

        Raises:
            EmailDeliveryFailed: If the message could not be delivered
        """
        ...


class AssetStore(Protocol):
    """Port interface for protected downloadable files."""

    def fetch(self, key: str) -> bytes | None:
        """Return the asset bytes, or None if no asset exists for key."""
        ...
