"""
In-memory repository adapters - Implement the domain repository protocols.

Used for local development (STORAGE_BACKEND=memory) and tests. Every
method holds a lock for its whole read-modify-write, which gives the same
per-operation atomicity the PostgreSQL adapter gets from single SQL
statements. Records are copied on the way in and out so callers never
share mutable state with the store.
"""

import threading
from dataclasses import replace
from datetime import datetime

from src.adapters.repository.repositories import Repositories
from src.domain.models import (
    InternalUserRecord,
    OTPAttemptRecord,
    OTPRecord,
    PayCodeRecord,
    RateLimitRecord,
    UserRecord,
)


class InMemoryOTPRepository:
    """Implements OTPRepository protocol with a dict keyed by (email, product_id)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[tuple[str, str], OTPRecord] = {}

    def save(self, record: OTPRecord) -> None:
        with self._lock:
            self._records[(record.email, record.product_id)] = replace(record)

    def get(self, email: str, product_id: str) -> OTPRecord | None:
        with self._lock:
            record = self._records.get((email, product_id))
            return replace(record) if record is not None else None

    def mark_used(self, email: str, product_id: str, code: str) -> bool:
        with self._lock:
            record = self._records.get((email, product_id))
            if record is None or record.used or record.code != code:
                return False
            record.used = True
            return True


class InMemoryOTPAttemptRepository:
    """Implements OTPAttemptRepository protocol."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[tuple[str, str], OTPAttemptRecord] = {}

    def get(self, email: str, product_id: str) -> OTPAttemptRecord | None:
        with self._lock:
            record = self._records.get((email, product_id))
            return replace(record) if record is not None else None

    def record_failure(
        self,
        email: str,
        product_id: str,
        now: datetime,
        max_attempts: int,
        lockout_until: datetime,
        ip_address: str | None = None,
    ) -> OTPAttemptRecord:
        with self._lock:
            existing = self._records.get((email, product_id))
            if existing is None:
                record = OTPAttemptRecord(
                    email=email,
                    product_id=product_id,
                    attempts=1,
                    last_attempt_at=now,
                    ip_address=ip_address,
                )
            else:
                record = replace(
                    existing,
                    attempts=existing.attempts + 1,
                    last_attempt_at=now,
                    ip_address=ip_address or existing.ip_address,
                )
            if record.attempts >= max_attempts:
                record.locked_until = lockout_until
            self._records[(email, product_id)] = record
            return replace(record)

    def clear_lock(self, email: str, product_id: str) -> None:
        with self._lock:
            record = self._records.get((email, product_id))
            if record is not None:
                record.attempts = 0
                record.locked_until = None

    def reset(self, email: str, product_id: str) -> None:
        with self._lock:
            self._records.pop((email, product_id), None)


class InMemoryRateLimitRepository:
    """Implements RateLimitRepository protocol."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, RateLimitRecord] = {}

    def get(self, key: str) -> RateLimitRecord | None:
        with self._lock:
            record = self._records.get(key)
            return replace(record) if record is not None else None

    def start_window(self, key: str, now: datetime) -> None:
        with self._lock:
            self._records[key] = RateLimitRecord(key=key, count=1, window_start=now)

    def increment(self, key: str) -> None:
        with self._lock:
            record = self._records.get(key)
            if record is not None:
                record.count += 1

    def block(self, key: str, until: datetime) -> None:
        with self._lock:
            record = self._records.get(key)
            if record is not None:
                record.blocked_until = until


class InMemoryUserRepository:
    """Implements UserRepository protocol keyed by email."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, UserRecord] = {}

    def get(self, email: str) -> UserRecord | None:
        with self._lock:
            record = self._records.get(email)
            return replace(record, products=list(record.products)) if record is not None else None

    def create(self, record: UserRecord) -> None:
        with self._lock:
            self._records[record.email] = replace(record, products=list(record.products))

    def add_product(self, email: str, product_id: str, now: datetime) -> None:
        with self._lock:
            record = self._records.get(email)
            if record is not None and product_id not in record.products:
                record.products.append(product_id)
                record.updated_at = now


class InMemoryPayCodeRepository:
    """Implements PayCodeRepository protocol keyed by pay code id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, PayCodeRecord] = {}

    def create(self, pay_code_id: str, record: PayCodeRecord) -> None:
        with self._lock:
            self._records[pay_code_id] = replace(record)

    def get(self, pay_code_id: str) -> PayCodeRecord | None:
        with self._lock:
            record = self._records.get(pay_code_id)
            return replace(record) if record is not None else None

    def mark_used(self, pay_code_id: str, now: datetime) -> bool:
        with self._lock:
            record = self._records.get(pay_code_id)
            if record is None or record.used:
                return False
            record.used = True
            record.updated_at = now
            return True

    def list_created_between(
        self, start: datetime, end: datetime, ref_code: str | None = None
    ) -> list[PayCodeRecord]:
        with self._lock:
            matches = [
                replace(record)
                for record in self._records.values()
                if record.created_at is not None
                and start <= record.created_at < end
                and (ref_code is None or record.ref_code == ref_code)
            ]
        return sorted(matches, key=lambda record: record.created_at)


class InMemoryInternalUserRepository:
    """Implements InternalUserRepository protocol keyed by email."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, InternalUserRecord] = {}

    def get(self, email: str) -> InternalUserRecord | None:
        with self._lock:
            record = self._records.get(email)
            return replace(record) if record is not None else None

    def get_by_ref_code(self, ref_code: str) -> InternalUserRecord | None:
        with self._lock:
            for record in self._records.values():
                if record.ref_code == ref_code:
                    return replace(record)
        return None

    def create(self, record: InternalUserRecord) -> bool:
        with self._lock:
            if record.email in self._records:
                return False
            if any(existing.ref_code == record.ref_code for existing in self._records.values()):
                return False
            self._records[record.email] = replace(record)
            return True


def build_memory_repositories() -> Repositories:
    """Create a fresh, empty set of in-memory repositories."""
    return Repositories(
        otps=InMemoryOTPRepository(),
        otp_attempts=InMemoryOTPAttemptRepository(),
        rate_limits=InMemoryRateLimitRepository(),
        users=InMemoryUserRepository(),
        pay_codes=InMemoryPayCodeRepository(),
        internal_users=InMemoryInternalUserRepository(),
    )
