"""
Domain records - plain dataclasses exchanged between services and ports.

Absent records are represented by None at the port boundary: a missing
attempt or rate-limit record simply means "fresh state".
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OTPPolicy:
    """OTP lifetime and failed-attempt lockout configuration."""

    ttl_minutes: int = 10
    max_attempts: int = 5
    lockout_minutes: int = 15

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.ttl_minutes)

    @property
    def lockout(self) -> timedelta:
        return timedelta(minutes=self.lockout_minutes)


@dataclass(frozen=True)
class RateLimitRule:
    """Sliding-window limit for one call site."""

    max_requests: int
    window_minutes: int
    block_duration_minutes: int = 30

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)

    @property
    def block_duration(self) -> timedelta:
        return timedelta(minutes=self.block_duration_minutes)


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: int
    asset_key: str


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class InternalRole(str, Enum):
    """Roles for staff accounts that can review payment codes."""

    ADMIN = "admin"
    COLLABORATORS = "collaborators"


@dataclass
class OTPRecord:
    """One live code per (email, product_id); a new issue overwrites it."""

    email: str
    product_id: str
    code: str
    created_at: datetime
    expires_at: datetime
    used: bool = False


@dataclass
class OTPAttemptRecord:
    email: str
    product_id: str
    attempts: int
    last_attempt_at: datetime
    locked_until: datetime | None = None
    ip_address: str | None = None


@dataclass
class RateLimitRecord:
    key: str
    count: int
    window_start: datetime
    blocked_until: datetime | None = None


@dataclass
class UserRecord:
    """Entitlement record keyed by lower-cased email."""

    email: str
    code: str
    products: list[str] = field(default_factory=list)
    status: UserStatus = UserStatus.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def can_download(self, product_id: str) -> bool:
        return self.status == UserStatus.ACTIVE and product_id in self.products


@dataclass
class PayCodeRecord:
    email: str
    product_id: str
    amount: int
    metadata: str = ""
    ref_code: str | None = None
    used: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class InternalUserRecord:
    email: str
    password_hash: str
    ref_code: str
    role: InternalRole
    ref_percent: float
    created_at: datetime | None = None
    updated_at: datetime | None = None
