"""
Internal user domain services - staff accounts and the monthly pay code report.

Admins see every pay code created in a month; collaborators only see the
pay codes carrying their own referral code.
"""

import logging
import re
from functools import lru_cache
from dataclasses import dataclass, field
from datetime import datetime, timezone

import bcrypt

from .codes import normalize_email, normalize_ref_code
from .exceptions import AuthenticationFailed, Conflict, InvalidRequest
from .models import (
    Clock,
    InternalRole,
    InternalUserRecord,
    PayCodeRecord,
    RateLimitRule,
    utc_now,
)
from .ports import InternalUserRepository, PayCodeRepository
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only accepts passwords up to 72 bytes
MAX_PASSWORD_BYTES = 72

_MONTH_PATTERN = re.compile(r"^(\d{2})-(\d{2})$")


@lru_cache
def _dummy_hash(rounds: int) -> bytes:
    """Hash compared against for unknown emails, at the same cost as real ones."""
    return bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(rounds=rounds))


@dataclass
class InternalUserService:
    """Domain service for creating and authenticating internal users."""

    repository: InternalUserRepository
    bcrypt_cost: int = 10
    clock: Clock = field(default=utc_now)

    def create(
        self,
        email: str,
        password: str,
        ref_code: str,
        role: str,
        ref_percent: float,
    ) -> InternalUserRecord:
        """
        Create an admin or collaborator account.

        Raises:
            InvalidRequest: Password too short, empty ref code, bad role or percent
            Conflict: Email or ref code already in use
        """
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidRequest(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )
        if len(password.encode()) > MAX_PASSWORD_BYTES:
            raise InvalidRequest(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")

        normalized_ref_code = normalize_ref_code(ref_code)
        if not normalized_ref_code:
            raise InvalidRequest("refCode is required and cannot be empty")

        try:
            internal_role = InternalRole(role)
        except ValueError:
            raise InvalidRequest("Invalid role. Must be 'admin' or 'collaborators'") from None

        if not 0 <= ref_percent <= 100:
            raise InvalidRequest("refPercent must be a number between 0 and 100")

        normalized_email = normalize_email(email)
        if self.repository.get(normalized_email) is not None:
            raise Conflict(f"Internal user with email {normalized_email} already exists")
        if self.repository.get_by_ref_code(normalized_ref_code) is not None:
            raise Conflict(f"RefCode {normalized_ref_code} is already in use")

        now = self.clock()
        record = InternalUserRecord(
            email=normalized_email,
            password_hash=self._hash_password(password),
            ref_code=normalized_ref_code,
            role=internal_role,
            ref_percent=ref_percent,
            created_at=now,
            updated_at=now,
        )
        # Storage uniqueness decides concurrent creations
        if not self.repository.create(record):
            raise Conflict(
                f"Internal user with email {normalized_email} or RefCode "
                f"{normalized_ref_code} already exists"
            )

        logger.info("Internal user created: %s with role %s", record.email, record.role.value)
        return record

    def authenticate(self, email: str, password: str) -> InternalUserRecord:
        """
        Verify an internal user's password.

        bcrypt always runs, against a dummy hash of the same cost for unknown
        emails. Passwords too long for bcrypt can never match.

        Raises:
            AuthenticationFailed: Unknown email or wrong password
        """
        normalized_email = normalize_email(email)
        user = self.repository.get(normalized_email)
        stored_hash = (
            user.password_hash.encode() if user is not None else _dummy_hash(self.bcrypt_cost)
        )
        candidate = password.encode()
        too_long = len(candidate) > MAX_PASSWORD_BYTES
        password_valid = bcrypt.checkpw(b"" if too_long else candidate, stored_hash)

        if user is None or too_long or not password_valid:
            logger.warning("Failed authentication attempt for email: %s", normalized_email)
            raise AuthenticationFailed("Invalid email or password")
        return user

    def _hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self.bcrypt_cost)).decode()


@dataclass(frozen=True)
class MonthlyPayCodes:
    month: str
    email: str
    role: InternalRole
    ref_code: str
    ref_percent: float
    pay_codes: list[PayCodeRecord]

    @property
    def count(self) -> int:
        return len(self.pay_codes)

    @property
    def used_count(self) -> int:
        return sum(1 for pay_code in self.pay_codes if pay_code.used)


def month_range(month: str) -> tuple[datetime, datetime]:
    """
    Parse a YY-MM month into a UTC [start, end) range.

    Raises:
        InvalidRequest: Bad format or month outside 01..12
    """
    match = _MONTH_PATTERN.match(month)
    if match is None:
        raise InvalidRequest("Invalid month format. Expected format: YY-MM (e.g., 24-12)")

    year = 2000 + int(match.group(1))
    month_number = int(match.group(2))
    if not 1 <= month_number <= 12:
        raise InvalidRequest("Invalid month. Month must be between 01 and 12")

    start = datetime(year, month_number, 1, tzinfo=timezone.utc)
    if month_number == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month_number + 1, 1, tzinfo=timezone.utc)
    return start, end


@dataclass
class CollaboratorReportService:
    """Monthly pay code listing for admins and collaborators."""

    internal_users: InternalUserService
    pay_codes: PayCodeRepository
    rate_limiter: RateLimiter
    limit: RateLimitRule = field(
        default_factory=lambda: RateLimitRule(max_requests=5, window_minutes=15)
    )

    def pay_codes_for_month(
        self, email: str, password: str, month: str, ip_address: str
    ) -> MonthlyPayCodes:
        """
        Authenticate the caller and list the pay codes they may see.

        Raises:
            InvalidRequest: Malformed month
            RateLimited: Too many lookups from this IP
            AuthenticationFailed: Bad credentials
        """
        start, end = month_range(month)
        self.rate_limiter.enforce(f"get_paycode_by_collaborators_{ip_address}", self.limit)

        user = self.internal_users.authenticate(email, password)
        if user.role == InternalRole.ADMIN:
            records = self.pay_codes.list_created_between(start, end)
        else:
            records = self.pay_codes.list_created_between(start, end, ref_code=user.ref_code)

        return MonthlyPayCodes(
            month=month,
            email=user.email,
            role=user.role,
            ref_code=user.ref_code,
            ref_percent=user.ref_percent,
            pay_codes=records,
        )
