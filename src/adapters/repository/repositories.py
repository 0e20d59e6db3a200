"""Bundle of repository adapters wired into the application state."""

from dataclasses import dataclass

from src.domain.ports import (
    InternalUserRepository,
    OTPAttemptRepository,
    OTPRepository,
    PayCodeRepository,
    RateLimitRepository,
    UserRepository,
)


@dataclass(frozen=True)
class Repositories:
    otps: OTPRepository
    otp_attempts: OTPAttemptRepository
    rate_limits: RateLimitRepository
    users: UserRepository
    pay_codes: PayCodeRepository
    internal_users: InternalUserRepository
