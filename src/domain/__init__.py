"""
Domain layer - Pure business logic with zero framework imports.

This package contains the OTP download protocol, the rate limiter, the
entitlement and payment workflows. It defines its own port interfaces for
infrastructure abstraction, ensuring true hexagonal architecture decoupling.
"""

from .downloads import DownloadedAsset, DownloadLimits, DownloadService
from .entitlements import EntitlementService, GrantResult, GrantStatus
from .exceptions import (
    AccessDenied,
    AccessError,
    AuthenticationFailed,
    Conflict,
    EmailDeliveryFailed,
    InvalidOTP,
    InvalidRequest,
    NotFound,
    OTPLocked,
    RateLimited,
)
from .internal_users import CollaboratorReportService, InternalUserService, MonthlyPayCodes
from .models import OTPPolicy, Product, RateLimitRule
from .otp import OTPService, OTPValidation
from .payments import PaymentService
from .ports import OTPResult
from .rate_limiter import RateLimitDecision, RateLimiter

__all__ = [
    "AccessDenied",
    "AccessError",
    "AuthenticationFailed",
    "CollaboratorReportService",
    "Conflict",
    "DownloadLimits",
    "DownloadService",
    "DownloadedAsset",
    "EmailDeliveryFailed",
    "EntitlementService",
    "GrantResult",
    "GrantStatus",
    "InternalUserService",
    "InvalidOTP",
    "InvalidRequest",
    "MonthlyPayCodes",
    "NotFound",
    "OTPLocked",
    "OTPPolicy",
    "OTPResult",
    "OTPService",
    "OTPValidation",
    "PaymentService",
    "Product",
    "RateLimitDecision",
    "RateLimitRule",
    "RateLimited",
    "RateLimiter",
]
