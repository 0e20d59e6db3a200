"""
Domain exceptions - Semantic error types for product access.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
The API layer maps each class to an HTTP status code.
"""

from typing import Any


class AccessError(Exception):
    """Base class for access domain errors."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidRequest(AccessError):
    """Malformed or missing input."""

    pass


class AuthenticationFailed(AccessError):
    """Bad or missing API key or credentials."""

    pass


class AccessDenied(AccessError):
    """Identity has no entitlement for the product."""

    pass


class InvalidOTP(AccessError):
    """OTP rejected: missing, used, expired, mismatched or wrong code."""

    pass


class RateLimited(AccessError):
    """Too many requests for a key; retry after the given delay."""

    def __init__(
        self, message: str, retry_after_seconds: int | None = None, **details: Any
    ) -> None:
        super().__init__(message, **details)
        self.retry_after_seconds = retry_after_seconds


class OTPLocked(RateLimited):
    """Too many failed OTP validations for an (email, product) pair."""

    pass


class NotFound(AccessError):
    """Unknown pay code or missing asset."""

    pass


class Conflict(AccessError):
    """Duplicate resource."""

    pass


class EmailDeliveryFailed(AccessError):
    """Outbound email could not be sent."""

    pass
