"""
Unit tests for domain ports and exceptions.

Tests verify:
- OTPResult values
- Exceptions are properly structured
- Domain purity (zero framework imports)
"""

import subprocess
from enum import Enum
from pathlib import Path

import pytest

from src.domain.exceptions import (
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
from src.domain.models import RateLimitRule, UserRecord, UserStatus
from src.domain.ports import OTPResult

DOMAIN_DIR = Path(__file__).resolve().parents[2] / "src" / "domain"


class TestOTPResultEnum:
    """Tests for OTPResult enum."""

    def test_otp_result_is_enum(self) -> None:
        assert issubclass(OTPResult, Enum)

    @pytest.mark.parametrize(
        ("member", "value"),
        [
            ("SUCCESS", "success"),
            ("LOCKED", "locked"),
            ("NOT_FOUND", "not_found"),
            ("ALREADY_USED", "already_used"),
            ("EXPIRED", "expired"),
            ("PRODUCT_MISMATCH", "product_mismatch"),
            ("INVALID_CODE", "invalid_code"),
        ],
    )
    def test_otp_result_values(self, member: str, value: str) -> None:
        """Values double as the machine-readable reason in error bodies."""
        assert OTPResult[member].value == value


class TestDomainExceptions:
    """Tests for domain exceptions."""

    @pytest.mark.parametrize(
        "error_type",
        [
            InvalidRequest,
            AuthenticationFailed,
            AccessDenied,
            InvalidOTP,
            RateLimited,
            NotFound,
            Conflict,
            EmailDeliveryFailed,
        ],
    )
    def test_inherits_access_error(self, error_type: type[AccessError]) -> None:
        assert issubclass(error_type, AccessError)

    def test_otp_locked_is_rate_limited(self) -> None:
        """Lockouts are reported like any other rate limit."""
        assert issubclass(OTPLocked, RateLimited)

    def test_details_are_kept(self) -> None:
        error = InvalidRequest("Transfer amount does not match", expected=10, received=5)

        assert error.message == "Transfer amount does not match"
        assert error.details == {"expected": 10, "received": 5}
        assert str(error) == "Transfer amount does not match"

    def test_rate_limited_carries_retry_after(self) -> None:
        with pytest.raises(RateLimited) as exc_info:
            raise RateLimited("slow down", retry_after_seconds=60)
        assert exc_info.value.retry_after_seconds == 60


class TestRecords:
    def test_inactive_user_cannot_download(self) -> None:
        user = UserRecord(email="a@example.com", code="ABCDE", products=["memomi"])

        assert user.can_download("memomi") is True
        user.status = UserStatus.INACTIVE
        assert user.can_download("memomi") is False

    def test_rate_limit_rule_durations(self) -> None:
        rule = RateLimitRule(max_requests=10, window_minutes=15)

        assert rule.window.total_seconds() == 15 * 60
        assert rule.block_duration.total_seconds() == 30 * 60


class TestDomainPurity:
    """Tests for domain purity - zero framework imports."""

    @pytest.mark.parametrize(
        "pattern",
        [
            "from fastapi",
            "import fastapi",
            "from pydantic",
            "import pydantic",
            "from psycopg",
            "import psycopg",
            "import httpx",
        ],
    )
    def test_no_framework_imports_in_domain(self, pattern: str) -> None:
        """Domain layer imports no web, validation, database or HTTP client library."""
        result = subprocess.run(
            ["grep", "-r", pattern, str(DOMAIN_DIR)],
            capture_output=True,
            text=True,
        )
        assert result.returncode != 0, f"Framework import found: {result.stdout}"
