"""Unit tests for application settings."""

import pytest

from src.config.settings import Settings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()

        policy = settings.otp_policy()
        assert (policy.ttl_minutes, policy.max_attempts, policy.lockout_minutes) == (10, 5, 15)
        assert settings.ip_rate_limit.to_rule().max_requests == 10
        assert settings.email_rate_limit.to_rule().max_requests == 5
        assert settings.collaborator_rate_limit.to_rule().block_duration_minutes == 30

    def test_default_catalog(self) -> None:
        catalog = Settings().catalog()

        assert set(catalog) == {"truy-tim-ngoi-vua", "memomi", "virtual-gallery"}
        assert all(product.price == 49000 for product in catalog.values())
        assert catalog["memomi"].asset_key == "memomi/memomi.html"

    def test_nested_rate_limit_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Nested fields are set with a double underscore delimiter."""
        monkeypatch.setenv("IP_RATE_LIMIT__MAX_REQUESTS", "3")
        monkeypatch.setenv("IP_RATE_LIMIT__WINDOW_MINUTES", "5")

        rule = Settings().ip_rate_limit.to_rule()
        assert (rule.max_requests, rule.window_minutes, rule.block_duration_minutes) == (3, 5, 30)

    def test_otp_policy_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OTP_MAX_ATTEMPTS", "3")

        assert Settings().otp_policy().max_attempts == 3
