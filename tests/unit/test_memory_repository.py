"""
Unit tests for the in-memory repository adapters.

Covers the conditional updates the domain relies on for exactly-once
semantics, and the copy-in/copy-out isolation of stored records.
"""

from datetime import datetime, timedelta, timezone

from src.adapters.repository import Repositories
from src.domain.models import (
    InternalRole,
    InternalUserRecord,
    OTPRecord,
    PayCodeRecord,
    UserRecord,
)

NOW = datetime(2024, 12, 15, 10, 30, tzinfo=timezone.utc)


def otp(code: str = "123456") -> OTPRecord:
    return OTPRecord(
        email="a@example.com",
        product_id="memomi",
        code=code,
        created_at=NOW,
        expires_at=NOW + timedelta(minutes=10),
    )


class TestOTPRepository:
    def test_mark_used_once(self, repositories: Repositories) -> None:
        """Only the first conditional consume succeeds."""
        repositories.otps.save(otp())

        assert repositories.otps.mark_used("a@example.com", "memomi", "123456") is True
        assert repositories.otps.mark_used("a@example.com", "memomi", "123456") is False

    def test_mark_used_requires_current_code(self, repositories: Repositories) -> None:
        """A code replaced by a newer issue cannot be consumed."""
        repositories.otps.save(otp("111111"))
        repositories.otps.save(otp("222222"))

        assert repositories.otps.mark_used("a@example.com", "memomi", "111111") is False
        assert repositories.otps.get("a@example.com", "memomi").used is False

    def test_returned_records_are_copies(self, repositories: Repositories) -> None:
        repositories.otps.save(otp())

        repositories.otps.get("a@example.com", "memomi").used = True

        assert repositories.otps.get("a@example.com", "memomi").used is False


class TestOTPAttemptRepository:
    def test_record_failure_counts_and_locks(self, repositories: Repositories) -> None:
        lock_until = NOW + timedelta(minutes=15)
        for _ in range(2):
            record = repositories.otp_attempts.record_failure(
                "a@example.com", "memomi", NOW, max_attempts=3, lockout_until=lock_until
            )
            assert record.locked_until is None

        record = repositories.otp_attempts.record_failure(
            "a@example.com",
            "memomi",
            NOW,
            max_attempts=3,
            lockout_until=lock_until,
            ip_address="1.1.1.1",
        )

        assert record.attempts == 3
        assert record.locked_until == lock_until
        assert record.ip_address == "1.1.1.1"

    def test_clear_lock_keeps_record(self, repositories: Repositories) -> None:
        repositories.otp_attempts.record_failure(
            "a@example.com", "memomi", NOW, max_attempts=1, lockout_until=NOW
        )

        repositories.otp_attempts.clear_lock("a@example.com", "memomi")

        record = repositories.otp_attempts.get("a@example.com", "memomi")
        assert record.attempts == 0
        assert record.locked_until is None

    def test_reset_removes_record(self, repositories: Repositories) -> None:
        repositories.otp_attempts.record_failure(
            "a@example.com", "memomi", NOW, max_attempts=5, lockout_until=NOW
        )

        repositories.otp_attempts.reset("a@example.com", "memomi")

        assert repositories.otp_attempts.get("a@example.com", "memomi") is None


class TestRateLimitRepository:
    def test_window_increment_block(self, repositories: Repositories) -> None:
        store = repositories.rate_limits
        store.start_window("k", NOW)
        store.increment("k")
        store.block("k", NOW + timedelta(minutes=30))

        record = store.get("k")
        assert record.count == 2
        assert record.window_start == NOW
        assert record.blocked_until == NOW + timedelta(minutes=30)

    def test_start_window_clears_block(self, repositories: Repositories) -> None:
        store = repositories.rate_limits
        store.start_window("k", NOW)
        store.block("k", NOW)

        store.start_window("k", NOW + timedelta(hours=1))

        assert store.get("k").blocked_until is None
        assert store.get("k").count == 1


class TestUserRepository:
    def test_add_product_is_idempotent(self, repositories: Repositories) -> None:
        repositories.users.create(UserRecord(email="a@example.com", code="ABCDE", products=[]))

        repositories.users.add_product("a@example.com", "memomi", NOW)
        repositories.users.add_product("a@example.com", "memomi", NOW)

        user = repositories.users.get("a@example.com")
        assert user.products == ["memomi"]
        assert user.updated_at == NOW

    def test_product_list_not_shared(self, repositories: Repositories) -> None:
        products = ["memomi"]
        repositories.users.create(
            UserRecord(email="a@example.com", code="ABCDE", products=products)
        )

        products.append("virtual-gallery")

        assert repositories.users.get("a@example.com").products == ["memomi"]


class TestPayCodeRepository:
    def test_mark_used_once(self, repositories: Repositories) -> None:
        repositories.pay_codes.create(
            "ID", PayCodeRecord(email="a@example.com", product_id="memomi", amount=1)
        )

        assert repositories.pay_codes.mark_used("ID", NOW) is True
        assert repositories.pay_codes.mark_used("ID", NOW) is False
        assert repositories.pay_codes.mark_used("MISSING", NOW) is False

    def test_list_created_between_is_half_open(self, repositories: Repositories) -> None:
        start = datetime(2024, 12, 1, tzinfo=timezone.utc)
        end = datetime(2025, 1, 1, tzinfo=timezone.utc)
        for pay_code_id, created_at in [("IN", start), ("OUT", end)]:
            repositories.pay_codes.create(
                pay_code_id,
                PayCodeRecord(
                    email=f"{pay_code_id}@example.com",
                    product_id="memomi",
                    amount=1,
                    created_at=created_at,
                ),
            )

        records = repositories.pay_codes.list_created_between(start, end)

        assert [r.email for r in records] == ["IN@example.com"]


class TestInternalUserRepository:
    def _user(self, email: str, ref_code: str) -> InternalUserRecord:
        return InternalUserRecord(
            email=email,
            password_hash="hash",
            ref_code=ref_code,
            role=InternalRole.ADMIN,
            ref_percent=10,
        )

    def test_create_enforces_unique_email_and_ref_code(self, repositories: Repositories) -> None:
        store = repositories.internal_users

        assert store.create(self._user("a@example.com", "A")) is True
        assert store.create(self._user("a@example.com", "B")) is False
        assert store.create(self._user("b@example.com", "A")) is False
        assert store.get_by_ref_code("A").email == "a@example.com"
        assert store.get_by_ref_code("B") is None
