"""
Unit tests for DownloadService orchestration.

Tests verify the request/confirm protocol end to end against in-memory
adapters: gate ordering, OTP email delivery, asset release and errors.
"""

import base64

import pytest

from src.adapters.repository import Repositories
from src.domain.downloads import DownloadService
from src.domain.exceptions import (
    AccessDenied,
    EmailDeliveryFailed,
    InvalidOTP,
    InvalidRequest,
    NotFound,
    OTPLocked,
    RateLimited,
)
from src.domain.models import UserRecord
from tests.fakes import FakeClock, InMemoryAssetStore, RecordingEmailSender

EMAIL = "owner@example.com"
IP = "203.0.113.7"


@pytest.fixture(autouse=True)
def owner(repositories: Repositories) -> None:
    repositories.users.create(UserRecord(email=EMAIL, code="ABCDE", products=["memomi"]))


def issued_code(repositories: Repositories, product_id: str = "memomi") -> str:
    return repositories.otps.get(EMAIL, product_id).code


class TestRequestDownload:
    """Tests for OTP issuance."""

    def test_sends_otp_email(
        self,
        download_service: DownloadService,
        repositories: Repositories,
        email_sender: RecordingEmailSender,
    ) -> None:
        """Entitled callers get a stored OTP delivered by email."""
        download_service.request_download(" Owner@Example.com", "memomi", IP)

        code = issued_code(repositories)
        assert len(email_sender.sent) == 1
        sent = email_sender.sent[0]
        assert sent.to == EMAIL
        assert sent.subject == "Mã OTP tải file"
        assert code in sent.text
        assert code in sent.html

    def test_unknown_product_rejected(self, download_service: DownloadService) -> None:
        with pytest.raises(InvalidRequest, match="Invalid productId"):
            download_service.request_download(EMAIL, "unknown", IP)

    def test_no_access_rejected(
        self,
        download_service: DownloadService,
        repositories: Repositories,
        email_sender: RecordingEmailSender,
    ) -> None:
        """No entitlement means no OTP and no email."""
        with pytest.raises(AccessDenied):
            download_service.request_download(EMAIL, "virtual-gallery", IP)

        assert repositories.otps.get(EMAIL, "virtual-gallery") is None
        assert email_sender.sent == []

    def test_wrong_access_code_rejected(self, download_service: DownloadService) -> None:
        with pytest.raises(AccessDenied):
            download_service.request_download(EMAIL, "memomi", IP, access_code="WRONG")

    def test_rate_limit_checked_before_entitlement(
        self, download_service: DownloadService, repositories: Repositories
    ) -> None:
        """Probing without access still consumes the IP budget."""
        with pytest.raises(AccessDenied):
            download_service.request_download("stranger@example.com", "memomi", IP)

        assert repositories.rate_limits.get(IP).count == 1
        assert repositories.rate_limits.get("email_stranger@example.com").count == 1

    def test_email_limit_applies_across_ips(self, download_service: DownloadService) -> None:
        """The sixth request for one email is refused even from fresh IPs."""
        for i in range(5):
            download_service.request_download(EMAIL, "memomi", f"10.0.0.{i}")

        with pytest.raises(RateLimited):
            download_service.request_download(EMAIL, "memomi", "10.0.0.99")

    def test_ip_limit(self, download_service: DownloadService, repositories: Repositories) -> None:
        """The eleventh request from one IP is refused."""
        for i in range(10):
            repositories.users.create(
                UserRecord(email=f"user{i}@example.com", code="ABCDE", products=["memomi"])
            )
            download_service.request_download(f"user{i}@example.com", "memomi", IP)

        with pytest.raises(RateLimited) as exc_info:
            download_service.request_download(EMAIL, "memomi", IP)
        assert exc_info.value.retry_after_seconds == 30 * 60

    def test_email_failure_is_fatal_and_otp_kept(
        self,
        download_service: DownloadService,
        repositories: Repositories,
        email_sender: RecordingEmailSender,
    ) -> None:
        """
        A failed OTP email fails the request.

        The stored OTP is not rolled back and remains valid.
        """
        email_sender.fail = True

        with pytest.raises(EmailDeliveryFailed):
            download_service.request_download(EMAIL, "memomi", IP)

        assert repositories.otps.get(EMAIL, "memomi") is not None
        asset = download_service.confirm_download(EMAIL, issued_code(repositories), "memomi", IP)
        assert asset.filename == "memomi.html"


class TestConfirmDownload:
    """Tests for OTP confirmation and asset release."""

    def test_valid_otp_releases_asset(
        self, download_service: DownloadService, repositories: Repositories
    ) -> None:
        download_service.request_download(EMAIL, "memomi", IP)

        asset = download_service.confirm_download(EMAIL, issued_code(repositories), "memomi", IP)

        assert asset.content == b"<html>memomi</html>"
        assert asset.filename == "memomi.html"
        assert asset.media_type == "text/html"

    def test_html_asset_watermarked_with_buyer_email(
        self,
        download_service: DownloadService,
        repositories: Repositories,
        asset_store: InMemoryAssetStore,
    ) -> None:
        """The first email placeholder carries the buyer's email, base64-encoded."""
        asset_store.assets["memomi/memomi.html"] = (
            b"<p>e3t4eHh4ZW1haWx4eHh4fX0=</p><p>e3t4eHh4ZW1haWx4eHh4fX0=</p>"
        )
        download_service.request_download("Owner@Example.com", "memomi", IP)

        asset = download_service.confirm_download(
            "Owner@Example.com", issued_code(repositories), "memomi", IP
        )

        encoded = base64.b64encode(EMAIL.encode())
        assert asset.content == b"<p>" + encoded + b"</p><p>e3t4eHh4ZW1haWx4eHh4fX0=</p>"

    def test_replay_rejected(
        self, download_service: DownloadService, repositories: Repositories
    ) -> None:
        """The asset is released at most once per code."""
        download_service.request_download(EMAIL, "memomi", IP)
        code = issued_code(repositories)
        download_service.confirm_download(EMAIL, code, "memomi", IP)

        with pytest.raises(InvalidOTP) as exc_info:
            download_service.confirm_download(EMAIL, code, "memomi", IP)
        assert exc_info.value.message == "OTP has already been used"
        assert exc_info.value.details == {"reason": "already_used"}

    def test_expired_otp(
        self, download_service: DownloadService, repositories: Repositories, clock: FakeClock
    ) -> None:
        download_service.request_download(EMAIL, "memomi", IP)
        clock.advance(minutes=11)

        with pytest.raises(InvalidOTP, match="OTP has expired"):
            download_service.confirm_download(EMAIL, issued_code(repositories), "memomi", IP)

    def test_lockout_raises_otp_locked(
        self, download_service: DownloadService, repositories: Repositories
    ) -> None:
        """After five failures the pair is locked with a retry delay."""
        download_service.request_download(EMAIL, "memomi", IP)
        for _ in range(5):
            with pytest.raises(InvalidOTP):
                download_service.confirm_download(EMAIL, "00000", "memomi", IP)

        with pytest.raises(OTPLocked) as exc_info:
            download_service.confirm_download(EMAIL, issued_code(repositories), "memomi", IP)
        assert exc_info.value.retry_after_seconds == 15 * 60
        assert isinstance(exc_info.value, RateLimited)

    def test_missing_asset(
        self,
        download_service: DownloadService,
        repositories: Repositories,
        asset_store: InMemoryAssetStore,
    ) -> None:
        """A valid OTP for a product without a stored file yields NotFound."""
        asset_store.assets.clear()
        download_service.request_download(EMAIL, "memomi", IP)

        with pytest.raises(NotFound, match="File not found"):
            download_service.confirm_download(EMAIL, issued_code(repositories), "memomi", IP)

    def test_confirm_rate_limited_per_ip(self, download_service: DownloadService) -> None:
        """The 21st confirmation from one IP is refused before OTP validation."""
        for i in range(20):
            with pytest.raises(InvalidOTP):
                download_service.confirm_download(f"guess{i}@example.com", "123456", "memomi", IP)

        with pytest.raises(RateLimited):
            download_service.confirm_download(EMAIL, "123456", "memomi", IP)
