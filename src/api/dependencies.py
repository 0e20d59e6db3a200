"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.

Adapters live on app.state (set up by create_app and the lifespan);
services are cheap dataclasses built per request around them.
"""

import secrets

from fastapi import Depends, Header, Request

from src.adapters.repository.repositories import Repositories
from src.config.settings import Settings
from src.domain.downloads import DownloadLimits, DownloadService
from src.domain.entitlements import EntitlementService
from src.domain.exceptions import AuthenticationFailed
from src.domain.internal_users import CollaboratorReportService, InternalUserService
from src.domain.models import Clock
from src.domain.otp import OTPService
from src.domain.payments import PaymentService
from src.domain.ports import AssetStore, EmailSender
from src.domain.rate_limiter import RateLimiter


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_repositories(request: Request) -> Repositories:
    """
    Get repository bundle from app state.

    The bundle is created during app lifespan startup (or passed to
    create_app directly) and stored in app.state.
    """
    return request.app.state.repositories


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


def get_asset_store(request: Request) -> AssetStore:
    return request.app.state.asset_store


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_client_ip(request: Request) -> str:
    """
    Resolve the caller's IP address for rate limiting.

    Uses the first X-Forwarded-For entry, then X-Real-IP, then the socket peer.
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def get_rate_limiter(
    repositories: Repositories = Depends(get_repositories),
    clock: Clock = Depends(get_clock),
) -> RateLimiter:
    return RateLimiter(repository=repositories.rate_limits, clock=clock)


def get_otp_service(
    repositories: Repositories = Depends(get_repositories),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> OTPService:
    return OTPService(
        otps=repositories.otps,
        attempts=repositories.otp_attempts,
        policy=settings.otp_policy(),
        clock=clock,
    )


def get_entitlement_service(
    repositories: Repositories = Depends(get_repositories),
    email_sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> EntitlementService:
    return EntitlementService(
        users=repositories.users,
        email_sender=email_sender,
        catalog=settings.catalog(),
        clock=clock,
    )


def get_download_service(
    otp_service: OTPService = Depends(get_otp_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    entitlements: EntitlementService = Depends(get_entitlement_service),
    email_sender: EmailSender = Depends(get_email_sender),
    assets: AssetStore = Depends(get_asset_store),
    settings: Settings = Depends(get_app_settings),
) -> DownloadService:
    """
    Create download service with injected dependencies.

    Wires together the OTP engine, rate limiter, entitlements, email sender
    and asset store.
    """
    return DownloadService(
        otp_service=otp_service,
        rate_limiter=rate_limiter,
        entitlements=entitlements,
        email_sender=email_sender,
        assets=assets,
        catalog=settings.catalog(),
        limits=DownloadLimits(
            per_ip=settings.ip_rate_limit.to_rule(),
            per_email=settings.email_rate_limit.to_rule(),
            confirm_per_ip=settings.confirm_rate_limit.to_rule(),
        ),
    )


def get_payment_service(
    repositories: Repositories = Depends(get_repositories),
    entitlements: EntitlementService = Depends(get_entitlement_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> PaymentService:
    return PaymentService(
        pay_codes=repositories.pay_codes,
        internal_users=repositories.internal_users,
        entitlements=entitlements,
        rate_limiter=rate_limiter,
        catalog=settings.catalog(),
        limit=settings.pay_code_rate_limit.to_rule(),
        clock=clock,
    )


def get_internal_user_service(
    repositories: Repositories = Depends(get_repositories),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> InternalUserService:
    return InternalUserService(
        repository=repositories.internal_users,
        bcrypt_cost=settings.bcrypt_cost,
        clock=clock,
    )


def get_collaborator_report_service(
    internal_users: InternalUserService = Depends(get_internal_user_service),
    repositories: Repositories = Depends(get_repositories),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_app_settings),
) -> CollaboratorReportService:
    return CollaboratorReportService(
        internal_users=internal_users,
        pay_codes=repositories.pay_codes,
        rate_limiter=rate_limiter,
        limit=settings.collaborator_rate_limit.to_rule(),
    )


def require_api_key(
    x_api_key: str | None = Header(None, alias="x-api-key"),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Reject admin calls without the shared x-api-key header."""
    if not x_api_key or not secrets.compare_digest(
        x_api_key.encode(), settings.api_key.encode()
    ):
        raise AuthenticationFailed("Unauthorized: Invalid API key")


def require_webhook_key(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Reject payment webhooks without "Authorization: Apikey <key>"."""
    expected = f"Apikey {settings.api_key}"
    if not authorization or not secrets.compare_digest(
        authorization.strip().encode(), expected.encode()
    ):
        raise AuthenticationFailed("Unauthorized: Invalid API key")
