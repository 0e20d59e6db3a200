"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock
- In-memory repositories
- Recording email sender and in-memory asset store
- Domain services wired together the way the API wires them
- A PostgreSQL pool for integration and adversarial tests
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository import (
    Repositories,
    build_memory_repositories,
    build_postgres_repositories,
    run_migrations,
)
from src.config.settings import DEFAULT_PRODUCTS, get_settings
from src.domain.downloads import DownloadService
from src.domain.entitlements import EntitlementService
from src.domain.internal_users import CollaboratorReportService, InternalUserService
from src.domain.models import Product
from src.domain.otp import OTPService
from src.domain.payments import PaymentService
from src.domain.rate_limiter import RateLimiter
from tests.fakes import FakeClock, InMemoryAssetStore, RecordingEmailSender


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repositories() -> Repositories:
    return build_memory_repositories()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def catalog() -> dict[str, Product]:
    return {entry.id: entry.to_product() for entry in DEFAULT_PRODUCTS}


@pytest.fixture
def asset_store(catalog: dict[str, Product]) -> InMemoryAssetStore:
    return InMemoryAssetStore(
        {product.asset_key: f"<html>{product.id}</html>".encode() for product in catalog.values()}
    )


@pytest.fixture
def rate_limiter(repositories: Repositories, clock: FakeClock) -> RateLimiter:
    return RateLimiter(repository=repositories.rate_limits, clock=clock)


@pytest.fixture
def otp_service(repositories: Repositories, clock: FakeClock) -> OTPService:
    return OTPService(otps=repositories.otps, attempts=repositories.otp_attempts, clock=clock)


@pytest.fixture
def entitlements(
    repositories: Repositories,
    email_sender: RecordingEmailSender,
    catalog: dict[str, Product],
    clock: FakeClock,
) -> EntitlementService:
    return EntitlementService(
        users=repositories.users, email_sender=email_sender, catalog=catalog, clock=clock
    )


@pytest.fixture
def download_service(
    otp_service: OTPService,
    rate_limiter: RateLimiter,
    entitlements: EntitlementService,
    email_sender: RecordingEmailSender,
    asset_store: InMemoryAssetStore,
    catalog: dict[str, Product],
) -> DownloadService:
    return DownloadService(
        otp_service=otp_service,
        rate_limiter=rate_limiter,
        entitlements=entitlements,
        email_sender=email_sender,
        assets=asset_store,
        catalog=catalog,
    )


@pytest.fixture
def payment_service(
    repositories: Repositories,
    entitlements: EntitlementService,
    rate_limiter: RateLimiter,
    catalog: dict[str, Product],
    clock: FakeClock,
) -> PaymentService:
    return PaymentService(
        pay_codes=repositories.pay_codes,
        internal_users=repositories.internal_users,
        entitlements=entitlements,
        rate_limiter=rate_limiter,
        catalog=catalog,
        clock=clock,
    )


@pytest.fixture
def internal_user_service(repositories: Repositories, clock: FakeClock) -> InternalUserService:
    # Lowest bcrypt cost keeps the suite fast
    return InternalUserService(repository=repositories.internal_users, bcrypt_cost=4, clock=clock)


@pytest.fixture
def report_service(
    internal_user_service: InternalUserService,
    repositories: Repositories,
    rate_limiter: RateLimiter,
) -> CollaboratorReportService:
    return CollaboratorReportService(
        internal_users=internal_user_service,
        pay_codes=repositories.pay_codes,
        rate_limiter=rate_limiter,
    )


TABLES = ("otps", "otp_attempts", "rate_limits", "users", "pay_codes", "internal_users")


@pytest.fixture(scope="session")
def postgres_pool() -> Generator[ConnectionPool, None, None]:
    """
    Connection pool against DATABASE_URL with migrations applied.

    Tests depending on it are skipped when the database is unreachable.
    """
    settings = get_settings()
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=False)
    try:
        pool.open(wait=True, timeout=5)
    except PoolTimeout:
        pool.close()
        pytest.skip(f"PostgreSQL not reachable at {settings.database_url}")

    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def postgres_repositories(postgres_pool: ConnectionPool) -> Repositories:
    """PostgreSQL repositories over empty tables."""
    with postgres_pool.connection() as conn:
        for table in TABLES:
            conn.execute(f"DELETE FROM {table}")
        conn.commit()
    return build_postgres_repositories(postgres_pool)
