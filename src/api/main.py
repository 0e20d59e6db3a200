"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures middleware, exception handlers, and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from src.adapters.repository import (
    Repositories,
    build_memory_repositories,
    build_postgres_repositories,
    run_migrations,
)
from src.adapters.smtp.console import ConsoleEmailSender
from src.adapters.smtp.resend import ResendEmailSender
from src.adapters.storage.filesystem import FileSystemAssetStore
from src.api.cors import cors_middleware
from src.api.errors import register_exception_handlers
from src.api.v1 import router as v1_router
from src.config.settings import Settings, get_settings
from src.domain.models import Clock, utc_now
from src.domain.ports import AssetStore, EmailSender

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Product Access API v1 - OTP downloads, payment codes and internal users",
    },
]


def build_email_sender(settings: Settings) -> EmailSender:
    if settings.email_backend == "resend":
        return ResendEmailSender(
            api_key=settings.resend_api_key,
            sender=settings.email_from,
            sender_name=settings.email_from_name,
            reply_to=settings.email_reply_to,
            api_url=settings.resend_api_url,
            timeout=settings.email_timeout_seconds,
        )
    return ConsoleEmailSender()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool on startup (postgres backend)
    - Runs migrations on startup
    - Closes connection pool and email client on shutdown

    Repositories passed to create_app are used as-is.
    """
    settings: Settings = app.state.settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting application...")

    pool = None
    if app.state.repositories is None:
        if settings.storage_backend == "postgres":
            logger.info("Connecting to database...")
            # Create connection pool with explicit sizing
            pool = ConnectionPool(
                conninfo=settings.database_url,
                min_size=settings.pool_min_size,
                max_size=settings.pool_max_size,
            )

            logger.info("Running database migrations...")
            run_migrations(pool)
            app.state.repositories = build_postgres_repositories(pool)
        else:
            logger.warning("Using in-memory storage; data is lost on restart")
            app.state.repositories = build_memory_repositories()

    app.state.pool = pool
    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if pool is not None:
        pool.close()
        logger.info("Database connection pool closed")
    if isinstance(app.state.email_sender, ResendEmailSender):
        app.state.email_sender.close()


def create_app(
    settings: Settings | None = None,
    repositories: Repositories | None = None,
    email_sender: EmailSender | None = None,
    asset_store: AssetStore | None = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """Build the application; collaborators left as None come from settings."""
    settings = settings or get_settings()

    app = FastAPI(
        title="product-access",
        description="OTP-gated digital product downloads with pay-to-unlock codes",
        version="0.1.0",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.repositories = repositories
    app.state.email_sender = email_sender or build_email_sender(settings)
    app.state.asset_store = asset_store or FileSystemAssetStore(settings.download_dir)
    app.state.clock = clock
    app.state.pool = None

    app.middleware("http")(cors_middleware)
    register_exception_handlers(app)

    # Include v1 API routes
    app.include_router(v1_router, prefix="/v1")

    @app.get("/health")
    def health_check(request: Request) -> dict[str, str]:
        """
        Health check endpoint with database validation.

        Returns 200 OK if application and database are healthy.
        Raises exception if database connection fails.
        """
        pool = request.app.state.pool
        if pool is not None:
            with pool.connection() as conn:
                conn.execute("SELECT 1")

        return {"status": "healthy"}

    return app


app = create_app()
