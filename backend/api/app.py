"""
FastAPI application factory.

Creates and configures the FastAPI application instance.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config import get_settings
from shared.logging import configure_logging

from .dependencies import ServiceContainer, get_container
from .errors import register_exception_handlers
from .routes import auth, health, users

logger = logging.getLogger(__name__)


async def sweep_expired_sessions(container: ServiceContainer, interval_seconds: int) -> None:
    """Periodically purge expired sessions until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(container.sessions.purge_expired)
        except Exception:
            logger.exception("Expired-session sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Fails startup if the signing key or credential store cannot be built.
    """
    settings = get_settings()
    configure_logging(json_format=settings.log_json, level=settings.log_level)

    container = get_container()
    container.validate()
    logger.info("Starting %s API on %s:%d", settings.app_name, settings.host, settings.port)

    sweeper = None
    if settings.session_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            sweep_expired_sessions(container, settings.session_sweep_interval_seconds)
        )

    yield

    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    await container.auth.drain_notifications()
    logger.info("Shutting down %s API", settings.app_name)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Accounts, sessions and email verification for StoryWonder",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    register_exception_handlers(app)

    # Register routes
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(users.router, prefix="/api/users", tags=["users"])

    return app


# Application instance for uvicorn
app = create_app()
