"""tokengate - FastAPI Application Factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tokengate.api import auth_router, health_router, users_router
from tokengate.api.deps import register_exception_handlers
from tokengate.core import async_session_maker, create_tables, settings, setup_logging
from tokengate.core.logging import get_logger
from tokengate.services.token_store import TokenStore

logger = get_logger("main")


async def purge_expired_tokens() -> int:
    """Delete token rows past their expiry. Returns count removed."""
    async with async_session_maker() as db:
        removed = await TokenStore(db).delete_expired()
        await db.commit()
    return removed


async def _token_cleanup_loop(interval: int) -> None:
    """Periodically remove expired token rows."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await purge_expired_tokens()
            if removed > 0:
                logger.info(f"Cleaned up {removed} expired token rows")
        except Exception:
            logger.exception("Error cleaning up expired tokens")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(settings.log_level, settings.log_format)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    if settings.db_create_tables:
        await create_tables()

    cleanup_task: asyncio.Task[None] | None = None
    if settings.token_cleanup_interval_seconds > 0:
        cleanup_task = asyncio.create_task(
            _token_cleanup_loop(settings.token_cleanup_interval_seconds)
        )

    yield

    logger.info("Shutting down...")
    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Session tokens with cookie transport and refresh-token reuse detection",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    register_exception_handlers(app)

    # Cookies are credentials, so CORS must allow them and name origins explicitly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(users_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
        }

    return app


# Application instance
app = create_app()
