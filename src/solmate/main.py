"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from solmate.auth.router import router as auth_router
from solmate.config import get_settings
from solmate.database import close_db, init_db
from solmate.health.router import router as health_router
from solmate.ledger import reset_ledger
from solmate.matches.router import router as matches_router
from solmate.middleware import setup_middleware
from solmate.redis_client import close_redis, init_redis
from solmate.transactions.router import router as transactions_router
from solmate.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url, max_connections=settings.redis_max_connections)
    logger.info(
        "api_started",
        environment=settings.environment,
        ledger_provider=settings.ledger_provider,
        ghost_policy=settings.ghost_policy,
    )

    yield

    await close_db()
    await close_redis()
    reset_ledger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Solmate API",
        description="Backend API for Solmate: tip-to-match dating with escrowed tips",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(matches_router)
    app.include_router(transactions_router)

    if settings.debug:
        from solmate.dev.router import router as dev_router

        app.include_router(dev_router)

    return app


app = create_app()
