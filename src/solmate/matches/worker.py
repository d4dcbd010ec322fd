"""Expiry sweep arq worker: ghosts PENDING matches whose window has closed.

Run with: arq solmate.matches.worker.SweepWorkerSettings
"""

from __future__ import annotations

import structlog
from arq import cron
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.config import get_settings
from solmate.database import close_db, get_session, init_db
from solmate.ledger import get_ledger, reset_ledger
from solmate.matches.service import sweep_expired
from solmate.middleware.logging import setup_logging

logger = structlog.get_logger()


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


async def sweep_expired_matches(ctx: dict) -> dict[str, int]:
    """Ghost every expired PENDING match. Safe to run concurrently with itself."""
    db = await _get_db_session()
    try:
        report = await sweep_expired(db, get_ledger())
        return {
            "ghosted": len(report.ghosted),
            "skipped": len(report.skipped),
            "failed": len(report.failed),
        }
    finally:
        await db.close()


async def sweep_worker_startup(ctx: dict) -> None:
    """Initialize connections on worker startup."""
    settings = get_settings()
    setup_logging(settings, component="sweep-worker")
    await init_db(settings.database_url)
    logger.info(
        "sweep_worker_started",
        interval_minutes=settings.sweep_interval_minutes,
        ghost_policy=settings.ghost_policy,
    )


async def sweep_worker_shutdown(ctx: dict) -> None:
    """Clean up on worker shutdown."""
    await close_db()
    reset_ledger()
    logger.info("sweep_worker_shut_down")


def _sweep_minutes(interval: int) -> set[int]:
    """Minutes of the hour on which the sweep fires.

    cron minutes restart every hour, so the interval is rounded down to a
    divisor of 60 to keep the gap between runs constant.
    """
    interval = max(1, min(interval, 60))
    while 60 % interval:
        interval -= 1
    return set(range(0, 60, interval))


class SweepWorkerSettings:
    """arq worker settings for the match expiry sweep."""

    functions = [sweep_expired_matches]
    cron_jobs = [
        cron(
            sweep_expired_matches,
            minute=_sweep_minutes(get_settings().sweep_interval_minutes),
            run_at_startup=True,
            unique=True,
        ),
    ]
    on_startup = sweep_worker_startup
    on_shutdown = sweep_worker_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 1
    job_timeout = 300
