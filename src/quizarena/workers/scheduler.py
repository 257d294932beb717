"""arq scheduler for ranking and point-bucket maintenance.

Import path for arq CLI: arq quizarena.workers.scheduler.WorkerSettings

Schedule (UTC):
- 00:00 daily     reset daily_points
- 00:00 Monday    reset weekly_points
- 00:00 1st       reset monthly_points
- 00:05 daily     global rank recompute
- every N min     active competition leaderboards
- hourly          finalize winners of ended competitions
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from quizarena.competition.competition_service import finalize_ended_competitions, get_active_competitions
from quizarena.competition.leaderboard_service import recompute_competition_leaderboard
from quizarena.config import get_settings
from quizarena.database import close_db, get_session_factory, init_db
from quizarena.gamification.points_service import (
    reset_daily_points,
    reset_monthly_points,
    reset_weekly_points,
)
from quizarena.ranking.rank_service import recompute_global_ranks

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize the database engine on worker startup."""
    await init_db(get_settings().database_url)
    logger.info("Scheduler worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_db()
    logger.info("Scheduler worker shut down")


# ---------------------------------------------------------------------------
# Point bucket resets
# ---------------------------------------------------------------------------


async def reset_daily(ctx: dict) -> int:  # type: ignore[type-arg]
    async with get_session_factory()() as db:
        count = await reset_daily_points(db)
    logger.info("Daily points reset for %d users", count)
    return count


async def reset_weekly(ctx: dict) -> int:  # type: ignore[type-arg]
    async with get_session_factory()() as db:
        count = await reset_weekly_points(db)
    logger.info("Weekly points reset for %d users", count)
    return count


async def reset_monthly(ctx: dict) -> int:  # type: ignore[type-arg]
    async with get_session_factory()() as db:
        count = await reset_monthly_points(db)
    logger.info("Monthly points reset for %d users", count)
    return count


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


async def recompute_ranks(ctx: dict) -> int:  # type: ignore[type-arg]
    """Nightly global rank recompute. Returns users updated."""
    async with get_session_factory()() as db:
        result = await recompute_global_ranks(db)
        await db.commit()
    logger.info(
        "Global ranks recomputed: %d users, %d updated, %d skipped",
        result.total, result.updated, result.skipped,
    )
    return result.updated


async def refresh_competition_leaderboards(ctx: dict) -> int:  # type: ignore[type-arg]
    """Rebuild every running competition's board; one failing competition does not stop the rest."""
    refreshed = 0
    async with get_session_factory()() as db:
        # Plain ids: a rollback expires the loaded competitions.
        competition_ids = [c.id for c in await get_active_competitions(db)]
        for competition_id in competition_ids:
            try:
                await recompute_competition_leaderboard(db, competition_id)
                await db.commit()
                refreshed += 1
            except Exception:
                await db.rollback()
                logger.exception("Failed to refresh leaderboard for competition %d", competition_id)
    return refreshed


async def finalize_competitions(ctx: dict) -> int:  # type: ignore[type-arg]
    async with get_session_factory()() as db:
        count = await finalize_ended_competitions(db)
    if count:
        logger.info("Finalized winners for %d competitions", count)
    return count


def _every(minutes: int) -> set[int]:
    return set(range(0, 60, max(1, minutes)))


class WorkerSettings:
    """arq worker settings for the scheduler."""

    functions = [
        reset_daily,
        reset_weekly,
        reset_monthly,
        recompute_ranks,
        refresh_competition_leaderboards,
        finalize_competitions,
    ]
    cron_jobs = [
        cron(reset_daily, hour=0, minute=0),
        cron(reset_weekly, weekday=0, hour=0, minute=0),  # Monday
        cron(reset_monthly, day=1, hour=0, minute=0),
        cron(recompute_ranks, hour=0, minute=5),
        cron(
            refresh_competition_leaderboards,
            minute=_every(get_settings().competition_refresh_interval_minutes),
        ),
        cron(finalize_competitions, minute=30),
    ]
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = 4
    job_timeout = 600
