"""Global rank recalculation, rank history and timeframe leaderboards."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.config import get_settings
from quizarena.db.models import UNRANKED, RankHistoryEntry, User
from quizarena.errors import UserNotFound
from quizarena.gamification.level_thresholds import get_level_title
from quizarena.ranking.ordering import rank_change, rank_entries, rank_trend
from quizarena.timeutils import utcnow

logger = structlog.get_logger()

TIMEFRAME_COLUMNS = {
    "all-time": "total_points",
    "monthly": "monthly_points",
    "weekly": "weekly_points",
    "daily": "daily_points",
}


@dataclass(frozen=True)
class RankRecomputeResult:
    total: int
    updated: int
    unchanged: int
    skipped: int


# ---------------------------------------------------------------------------
# Batch recompute
# ---------------------------------------------------------------------------


async def _store_rank(
    db: AsyncSession,
    user_id: int,
    rank: int,
    points: int,
    now: datetime,
    history_limit: int,
) -> None:
    """Write the new rank, append a history entry and evict the oldest beyond the limit."""
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(rank=rank)
        .execution_options(synchronize_session=False)
    )
    db.add(RankHistoryEntry(user_id=user_id, recorded_at=now, rank=rank, points=points))
    await db.flush()

    stale = await db.execute(
        select(RankHistoryEntry.id)
        .where(RankHistoryEntry.user_id == user_id)
        .order_by(RankHistoryEntry.recorded_at.desc(), RankHistoryEntry.id.desc())
        .offset(history_limit)
    )
    stale_ids = list(stale.scalars().all())
    if stale_ids:
        await db.execute(
            delete(RankHistoryEntry)
            .where(RankHistoryEntry.id.in_(stale_ids))
            .execution_options(synchronize_session=False)
        )


async def recompute_global_ranks(
    db: AsyncSession,
    now: datetime | None = None,
) -> RankRecomputeResult:
    """Re-rank every active user and record rank changes.

    Reads a snapshot of the active population without locking it. Each
    changed user is written inside its own SAVEPOINT; a failure rolls back
    only that user, is logged and counted as skipped. Inactive users are
    reset to UNRANKED. The caller commits.
    """
    if now is None:
        now = utcnow()
    history_limit = get_settings().rank_history_limit

    result = await db.execute(
        select(User.id, User.total_points, User.accuracy, User.quizzes_completed, User.rank)
        .where(User.is_active.is_(True))
    )
    entries = [
        {
            "user_id": row.id,
            "points": row.total_points,
            "accuracy": row.accuracy,
            "quizzes_completed": row.quizzes_completed,
            "previous_rank": row.rank,
        }
        for row in result.all()
    ]
    ranked = rank_entries(entries)

    updated = unchanged = skipped = 0
    for entry in ranked:
        if entry["rank"] == entry["previous_rank"]:
            unchanged += 1
            continue
        try:
            async with db.begin_nested():
                await _store_rank(db, entry["user_id"], entry["rank"], entry["points"], now, history_limit)
            updated += 1
        except SQLAlchemyError:
            skipped += 1
            logger.warning("rank_update_failed", user_id=entry["user_id"], exc_info=True)

    await db.execute(
        update(User)
        .where(User.is_active.is_(False), User.rank != UNRANKED)
        .values(rank=UNRANKED)
        .execution_options(synchronize_session=False)
    )
    await db.flush()

    outcome = RankRecomputeResult(total=len(ranked), updated=updated, unchanged=unchanged, skipped=skipped)
    logger.info(
        "global_ranks_recomputed",
        total=outcome.total,
        updated=outcome.updated,
        unchanged=outcome.unchanged,
        skipped=outcome.skipped,
    )
    return outcome


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


async def get_rank_history(db: AsyncSession, user_id: int, limit: int = 7) -> list[dict[str, Any]]:
    """Most recent ``limit`` history entries, oldest first."""
    if await db.get(User, user_id) is None:
        raise UserNotFound()
    result = await db.execute(
        select(RankHistoryEntry)
        .where(RankHistoryEntry.user_id == user_id)
        .order_by(RankHistoryEntry.recorded_at.desc(), RankHistoryEntry.id.desc())
        .limit(limit)
    )
    rows = list(result.scalars().all())
    rows.reverse()
    return [{"date": r.recorded_at, "rank": r.rank, "points": r.points} for r in rows]


async def _recent_history_batch(db: AsyncSession, user_ids: list[int]) -> dict[int, list[dict[str, Any]]]:
    """Last two history entries per user (oldest first), for trend arrows."""
    if not user_ids:
        return {}
    result = await db.execute(
        select(RankHistoryEntry.user_id, RankHistoryEntry.rank, RankHistoryEntry.recorded_at, RankHistoryEntry.id)
        .where(RankHistoryEntry.user_id.in_(user_ids))
        .order_by(RankHistoryEntry.user_id, RankHistoryEntry.recorded_at, RankHistoryEntry.id)
    )
    history: dict[int, list[dict[str, Any]]] = defaultdict(list)
    for row in result.all():
        history[row.user_id].append({"rank": row.rank})
    return {uid: entries[-2:] for uid, entries in history.items()}


# ---------------------------------------------------------------------------
# Leaderboard reads
# ---------------------------------------------------------------------------


async def get_leaderboard(
    db: AsyncSession,
    timeframe: str = "all-time",
    page: int = 1,
    per_page: int = 50,
    current_user_id: int | None = None,
) -> dict[str, Any]:
    """Active users ordered by the timeframe's point bucket.

    Positions follow the same tie-break chain as the stored global rank.
    ``current_user_rank`` counts active users with a strictly higher score.
    """
    column_name = TIMEFRAME_COLUMNS.get(timeframe)
    if column_name is None:
        raise ValueError(f"Unknown timeframe: {timeframe}")
    column = getattr(User, column_name)
    offset = (page - 1) * per_page

    total = (
        await db.execute(select(func.count(User.id)).where(User.is_active.is_(True)))
    ).scalar_one()

    result = await db.execute(
        select(User)
        .where(User.is_active.is_(True))
        .order_by(column.desc(), User.accuracy.desc(), User.quizzes_completed.desc(), User.id.asc())
        .offset(offset)
        .limit(per_page)
        .execution_options(populate_existing=True)
    )
    users = list(result.scalars().all())
    history = await _recent_history_batch(db, [u.id for u in users])

    entries = []
    for idx, user in enumerate(users):
        recent = history.get(user.id, [])
        entries.append({
            "user_id": user.id,
            "rank": offset + idx + 1,
            "name": user.full_name,
            "username": user.username,
            "score": getattr(user, column_name),
            "quizzes_completed": user.quizzes_completed,
            "accuracy": user.accuracy,
            "level": user.level,
            "level_title": get_level_title(user.level),
            "trend": rank_trend(recent),
            "rank_change": rank_change(recent),
        })

    current_user_rank = None
    if current_user_id is not None:
        my_score = (
            await db.execute(select(column).where(User.id == current_user_id))
        ).scalar_one_or_none()
        if my_score is not None:
            higher = await db.execute(
                select(func.count(User.id)).where(User.is_active.is_(True), column > my_score)
            )
            current_user_rank = higher.scalar_one() + 1

    return {
        "timeframe": timeframe,
        "entries": entries,
        "total": total,
        "page": page,
        "per_page": per_page,
        "current_user_rank": current_user_rank,
    }
