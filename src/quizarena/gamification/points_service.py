"""Point ledger: atomic per-source grants, level recomputation, periodic resets."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.db.models import PointsLedgerEntry, User
from quizarena.errors import InvalidAmount, InvalidSource, UserNotFound
from quizarena.gamification.level_thresholds import compute_level
from quizarena.redis_client import LEVEL_UP_CHANNEL, publish_event
from quizarena.timeutils import utcnow

logger = structlog.get_logger()

SOURCE_QUIZ = "quiz"
SOURCE_REFERRAL = "referral"
SOURCE_SUBSCRIPTION = "subscription"
POINT_SOURCES = frozenset({SOURCE_QUIZ, SOURCE_REFERRAL, SOURCE_SUBSCRIPTION})

# Bucket that each source feeds in addition to total/monthly/weekly/daily.
_SOURCE_BUCKET: dict[str, str] = {
    SOURCE_REFERRAL: "referral_points",
    SOURCE_SUBSCRIPTION: "subscription_points",
}


@dataclass(frozen=True)
class PointsGrant:
    """Balances after a grant was applied."""

    user_id: int
    amount: int
    source: str
    total_points: int
    monthly_points: int
    weekly_points: int
    daily_points: int
    referral_points: int
    subscription_points: int
    old_level: int
    level: int
    experience: int
    next_level_threshold: int

    @property
    def leveled_up(self) -> bool:
        return self.level > self.old_level


async def add_points(
    db: AsyncSession,
    user_id: int,
    amount: int,
    source: str,
    *,
    idempotency_key: str | None = None,
    description: str | None = None,
    redis: object | None = None,
    now: datetime | None = None,
) -> PointsGrant | None:
    """Add points to a user. Returns None if the idempotency key was already used.

    1. Insert into points_ledger
    2. Increment total/monthly/weekly/daily (and the source bucket) in one UPDATE
    3. Recompute level from the new total_points
    4. If level changed, publish a level_up event
    """
    if source not in POINT_SOURCES:
        raise InvalidSource(f"Unknown point source: {source}")
    if amount < 0:
        raise InvalidAmount()

    if idempotency_key is not None:
        existing = await db.execute(
            select(PointsLedgerEntry.id).where(PointsLedgerEntry.idempotency_key == idempotency_key)
        )
        if existing.scalar_one_or_none() is not None:
            logger.info("points_grant_duplicate", user_id=user_id, idempotency_key=idempotency_key)
            return None

    if now is None:
        now = utcnow()

    db.add(PointsLedgerEntry(
        user_id=user_id,
        amount=amount,
        source=source,
        description=description,
        idempotency_key=idempotency_key,
        created_at=now,
    ))
    await db.flush()

    values = {
        "total_points": User.total_points + amount,
        "monthly_points": User.monthly_points + amount,
        "weekly_points": User.weekly_points + amount,
        "daily_points": User.daily_points + amount,
        "updated_at": now,
    }
    bucket = _SOURCE_BUCKET.get(source)
    if bucket is not None:
        values[bucket] = getattr(User, bucket) + amount

    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(**values)
        .returning(
            User.total_points,
            User.monthly_points,
            User.weekly_points,
            User.daily_points,
            User.referral_points,
            User.subscription_points,
            User.level,
        )
        .execution_options(synchronize_session=False)
    )
    row = result.one_or_none()
    if row is None:
        raise UserNotFound()

    level_info = await recompute_level(db, user_id, row.total_points)

    grant = PointsGrant(
        user_id=user_id,
        amount=amount,
        source=source,
        total_points=row.total_points,
        monthly_points=row.monthly_points,
        weekly_points=row.weekly_points,
        daily_points=row.daily_points,
        referral_points=row.referral_points,
        subscription_points=row.subscription_points,
        old_level=row.level,
        level=level_info["level"],
        experience=level_info["experience"],
        next_level_threshold=level_info["next_level_threshold"],
    )

    if grant.leveled_up:
        logger.info("level_up", user_id=user_id, old_level=grant.old_level, new_level=grant.level)
        await _publish_level_up(redis, grant, level_info["title"])

    return grant


async def recompute_level(db: AsyncSession, user_id: int, total_points: int) -> dict:
    """Write level/experience derived from ``total_points``. Returns the level info."""
    level_info = compute_level(total_points)
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(level=level_info["level"], experience=level_info["experience"])
        .execution_options(synchronize_session=False)
    )
    return level_info


async def _publish_level_up(redis: object | None, grant: PointsGrant, title: str) -> None:
    """Broadcast a level-up for activity feeds."""
    await publish_event(
        redis,
        LEVEL_UP_CHANNEL,
        {
            "user_id": grant.user_id,
            "old_level": grant.old_level,
            "new_level": grant.level,
            "title": title,
        },
    )


# ---------------------------------------------------------------------------
# Periodic resets
# ---------------------------------------------------------------------------


async def _reset_bucket(db: AsyncSession, column: str) -> int:
    result = await db.execute(
        update(User)
        .where(User.is_active.is_(True))
        .values({column: 0})
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    count = result.rowcount or 0
    logger.info("points_bucket_reset", bucket=column, users=count)
    return count


async def reset_daily_points(db: AsyncSession) -> int:
    """Zero daily_points for all active users. Returns rows affected."""
    return await _reset_bucket(db, "daily_points")


async def reset_weekly_points(db: AsyncSession) -> int:
    """Zero weekly_points for all active users. Returns rows affected."""
    return await _reset_bucket(db, "weekly_points")


async def reset_monthly_points(db: AsyncSession) -> int:
    """Zero monthly_points for all active users. Returns rows affected."""
    return await _reset_bucket(db, "monthly_points")
