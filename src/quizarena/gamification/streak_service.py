"""Daily activity streaks."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.db.models import User
from quizarena.errors import UserNotFound
from quizarena.timeutils import utc_date, utcnow

logger = structlog.get_logger()


def compute_streak(
    last_active: datetime | None,
    now: datetime,
    current_streak: int,
    longest_streak: int,
) -> tuple[int, int]:
    """Compute (current_streak, longest_streak) after activity at ``now``.

    - last active yesterday: streak continues (+1), longest raised if beaten
    - last active today: unchanged, repeat activity the same day never counts twice
    - last active two or more days ago: streak restarts at 1
    - never active: first day of a streak

    The caller is responsible for setting ``last_active = now``.
    """
    if last_active is None:
        return 1, max(longest_streak, 1)

    today = utc_date(now)
    last_day = utc_date(last_active)

    if last_day == today - timedelta(days=1):
        current = current_streak + 1
        return current, max(longest_streak, current)
    if last_day == today:
        return current_streak, longest_streak
    return 1, max(longest_streak, 1)


async def apply_activity(
    db: AsyncSession,
    user_id: int,
    now: datetime | None = None,
) -> tuple[int, int]:
    """Advance the user's streak for activity at ``now`` and stamp ``last_active``.

    The row is locked for the read-modify-write so two completions in
    flight for the same user cannot both extend the streak.
    """
    if now is None:
        now = utcnow()

    result = await db.execute(
        select(User.last_active, User.current_streak, User.longest_streak)
        .where(User.id == user_id)
        .with_for_update()
    )
    row = result.one_or_none()
    if row is None:
        raise UserNotFound()

    current, longest = compute_streak(row.last_active, now, row.current_streak, row.longest_streak)
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(current_streak=current, longest_streak=longest, last_active=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    if current > row.current_streak and current > 1:
        logger.debug("streak_extended", user_id=user_id, current_streak=current)
    return current, longest
