"""User registration and profile queries."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.db.models import ATTEMPT_COMPLETED, UNRANKED, QuizAttempt, User
from quizarena.errors import UserAlreadyExists, UserNotFound
from quizarena.gamification.level_thresholds import compute_level
from quizarena.social.referral_service import complete_referral, generate_unique_referral_code, get_referrer
from quizarena.timeutils import utcnow

logger = structlog.get_logger()


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise UserNotFound()
    return user


async def get_user_by_external_id(db: AsyncSession, external_id: str) -> User | None:
    result = await db.execute(select(User).where(User.external_id == external_id))
    return result.scalar_one_or_none()


async def register_user(
    db: AsyncSession,
    *,
    external_id: str,
    first_name: str,
    last_name: str = "",
    username: str | None = None,
    referral_code: str | None = None,
    now: datetime | None = None,
    redis: Any = None,
) -> User:
    """Create a user with every counter at its initial value.

    With ``referral_code``, the owner of the code is credited with a
    completed referral and the referral reward.
    """
    if now is None:
        now = utcnow()
    if await get_user_by_external_id(db, external_id) is not None:
        raise UserAlreadyExists()
    referrer = await get_referrer(db, referral_code) if referral_code else None

    user = User(
        external_id=external_id,
        first_name=first_name,
        last_name=last_name,
        username=username,
        referral_code=await generate_unique_referral_code(db),
        referred_by_id=referrer.id if referrer else None,
        total_points=0,
        monthly_points=0,
        weekly_points=0,
        daily_points=0,
        referral_points=0,
        subscription_points=0,
        quizzes_completed=0,
        correct_answers=0,
        total_questions=0,
        total_referrals=0,
        accuracy=0.0,
        current_streak=0,
        longest_streak=0,
        level=1,
        experience=0,
        rank=UNRANKED,
        last_active=None,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    await db.flush()

    if referrer is not None:
        await complete_referral(db, referrer, user.id, now=now, redis=redis)

    await db.commit()
    await db.refresh(user)
    logger.info("user_registered", user_id=user.id, referred_by=user.referred_by_id)
    return user


async def get_user_stats(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Balances, level progress, streaks and attempt totals."""
    user = await get_user(db, user_id)
    await db.refresh(user)
    level_info = compute_level(user.total_points)

    result = await db.execute(
        select(func.count(QuizAttempt.id), func.coalesce(func.sum(QuizAttempt.total_time), 0))
        .where(QuizAttempt.user_id == user_id, QuizAttempt.status == ATTEMPT_COMPLETED)
    )
    attempts, total_time = result.one()

    return {
        "user_id": user.id,
        "total_points": user.total_points,
        "monthly_points": user.monthly_points,
        "weekly_points": user.weekly_points,
        "daily_points": user.daily_points,
        "referral_points": user.referral_points,
        "subscription_points": user.subscription_points,
        "level": level_info["level"],
        "level_title": level_info["title"],
        "experience": level_info["experience"],
        "next_level_threshold": level_info["next_level_threshold"],
        "rank": None if user.rank == UNRANKED else user.rank,
        "accuracy": user.accuracy,
        "quizzes_completed": user.quizzes_completed,
        "correct_answers": user.correct_answers,
        "total_questions": user.total_questions,
        "current_streak": user.current_streak,
        "longest_streak": user.longest_streak,
        "total_referrals": user.total_referrals,
        "completed_attempts": int(attempts),
        "total_time_spent": int(total_time),
    }
