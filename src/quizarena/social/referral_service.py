"""
Referral codes and referral rewards.

A referral is completed when a new user registers with an existing
user's code. The referrer is rewarded once per referred user.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select, update

from quizarena.config import get_settings
from quizarena.db.models import Referral, User
from quizarena.errors import InvalidReferralCode
from quizarena.gamification.points_service import SOURCE_REFERRAL, PointsGrant, add_points
from quizarena.timeutils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

REFERRAL_PREFIX = "REF"
REFERRAL_CODE_LENGTH = 8
_ALPHABET = string.ascii_uppercase + string.digits

REFERRAL_COMPLETED = "completed"


def generate_referral_code() -> str:
    """Random code like ``REF7K2M9QXA``."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))
    return f"{REFERRAL_PREFIX}{suffix}"


async def generate_unique_referral_code(db: AsyncSession, attempts: int = 5) -> str:
    """Generate a code not yet held by any user."""
    for _ in range(attempts):
        code = generate_referral_code()
        taken = await db.execute(select(User.id).where(User.referral_code == code))
        if taken.scalar_one_or_none() is None:
            return code
    msg = "Could not generate a unique referral code"
    raise RuntimeError(msg)


async def get_referrer(db: AsyncSession, referral_code: str) -> User:
    """Active user owning ``referral_code``."""
    result = await db.execute(
        select(User).where(User.referral_code == referral_code.strip().upper(), User.is_active.is_(True))
    )
    referrer = result.scalar_one_or_none()
    if referrer is None:
        raise InvalidReferralCode()
    return referrer


async def complete_referral(
    db: AsyncSession,
    referrer: User,
    referred_user_id: int,
    *,
    now: datetime | None = None,
    redis: Any = None,
) -> tuple[Referral, PointsGrant | None]:
    """Record a completed referral and reward the referrer.

    The grant is keyed on the referred user, so a referred user can only
    ever pay out once. The caller commits.
    """
    if now is None:
        now = utcnow()
    reward = get_settings().referral_reward_points

    referral = Referral(
        referrer_id=referrer.id,
        referred_user_id=referred_user_id,
        referral_code=referrer.referral_code,
        points_earned=reward,
        status=REFERRAL_COMPLETED,
        completed_at=now,
        created_at=now,
    )
    db.add(referral)
    await db.flush()

    await db.execute(
        update(User)
        .where(User.id == referrer.id)
        .values(total_referrals=User.total_referrals + 1)
        .execution_options(synchronize_session=False)
    )
    grant = await add_points(
        db,
        referrer.id,
        reward,
        SOURCE_REFERRAL,
        idempotency_key=f"referral:{referred_user_id}",
        description="Referral reward",
        redis=redis,
        now=now,
    )
    logger.info("referral_completed", referrer_id=referrer.id, referred_user_id=referred_user_id, points=reward)
    return referral, grant


async def get_referral_summary(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Referral code and aggregate earnings for a user."""
    code = (await db.execute(select(User.referral_code).where(User.id == user_id))).scalar_one_or_none()
    result = await db.execute(
        select(func.count(Referral.id), func.coalesce(func.sum(Referral.points_earned), 0))
        .where(Referral.referrer_id == user_id, Referral.status == REFERRAL_COMPLETED)
    )
    count, points = result.one()
    return {"referral_code": code, "total_referrals": int(count), "total_points": int(points)}
