"""Rewarded channel subscriptions.

Whether the user really joined the channel is checked by the bot side;
this module only records the subscription and pays the reward once.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from quizarena.config import get_settings
from quizarena.db.models import ChannelSubscription, TelegramChannel, User
from quizarena.errors import ChannelNotFound, UserNotFound
from quizarena.gamification.points_service import SOURCE_SUBSCRIPTION, add_points
from quizarena.timeutils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


async def get_active_channel(db: AsyncSession, channel_id: str) -> TelegramChannel:
    result = await db.execute(
        select(TelegramChannel).where(
            TelegramChannel.channel_id == channel_id,
            TelegramChannel.is_active.is_(True),
        )
    )
    channel = result.scalar_one_or_none()
    if channel is None:
        raise ChannelNotFound()
    return channel


async def record_channel_subscription(
    db: AsyncSession,
    user_id: int,
    channel_id: str,
    *,
    now: datetime | None = None,
    redis: Any = None,
) -> int:
    """Record a subscription and award the channel's reward.

    Returns the points awarded: the channel's ``points_reward`` the first
    time, 0 if the user was already rewarded for this channel.
    """
    if now is None:
        now = utcnow()
    channel = await get_active_channel(db, channel_id)
    if await db.get(User, user_id) is None:
        raise UserNotFound()

    existing = await db.execute(
        select(ChannelSubscription.id).where(
            ChannelSubscription.user_id == user_id,
            ChannelSubscription.channel_id == channel_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        return 0

    try:
        async with db.begin_nested():
            db.add(ChannelSubscription(
                user_id=user_id,
                channel_id=channel_id,
                points_earned=channel.points_reward,
                subscribed_at=now,
                is_active=True,
            ))
            await db.flush()
    except IntegrityError:
        logger.info("channel_subscription_duplicate", user_id=user_id, channel_id=channel_id)
        return 0

    await add_points(
        db,
        user_id,
        channel.points_reward,
        SOURCE_SUBSCRIPTION,
        idempotency_key=f"subscription:{user_id}:{channel_id}",
        description=f"Subscribed to {channel.channel_username}",
        redis=redis,
        now=now,
    )
    await db.commit()

    logger.info("channel_subscription_rewarded", user_id=user_id, channel_id=channel_id, points=channel.points_reward)
    return channel.points_reward


async def create_channel(
    db: AsyncSession,
    *,
    channel_id: str,
    channel_username: str,
    channel_title: str,
    points_reward: int | None = None,
) -> TelegramChannel:
    if points_reward is None:
        points_reward = get_settings().subscription_default_reward_points
    channel = TelegramChannel(
        channel_id=channel_id,
        channel_username=channel_username,
        channel_title=channel_title,
        points_reward=points_reward,
        is_active=True,
    )
    db.add(channel)
    await db.commit()
    await db.refresh(channel)
    return channel
