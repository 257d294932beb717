"""Point-source router: /api/v1/referrals/*, /api/v1/channels/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.auth.dependencies import get_current_user
from quizarena.database import get_session
from quizarena.db.models import User
from quizarena.errors import QuizArenaError
from quizarena.redis_client import get_redis_optional
from quizarena.social.referral_service import get_referral_summary
from quizarena.social.schemas import ChannelSubscriptionResponse, ReferralSummaryResponse
from quizarena.social.subscription_service import record_channel_subscription

router = APIRouter(prefix="/api/v1", tags=["Social"])


@router.get("/referrals/me", response_model=ReferralSummaryResponse)
async def my_referrals(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ReferralSummaryResponse:
    return ReferralSummaryResponse(**await get_referral_summary(db, user.id))


@router.post("/channels/{channel_id}/subscribe", response_model=ChannelSubscriptionResponse)
async def subscribe_channel(
    channel_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChannelSubscriptionResponse:
    """Reward a channel subscription once. Membership is verified by the bot before calling."""
    try:
        points = await record_channel_subscription(db, user.id, channel_id, redis=get_redis_optional())
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return ChannelSubscriptionResponse(channel_id=channel_id, points_awarded=points)
