"""Registration router: /api/v1/auth/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.auth.jwt import create_access_token
from quizarena.auth.schemas import RegisterRequest, RegisterResponse, UserResponse
from quizarena.database import get_session
from quizarena.db.models import UNRANKED, User
from quizarena.errors import QuizArenaError
from quizarena.redis_client import get_redis_optional
from quizarena.users.service import register_user

router = APIRouter(prefix="/api/v1/auth", tags=["Auth"])


def user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        external_id=user.external_id,
        first_name=user.first_name,
        last_name=user.last_name,
        username=user.username,
        referral_code=user.referral_code,
        total_points=user.total_points,
        level=user.level,
        rank=None if user.rank == UNRANKED else user.rank,
        current_streak=user.current_streak,
        created_at=user.created_at,
    )


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
) -> RegisterResponse:
    """Create an account (optionally via a referral code) and issue an access token."""
    try:
        user = await register_user(
            db,
            external_id=body.external_id,
            first_name=body.first_name,
            last_name=body.last_name,
            username=body.username,
            referral_code=body.referral_code,
            redis=get_redis_optional(),
        )
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e

    return RegisterResponse(
        user=user_response(user),
        access_token=create_access_token(user.id, user.external_id),
        referral_bonus_awarded=user.referred_by_id is not None,
    )
