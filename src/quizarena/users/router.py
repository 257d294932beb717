"""User router: /api/v1/users/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.auth.dependencies import get_current_user
from quizarena.auth.router import user_response
from quizarena.auth.schemas import UserResponse
from quizarena.database import get_session
from quizarena.db.models import User
from quizarena.errors import QuizArenaError
from quizarena.users.schemas import UserStatsResponse
from quizarena.users.service import get_user_stats

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Own profile with current balances."""
    await db.refresh(user)
    return user_response(user)


@router.get("/me/stats", response_model=UserStatsResponse)
async def get_my_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserStatsResponse:
    try:
        stats = await get_user_stats(db, user.id)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return UserStatsResponse(**stats)
