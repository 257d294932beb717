"""Global leaderboard router: /api/v1/leaderboard/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.auth.dependencies import get_current_user
from quizarena.database import get_session
from quizarena.db.models import User
from quizarena.errors import QuizArenaError
from quizarena.ranking.rank_service import get_leaderboard, get_rank_history, recompute_global_ranks
from quizarena.ranking.schemas import (
    LeaderboardEntryResponse,
    LeaderboardResponse,
    RankHistoryEntryResponse,
    RankHistoryResponse,
    RankRecomputeResponse,
)

router = APIRouter(prefix="/api/v1/leaderboard", tags=["Leaderboard"])


@router.get("", response_model=LeaderboardResponse)
async def leaderboard(
    timeframe: str = Query("all-time", pattern="^(all-time|daily|weekly|monthly)$"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    board = await get_leaderboard(db, timeframe, page, per_page, current_user_id=user.id)
    entries = [
        LeaderboardEntryResponse(**entry, is_current_user=entry["user_id"] == user.id)
        for entry in board["entries"]
    ]
    return LeaderboardResponse(
        timeframe=board["timeframe"],
        entries=entries,
        total=board["total"],
        page=board["page"],
        per_page=board["per_page"],
        current_user_rank=board["current_user_rank"],
    )


@router.get("/rank-history", response_model=RankHistoryResponse)
async def rank_history(
    limit: int = Query(7, ge=1, le=30),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RankHistoryResponse:
    """Most recent global rank snapshots, oldest first."""
    try:
        history = await get_rank_history(db, user.id, limit=limit)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return RankHistoryResponse(history=[RankHistoryEntryResponse(**h) for h in history])


@router.post("/recompute", response_model=RankRecomputeResponse)
async def recompute(
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RankRecomputeResponse:
    """Re-rank all active users now instead of waiting for the nightly job."""
    result = await recompute_global_ranks(db)
    await db.commit()
    return RankRecomputeResponse(
        total=result.total,
        updated=result.updated,
        unchanged=result.unchanged,
        skipped=result.skipped,
    )
