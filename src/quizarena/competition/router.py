"""Competition router: /api/v1/competitions/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.auth.dependencies import get_current_user
from quizarena.competition.competition_service import (
    add_participant,
    finalize_winners,
    get_active_competitions,
    get_competition,
    is_competition_active,
    is_participant,
    serialize_winner,
)
from quizarena.competition.leaderboard_service import (
    get_competition_leaderboard,
    get_competition_standing,
    recompute_competition_leaderboard,
)
from quizarena.competition.schemas import (
    ActiveCompetitionsResponse,
    CompetitionLeaderboardEntryResponse,
    CompetitionLeaderboardResponse,
    CompetitionResponse,
    CompetitionStandingResponse,
    JoinResponse,
    WinnerResponse,
    WinnersResponse,
)
from quizarena.database import get_session
from quizarena.db.models import Competition, User
from quizarena.errors import QuizArenaError

router = APIRouter(prefix="/api/v1/competitions", tags=["Competitions"])


def _competition_response(competition: Competition, joined: bool = False) -> CompetitionResponse:
    return CompetitionResponse(
        id=competition.id,
        name=competition.name,
        description=competition.description,
        start_date=competition.start_date,
        end_date=competition.end_date,
        is_active=is_competition_active(competition),
        total_participants=competition.total_participants,
        max_participants=competition.max_participants,
        prize_pool=competition.prize_pool,
        entry_fee=competition.entry_fee,
        difficulty=competition.difficulty,
        is_participant=joined,
    )


@router.get("/active", response_model=ActiveCompetitionsResponse)
async def active_competitions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ActiveCompetitionsResponse:
    competitions = await get_active_competitions(db)
    return ActiveCompetitionsResponse(
        competitions=[
            _competition_response(c, await is_participant(db, c.id, user.id)) for c in competitions
        ]
    )


@router.get("/{competition_id}", response_model=CompetitionResponse)
async def competition_detail(
    competition_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CompetitionResponse:
    try:
        competition = await get_competition(db, competition_id)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return _competition_response(competition, await is_participant(db, competition_id, user.id))


@router.post("/{competition_id}/join", response_model=JoinResponse)
async def join_competition(
    competition_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> JoinResponse:
    try:
        entry = await add_participant(db, competition_id, user.id)
        competition = await get_competition(db, competition_id)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return JoinResponse(
        competition_id=competition_id,
        rank=entry.rank,
        total_participants=competition.total_participants,
    )


@router.get("/{competition_id}/leaderboard", response_model=CompetitionLeaderboardResponse)
async def competition_leaderboard(
    competition_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CompetitionLeaderboardResponse:
    try:
        entries, total = await get_competition_leaderboard(db, competition_id, page, per_page)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return CompetitionLeaderboardResponse(
        competition_id=competition_id,
        entries=[
            CompetitionLeaderboardEntryResponse(**e, is_current_user=e["user_id"] == user.id) for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("/{competition_id}/leaderboard/recompute", response_model=CompetitionLeaderboardResponse)
async def recompute_leaderboard(
    competition_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CompetitionLeaderboardResponse:
    """Rebuild the board from participants' attempts and return its first page."""
    try:
        await recompute_competition_leaderboard(db, competition_id)
        await db.commit()
        entries, total = await get_competition_leaderboard(db, competition_id)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return CompetitionLeaderboardResponse(
        competition_id=competition_id,
        entries=[
            CompetitionLeaderboardEntryResponse(**e, is_current_user=e["user_id"] == user.id) for e in entries
        ],
        total=total,
        page=1,
        per_page=50,
    )


@router.get("/{competition_id}/my-standing", response_model=CompetitionStandingResponse)
async def my_standing(
    competition_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CompetitionStandingResponse:
    try:
        standing = await get_competition_standing(db, competition_id, user.id)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return CompetitionStandingResponse(**standing)


@router.get("/{competition_id}/winners", response_model=WinnersResponse)
async def competition_winners(
    competition_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> WinnersResponse:
    """Winners of an ended competition, computed on first request. 400 while it is still running."""
    try:
        winners = await finalize_winners(db, competition_id)
        competition = await get_competition(db, competition_id)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return WinnersResponse(
        competition_id=competition_id,
        prize_pool=competition.prize_pool,
        winners=[WinnerResponse(**serialize_winner(w)) for w in winners],
    )
