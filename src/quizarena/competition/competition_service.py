"""Competition lifecycle: creation, joining, winner finalization."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.config import get_settings
from quizarena.competition.leaderboard_service import recompute_competition_leaderboard
from quizarena.competition.prizes import PRIZE_DISTRIBUTION, calculate_prize, validate_distribution
from quizarena.db.models import (
    Competition,
    CompetitionLeaderboardEntry,
    CompetitionParticipant,
    CompetitionWinner,
    User,
)
from quizarena.errors import (
    AlreadyJoined,
    CompetitionFull,
    CompetitionNotFound,
    InvalidCompetition,
    NotEnded,
    NotInWindow,
    UserNotFound,
)
from quizarena.timeutils import ensure_utc, utcnow, within_window

logger = structlog.get_logger()


async def create_competition(
    db: AsyncSession,
    *,
    name: str,
    start_date: datetime,
    end_date: datetime,
    description: str | None = None,
    max_participants: int | None = None,
    prize_pool: int = 0,
    entry_fee: int = 0,
    difficulty: str = "medium",
    is_published: bool = True,
    prize_distribution: Sequence[float] | None = None,
) -> Competition:
    if ensure_utc(end_date) <= ensure_utc(start_date):
        raise InvalidCompetition("end_date must be after start_date")
    if prize_pool < 0 or entry_fee < 0:
        raise InvalidCompetition("prize_pool and entry_fee must be non-negative")
    if prize_distribution is not None:
        try:
            validate_distribution(prize_distribution)
        except ValueError as e:
            raise InvalidCompetition(str(e)) from e

    now = utcnow()
    competition = Competition(
        name=name,
        description=description,
        start_date=start_date,
        end_date=end_date,
        max_participants=max_participants or get_settings().competition_default_max_participants,
        total_participants=0,
        prize_pool=prize_pool,
        entry_fee=entry_fee,
        difficulty=difficulty,
        is_published=is_published,
        prize_distribution=list(prize_distribution) if prize_distribution is not None else None,
        created_at=now,
        updated_at=now,
    )
    db.add(competition)
    await db.commit()
    await db.refresh(competition)
    logger.info("competition_created", competition_id=competition.id, name=name)
    return competition


async def get_competition(db: AsyncSession, competition_id: int) -> Competition:
    competition = await db.get(Competition, competition_id)
    if competition is None:
        raise CompetitionNotFound()
    return competition


def is_competition_active(competition: Competition, now: datetime | None = None) -> bool:
    """Derived flag: now within [start_date, end_date]."""
    return within_window(now or utcnow(), competition.start_date, competition.end_date)


async def get_active_competitions(db: AsyncSession, now: datetime | None = None) -> list[Competition]:
    if now is None:
        now = utcnow()
    result = await db.execute(
        select(Competition)
        .where(
            Competition.is_published.is_(True),
            Competition.start_date <= now,
            Competition.end_date >= now,
        )
        .order_by(Competition.start_date.asc(), Competition.id.asc())
    )
    return list(result.scalars().all())


async def is_participant(db: AsyncSession, competition_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(CompetitionParticipant.id).where(
            CompetitionParticipant.competition_id == competition_id,
            CompetitionParticipant.user_id == user_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def add_participant(
    db: AsyncSession,
    competition_id: int,
    user_id: int,
    now: datetime | None = None,
) -> CompetitionLeaderboardEntry:
    """Join a running competition.

    Checks, in order: NotInWindow, AlreadyJoined, CompetitionFull. The
    participant count is raised by a guarded UPDATE, so concurrent joins
    can never push it past ``max_participants``.
    """
    if now is None:
        now = utcnow()
    competition = await get_competition(db, competition_id)
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise UserNotFound()

    if not within_window(now, competition.start_date, competition.end_date):
        raise NotInWindow()
    if await is_participant(db, competition_id, user_id):
        raise AlreadyJoined()

    result = await db.execute(
        update(Competition)
        .where(
            Competition.id == competition_id,
            Competition.total_participants < Competition.max_participants,
        )
        .values(total_participants=Competition.total_participants + 1, updated_at=now)
        .returning(Competition.total_participants)
        .execution_options(synchronize_session=False)
    )
    new_count = result.scalar_one_or_none()
    if new_count is None:
        raise CompetitionFull()

    entry = CompetitionLeaderboardEntry(
        competition_id=competition_id,
        user_id=user_id,
        points=0,
        rank=new_count,
        quizzes_completed=0,
        accuracy=0.0,
    )
    try:
        db.add(CompetitionParticipant(competition_id=competition_id, user_id=user_id, joined_at=now))
        db.add(entry)
        await db.flush()
    except IntegrityError as e:
        # A concurrent join for the same user won; drop our increment with it.
        await db.rollback()
        raise AlreadyJoined() from e

    await db.commit()
    await db.refresh(competition)
    logger.info("competition_joined", competition_id=competition_id, user_id=user_id, participants=new_count)
    return entry


# ---------------------------------------------------------------------------
# Winners
# ---------------------------------------------------------------------------


async def get_winners(db: AsyncSession, competition_id: int) -> list[CompetitionWinner]:
    result = await db.execute(
        select(CompetitionWinner)
        .where(CompetitionWinner.competition_id == competition_id)
        .order_by(CompetitionWinner.rank.asc())
    )
    return list(result.scalars().all())


async def finalize_winners(
    db: AsyncSession,
    competition_id: int,
    now: datetime | None = None,
) -> list[CompetitionWinner]:
    """Compute winners once, after the competition has ended.

    The final board is rebuilt first, then the top places are paid out
    from ``prize_distribution`` (or the default table). Calling again
    returns the stored winners unchanged.
    """
    if now is None:
        now = utcnow()
    competition = await get_competition(db, competition_id)

    existing = await get_winners(db, competition_id)
    if existing:
        return existing
    if ensure_utc(now) < ensure_utc(competition.end_date):
        raise NotEnded()

    distribution = competition.prize_distribution or PRIZE_DISTRIBUTION
    ranked = await recompute_competition_leaderboard(db, competition_id)

    winners = [
        CompetitionWinner(
            competition_id=competition_id,
            rank=entry["rank"],
            user_id=entry["user_id"],
            prize=calculate_prize(competition.prize_pool, entry["rank"], distribution),
            awarded_at=now,
        )
        for entry in ranked[: len(distribution)]
    ]
    try:
        db.add_all(winners)
        await db.commit()
    except IntegrityError:
        # Another finalizer stored the winners first.
        await db.rollback()
        logger.info("competition_winners_already_stored", competition_id=competition_id)
        return await get_winners(db, competition_id)

    logger.info(
        "competition_winners_finalized",
        competition_id=competition_id,
        winners=len(winners),
        prize_pool=competition.prize_pool,
    )
    return await get_winners(db, competition_id)


async def finalize_ended_competitions(db: AsyncSession, now: datetime | None = None) -> int:
    """Finalize every ended competition that has no winners yet. Returns how many were finalized."""
    if now is None:
        now = utcnow()
    has_winners = select(CompetitionWinner.id).where(CompetitionWinner.competition_id == Competition.id).exists()
    result = await db.execute(
        select(Competition.id).where(Competition.end_date < now, ~has_winners)
    )
    finalized = 0
    for competition_id in result.scalars().all():
        winners = await finalize_winners(db, competition_id, now)
        if winners:
            finalized += 1
    return finalized


def serialize_winner(winner: CompetitionWinner) -> dict[str, Any]:
    return {"rank": winner.rank, "user_id": winner.user_id, "prize": winner.prize}
