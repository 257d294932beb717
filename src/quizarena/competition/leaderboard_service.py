"""Competition leaderboards: rebuilt from participants' completed attempts.

A competition board is ranked over its own participants only and never
reads or writes the global ``User.rank``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import Select, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.config import get_settings
from quizarena.db.models import (
    ATTEMPT_COMPLETED,
    Competition,
    CompetitionLeaderboardEntry,
    CompetitionParticipant,
    QuizAttempt,
    User,
)
from quizarena.errors import CompetitionNotFound, NotParticipant
from quizarena.gamification.accuracy import compute_accuracy
from quizarena.ranking.ordering import rank_entries
from quizarena.timeutils import utcnow

logger = structlog.get_logger()


async def _active_participant_ids(db: AsyncSession, competition_id: int) -> list[int]:
    result = await db.execute(
        select(CompetitionParticipant.user_id)
        .join(User, User.id == CompetitionParticipant.user_id)
        .where(
            CompetitionParticipant.competition_id == competition_id,
            User.is_active.is_(True),
        )
    )
    return list(result.scalars().all())


def _counted_attempts(query: Select, competition_id: int) -> Select:
    """Restrict to completed attempts finished inside the competition window."""
    return query.join(Competition, Competition.id == QuizAttempt.competition_id).where(
        QuizAttempt.competition_id == competition_id,
        QuizAttempt.status == ATTEMPT_COMPLETED,
        QuizAttempt.completed_at >= Competition.start_date,
        QuizAttempt.completed_at <= Competition.end_date,
    )


async def _attempt_totals(db: AsyncSession, competition_id: int) -> dict[int, dict[str, int]]:
    """Per-user sums over completed attempts that count towards the competition."""
    query = select(
        QuizAttempt.user_id,
        func.count(QuizAttempt.id).label("quizzes"),
        func.coalesce(func.sum(QuizAttempt.total_points), 0).label("points"),
        func.coalesce(func.sum(QuizAttempt.total_correct), 0).label("correct"),
        func.coalesce(func.sum(QuizAttempt.answer_count), 0).label("answered"),
    )
    result = await db.execute(_counted_attempts(query, competition_id).group_by(QuizAttempt.user_id))
    return {
        row.user_id: {
            "quizzes": int(row.quizzes),
            "points": int(row.points),
            "correct": int(row.correct),
            "answered": int(row.answered),
        }
        for row in result.all()
    }


async def recompute_competition_leaderboard(db: AsyncSession, competition_id: int) -> list[dict[str, Any]]:
    """Rebuild the competition's leaderboard wholesale.

    Population: active users who joined the competition. Ordered by the
    global tie-break chain and truncated to ``competition_leaderboard_cap``.
    Existing entries are deleted and replaced. The caller commits.
    """
    if await db.get(Competition, competition_id) is None:
        raise CompetitionNotFound()
    cap = get_settings().competition_leaderboard_cap

    participant_ids = await _active_participant_ids(db, competition_id)
    totals = await _attempt_totals(db, competition_id)

    entries = []
    for user_id in participant_ids:
        t = totals.get(user_id, {"quizzes": 0, "points": 0, "correct": 0, "answered": 0})
        entries.append({
            "user_id": user_id,
            "points": t["points"],
            "quizzes_completed": t["quizzes"],
            "accuracy": compute_accuracy(t["correct"], t["answered"]),
        })
    ranked = rank_entries(entries)[:cap]

    await db.execute(
        delete(CompetitionLeaderboardEntry)
        .where(CompetitionLeaderboardEntry.competition_id == competition_id)
        .execution_options(synchronize_session="fetch")
    )
    db.add_all([
        CompetitionLeaderboardEntry(
            competition_id=competition_id,
            user_id=e["user_id"],
            points=e["points"],
            rank=e["rank"],
            quizzes_completed=e["quizzes_completed"],
            accuracy=e["accuracy"],
        )
        for e in ranked
    ])
    await db.flush()

    logger.info(
        "competition_leaderboard_recomputed",
        competition_id=competition_id,
        participants=len(participant_ids),
        entries=len(ranked),
    )
    return ranked


async def get_competition_leaderboard(
    db: AsyncSession,
    competition_id: int,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[dict[str, Any]], int]:
    """Stored leaderboard page with display names. Returns (entries, total)."""
    if await db.get(Competition, competition_id) is None:
        raise CompetitionNotFound()

    total = (
        await db.execute(
            select(func.count(CompetitionLeaderboardEntry.id))
            .where(CompetitionLeaderboardEntry.competition_id == competition_id)
        )
    ).scalar_one()

    result = await db.execute(
        select(CompetitionLeaderboardEntry, User)
        .join(User, User.id == CompetitionLeaderboardEntry.user_id)
        .where(CompetitionLeaderboardEntry.competition_id == competition_id)
        .order_by(CompetitionLeaderboardEntry.rank.asc(), CompetitionLeaderboardEntry.user_id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .execution_options(populate_existing=True)
    )
    entries = [
        {
            "user_id": entry.user_id,
            "rank": entry.rank,
            "name": user.full_name,
            "username": user.username,
            "points": entry.points,
            "quizzes_completed": entry.quizzes_completed,
            "accuracy": entry.accuracy,
        }
        for entry, user in result.all()
    ]
    return entries, total


async def get_competition_standing(
    db: AsyncSession,
    competition_id: int,
    user_id: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """A participant's standing plus stats over their competition attempts."""
    if now is None:
        now = utcnow()
    competition = await db.get(Competition, competition_id)
    if competition is None:
        raise CompetitionNotFound()

    joined = await db.execute(
        select(CompetitionParticipant.id).where(
            CompetitionParticipant.competition_id == competition_id,
            CompetitionParticipant.user_id == user_id,
        )
    )
    if joined.scalar_one_or_none() is None:
        raise NotParticipant()

    entry = (
        await db.execute(
            select(CompetitionLeaderboardEntry).where(
                CompetitionLeaderboardEntry.competition_id == competition_id,
                CompetitionLeaderboardEntry.user_id == user_id,
            )
        )
    ).scalar_one_or_none()

    attempts = (
        await db.execute(
            _counted_attempts(select(QuizAttempt), competition_id)
            .where(QuizAttempt.user_id == user_id)
            .order_by(QuizAttempt.completed_at.desc())
        )
    ).scalars().all()

    count = len(attempts)
    best = max(attempts, key=lambda a: a.accuracy, default=None)
    return {
        "competition_id": competition_id,
        # None once the user has fallen outside the capped board.
        "rank": entry.rank if entry else None,
        "points": entry.points if entry else 0,
        "quizzes_completed": entry.quizzes_completed if entry else 0,
        "accuracy": entry.accuracy if entry else 0.0,
        "total_participants": competition.total_participants,
        "total_attempts": count,
        "average_score": sum(a.accuracy for a in attempts) / count if count else 0.0,
        "average_time_per_quiz": round(sum(a.total_time for a in attempts) / count) if count else 0,
        "best_attempt_id": best.id if best else None,
    }
