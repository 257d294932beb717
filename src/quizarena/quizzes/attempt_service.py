"""Attempt scorer: start, answer and complete quiz attempts.

An attempt moves ``in_progress -> completed`` exactly once. Completion is
a compare-and-set on the attempt row; every point, level, streak and
leaderboard effect runs in the same transaction behind that gate, so a
retried request can never apply an attempt's points twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.competition.leaderboard_service import recompute_competition_leaderboard
from quizarena.config import get_settings
from quizarena.db.models import (
    ATTEMPT_COMPLETED,
    ATTEMPT_IN_PROGRESS,
    AttemptAnswer,
    Competition,
    CompetitionParticipant,
    Quiz,
    QuizAttempt,
    User,
)
from quizarena.errors import (
    AlreadyCompleted,
    AttemptCompleted,
    AttemptNotFound,
    DailyLimitReached,
    InvalidQuestionIndex,
    UserNotFound,
)
from quizarena.gamification.accuracy import compute_accuracy
from quizarena.gamification.points_service import SOURCE_QUIZ, PointsGrant, add_points
from quizarena.gamification.streak_service import apply_activity
from quizarena.quizzes.quiz_service import correct_option_index, get_questions, get_quiz
from quizarena.ranking.rank_service import recompute_global_ranks
from quizarena.timeutils import day_bounds, ensure_utc, utcnow, within_window

logger = structlog.get_logger()


@dataclass(frozen=True)
class AnswerResult:
    is_correct: bool
    points_earned: int
    correct_option: int
    explanation: str | None


@dataclass
class CompletionResult:
    attempt: QuizAttempt
    grant: PointsGrant | None
    current_streak: int
    longest_streak: int
    competition_updated: bool = False
    ranks_recomputed: bool = False


def attempt_idempotency_key(attempt_id: int) -> str:
    return f"attempt:{attempt_id}"


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------


async def _find_completed(
    db: AsyncSession,
    user_id: int,
    quiz_id: int,
    since: datetime | None = None,
    until: datetime | None = None,
) -> QuizAttempt | None:
    query = select(QuizAttempt).where(
        QuizAttempt.user_id == user_id,
        QuizAttempt.quiz_id == quiz_id,
        QuizAttempt.status == ATTEMPT_COMPLETED,
    )
    if since is not None:
        query = query.where(QuizAttempt.completed_at >= since)
    if until is not None:
        query = query.where(QuizAttempt.completed_at < until)
    result = await db.execute(query.order_by(QuizAttempt.completed_at.desc()).limit(1))
    return result.scalar_one_or_none()


async def _find_in_progress(db: AsyncSession, user_id: int, quiz_id: int) -> QuizAttempt | None:
    result = await db.execute(
        select(QuizAttempt)
        .where(
            QuizAttempt.user_id == user_id,
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.status == ATTEMPT_IN_PROGRESS,
        )
        .order_by(QuizAttempt.started_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _running_competition_id(db: AsyncSession, quiz: Quiz, now: datetime) -> int | None:
    """The quiz's competition, if its window is open at now."""
    if quiz.competition_id is None:
        return None
    competition = await db.get(Competition, quiz.competition_id)
    if competition is None or not within_window(now, competition.start_date, competition.end_date):
        return None
    return competition.id


async def start_attempt(
    db: AsyncSession,
    user_id: int,
    quiz_id: int,
    now: datetime | None = None,
) -> QuizAttempt:
    """Open an attempt for (user, quiz), or resume the one already open.

    Regular quizzes can be completed once per user. Daily quizzes can be
    completed once per UTC calendar day.
    Attempts on a competition quiz only count towards the competition when
    started while it is running.
    """
    if now is None:
        now = utcnow()

    quiz = await get_quiz(db, quiz_id)
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise UserNotFound()

    if quiz.is_daily:
        start, end = day_bounds(now)
        done = await _find_completed(db, user_id, quiz_id, since=start, until=end)
        if done is not None:
            raise DailyLimitReached(attempt_id=done.id)
    else:
        done = await _find_completed(db, user_id, quiz_id)
        if done is not None:
            raise AlreadyCompleted(attempt_id=done.id)

    existing = await _find_in_progress(db, user_id, quiz_id)
    if existing is not None:
        return existing

    attempt = QuizAttempt(
        user_id=user_id,
        quiz_id=quiz_id,
        competition_id=await _running_competition_id(db, quiz, now),
        status=ATTEMPT_IN_PROGRESS,
        total_correct=0,
        total_points=0,
        total_time=0,
        answer_count=0,
        accuracy=0.0,
        started_at=now,
    )
    db.add(attempt)
    await db.commit()
    await db.refresh(attempt)

    logger.info("attempt_started", attempt_id=attempt.id, user_id=user_id, quiz_id=quiz_id)
    return attempt


# ---------------------------------------------------------------------------
# Answer
# ---------------------------------------------------------------------------


async def _get_owned_attempt(db: AsyncSession, attempt_id: int, user_id: int, *, lock: bool = False) -> QuizAttempt:
    query = select(QuizAttempt).where(QuizAttempt.id == attempt_id)
    if lock:
        query = query.with_for_update()
    attempt = (await db.execute(query)).scalar_one_or_none()
    if attempt is None or attempt.user_id != user_id:
        raise AttemptNotFound()
    return attempt


async def submit_answer(
    db: AsyncSession,
    attempt_id: int,
    user_id: int,
    question_index: int,
    selected_option: int,
    time_spent: int = 0,
) -> AnswerResult:
    """Record (or overwrite) the answer to one question of an open attempt."""
    attempt = await _get_owned_attempt(db, attempt_id, user_id, lock=True)
    if attempt.status != ATTEMPT_IN_PROGRESS:
        raise AttemptCompleted()

    questions = await get_questions(db, attempt.quiz_id)
    if question_index < 0 or question_index >= len(questions):
        raise InvalidQuestionIndex()
    question = questions[question_index]

    correct = correct_option_index(question.options)
    is_correct = selected_option == correct
    points_earned = question.points if is_correct else 0
    time_spent = max(0, time_spent)

    result = await db.execute(
        select(AttemptAnswer).where(
            AttemptAnswer.attempt_id == attempt_id,
            AttemptAnswer.question_index == question_index,
        )
    )
    answer = result.scalar_one_or_none()
    if answer is None:
        db.add(AttemptAnswer(
            attempt_id=attempt_id,
            question_index=question_index,
            selected_option=selected_option,
            is_correct=is_correct,
            time_spent=time_spent,
            points_earned=points_earned,
        ))
    else:
        answer.selected_option = selected_option
        answer.is_correct = is_correct
        answer.time_spent = time_spent
        answer.points_earned = points_earned
    await db.flush()

    count = (
        await db.execute(select(func.count(AttemptAnswer.id)).where(AttemptAnswer.attempt_id == attempt_id))
    ).scalar_one()
    attempt.answer_count = count
    await db.commit()

    return AnswerResult(
        is_correct=is_correct,
        points_earned=points_earned,
        correct_option=correct,
        explanation=question.explanation,
    )


# ---------------------------------------------------------------------------
# Complete
# ---------------------------------------------------------------------------


async def _aggregate_answers(db: AsyncSession, attempt_id: int) -> tuple[int, int, int]:
    """(answer_count, total_correct, total_points) for an attempt."""
    result = await db.execute(
        select(
            func.count(AttemptAnswer.id),
            func.coalesce(func.sum(case((AttemptAnswer.is_correct.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(AttemptAnswer.points_earned), 0),
        ).where(AttemptAnswer.attempt_id == attempt_id)
    )
    count, correct, points = result.one()
    return int(count), int(correct), int(points)


async def _apply_user_totals(db: AsyncSession, user_id: int, correct: int, answered: int, now: datetime) -> float:
    """Bump lifetime counters atomically and re-derive lifetime accuracy."""
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            quizzes_completed=User.quizzes_completed + 1,
            correct_answers=User.correct_answers + correct,
            total_questions=User.total_questions + answered,
            updated_at=now,
        )
        .returning(User.correct_answers, User.total_questions)
        .execution_options(synchronize_session=False)
    )
    row = result.one_or_none()
    if row is None:
        raise UserNotFound()

    accuracy = compute_accuracy(row.correct_answers, row.total_questions)
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(accuracy=accuracy)
        .execution_options(synchronize_session=False)
    )
    return accuracy


async def _apply_quiz_stats(db: AsyncSession, quiz_id: int, accuracy: float) -> None:
    # SET expressions see pre-update values, so this is a running mean.
    await db.execute(
        update(Quiz)
        .where(Quiz.id == quiz_id)
        .values(
            attempts=Quiz.attempts + 1,
            average_score=(Quiz.average_score * Quiz.attempts + accuracy) / (Quiz.attempts + 1),
        )
        .execution_options(synchronize_session=False)
    )


async def _competition_counts(db: AsyncSession, competition_id: int, user_id: int, now: datetime) -> bool:
    """True if the attempt should refresh the competition leaderboard."""
    competition = await db.get(Competition, competition_id)
    if competition is None or not within_window(now, competition.start_date, competition.end_date):
        return False
    joined = await db.execute(
        select(CompetitionParticipant.id).where(
            CompetitionParticipant.competition_id == competition_id,
            CompetitionParticipant.user_id == user_id,
        )
    )
    return joined.scalar_one_or_none() is not None


async def complete_attempt(
    db: AsyncSession,
    attempt_id: int,
    user_id: int,
    now: datetime | None = None,
    redis: Any = None,
) -> CompletionResult:
    """Finalize an attempt and apply all of its effects.

    1. CAS ``in_progress -> completed`` with the attempt aggregates
    2. Ledger grant (idempotency key ``attempt:<id>``), level recompute
    3. Lifetime counters and accuracy, streak
    4. Quiz stats
    5. Competition leaderboard, if the attempt counts towards one
    6. Global ranks, when ``rank_recompute_on_completion`` is enabled

    Raises AttemptCompleted (and changes nothing) if the attempt was
    already completed.
    """
    settings = get_settings()
    if now is None:
        now = utcnow()

    attempt = await _get_owned_attempt(db, attempt_id, user_id)
    if attempt.status != ATTEMPT_IN_PROGRESS:
        raise AttemptCompleted()

    answered, total_correct, total_points = await _aggregate_answers(db, attempt_id)
    accuracy = compute_accuracy(total_correct, answered)
    total_time = max(0, int((ensure_utc(now) - ensure_utc(attempt.started_at)).total_seconds()))

    transition = await db.execute(
        update(QuizAttempt)
        .where(QuizAttempt.id == attempt_id, QuizAttempt.status == ATTEMPT_IN_PROGRESS)
        .values(
            status=ATTEMPT_COMPLETED,
            completed_at=now,
            total_correct=total_correct,
            total_points=total_points,
            total_time=total_time,
            answer_count=answered,
            accuracy=accuracy,
        )
        .execution_options(synchronize_session=False)
    )
    if transition.rowcount == 0:
        raise AttemptCompleted()

    grant = await add_points(
        db,
        user_id,
        total_points,
        SOURCE_QUIZ,
        idempotency_key=attempt_idempotency_key(attempt_id),
        description=f"Quiz {attempt.quiz_id} completed",
        redis=redis,
        now=now,
    )
    await _apply_user_totals(db, user_id, total_correct, answered, now)
    current_streak, longest_streak = await apply_activity(db, user_id, now)
    await _apply_quiz_stats(db, attempt.quiz_id, accuracy)

    competition_updated = False
    if attempt.competition_id is not None and await _competition_counts(
        db, attempt.competition_id, user_id, now
    ):
        await recompute_competition_leaderboard(db, attempt.competition_id)
        competition_updated = True

    ranks_recomputed = False
    if settings.rank_recompute_on_completion:
        await recompute_global_ranks(db, now)
        ranks_recomputed = True

    await db.commit()
    await db.refresh(attempt)

    logger.info(
        "attempt_completed",
        attempt_id=attempt_id,
        user_id=user_id,
        points=total_points,
        accuracy=accuracy,
        streak=current_streak,
    )
    return CompletionResult(
        attempt=attempt,
        grant=grant,
        current_streak=current_streak,
        longest_streak=longest_streak,
        competition_updated=competition_updated,
        ranks_recomputed=ranks_recomputed,
    )


async def get_completion_status(
    db: AsyncSession,
    user_id: int,
    quiz_id: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Whether the user may (re)take the quiz, and their last completed attempt."""
    if now is None:
        now = utcnow()
    quiz = await get_quiz(db, quiz_id)

    if quiz.is_daily:
        start, end = day_bounds(now)
        done = await _find_completed(db, user_id, quiz_id, since=start, until=end)
    else:
        done = await _find_completed(db, user_id, quiz_id)

    return {
        "quiz_id": quiz_id,
        "is_daily": quiz.is_daily,
        "completed": done is not None,
        "can_attempt": done is None,
        "attempt_id": done.id if done else None,
        "completed_at": done.completed_at if done else None,
        "total_points": done.total_points if done else 0,
        "accuracy": done.accuracy if done else 0.0,
    }
