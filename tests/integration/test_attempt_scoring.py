"""Attempt lifecycle: answers, completion effects, repeat and daily limits."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from quizarena.db.models import ATTEMPT_COMPLETED, ATTEMPT_IN_PROGRESS, AttemptAnswer, PointsLedgerEntry
from quizarena.errors import (
    AlreadyCompleted,
    AttemptCompleted,
    AttemptNotFound,
    DailyLimitReached,
    InvalidQuestionIndex,
    QuizNotFound,
)
from quizarena.quizzes.attempt_service import (
    complete_attempt,
    get_completion_status,
    start_attempt,
    submit_answer,
)
from tests.factories import NOW, make_quiz, make_user, play_quiz


class TestSubmitAnswer:
    @pytest.mark.asyncio
    async def test_correct_answer_scores_question_points(self, db_session, user):
        quiz = await make_quiz(db_session, count=3, points=10)
        attempt = await start_attempt(db_session, user.id, quiz.id, now=NOW)

        result = await submit_answer(db_session, attempt.id, user.id, 0, 1, time_spent=4)

        assert result.is_correct
        assert result.points_earned == 10
        assert result.correct_option == 1
        assert result.explanation == "Because 1"

    @pytest.mark.asyncio
    async def test_wrong_answer_scores_nothing(self, db_session, user):
        quiz = await make_quiz(db_session)
        attempt = await start_attempt(db_session, user.id, quiz.id, now=NOW)

        result = await submit_answer(db_session, attempt.id, user.id, 0, 2)
        assert not result.is_correct
        assert result.points_earned == 0

    @pytest.mark.asyncio
    async def test_resubmission_overwrites(self, db_session, user):
        quiz = await make_quiz(db_session)
        attempt = await start_attempt(db_session, user.id, quiz.id, now=NOW)

        await submit_answer(db_session, attempt.id, user.id, 0, 0)
        await submit_answer(db_session, attempt.id, user.id, 0, 1)

        answers = (
            await db_session.execute(select(AttemptAnswer).where(AttemptAnswer.attempt_id == attempt.id))
        ).scalars().all()
        assert len(answers) == 1
        assert answers[0].is_correct
        assert attempt.answer_count == 1

    @pytest.mark.asyncio
    async def test_question_index_out_of_range(self, db_session, user):
        quiz = await make_quiz(db_session, count=3)
        attempt = await start_attempt(db_session, user.id, quiz.id, now=NOW)

        with pytest.raises(InvalidQuestionIndex):
            await submit_answer(db_session, attempt.id, user.id, 3, 1)
        with pytest.raises(InvalidQuestionIndex):
            await submit_answer(db_session, attempt.id, user.id, -1, 1)

    @pytest.mark.asyncio
    async def test_other_users_attempt_not_found(self, db_session, user):
        other = await make_user(db_session, "1002", "Other")
        quiz = await make_quiz(db_session)
        attempt = await start_attempt(db_session, user.id, quiz.id, now=NOW)

        with pytest.raises(AttemptNotFound):
            await submit_answer(db_session, attempt.id, other.id, 0, 1)

    @pytest.mark.asyncio
    async def test_answer_after_completion_rejected(self, db_session, user):
        quiz = await make_quiz(db_session)
        result = await play_quiz(db_session, user.id, quiz.id, correct=1, answered=1)

        with pytest.raises(AttemptCompleted):
            await submit_answer(db_session, result.attempt.id, user.id, 1, 1)


class TestCompleteAttempt:
    @pytest.mark.asyncio
    async def test_aggregates(self, db_session, user):
        quiz = await make_quiz(db_session, count=3, points=10)
        result = await play_quiz(db_session, user.id, quiz.id, correct=2, answered=3)
        attempt = result.attempt

        assert attempt.status == ATTEMPT_COMPLETED
        assert attempt.total_correct == 2
        assert attempt.total_points == 20
        assert attempt.answer_count == 3
        assert attempt.accuracy == 66.67
        assert attempt.total_time == 42

    @pytest.mark.asyncio
    async def test_accuracy_over_answered_questions(self, db_session, user):
        quiz = await make_quiz(db_session, count=3)
        result = await play_quiz(db_session, user.id, quiz.id, correct=1, answered=1)
        assert result.attempt.accuracy == 100.0
        assert result.attempt.answer_count == 1

    @pytest.mark.asyncio
    async def test_no_answers(self, db_session, user):
        quiz = await make_quiz(db_session)
        result = await play_quiz(db_session, user.id, quiz.id, correct=0, answered=0)
        assert result.attempt.accuracy == 0.0
        assert result.attempt.total_points == 0
        assert result.grant is not None

    @pytest.mark.asyncio
    async def test_user_totals_updated(self, db_session, user):
        quiz = await make_quiz(db_session, count=3, points=10)
        result = await play_quiz(db_session, user.id, quiz.id, correct=2, answered=3)
        await db_session.refresh(user)

        assert user.total_points == 20
        assert user.daily_points == 20
        assert user.quizzes_completed == 1
        assert user.correct_answers == 2
        assert user.total_questions == 3
        assert user.accuracy == 66.67
        assert user.current_streak == 1
        assert user.longest_streak == 1
        assert result.current_streak == 1

    @pytest.mark.asyncio
    async def test_lifetime_accuracy_uses_running_totals(self, db_session, user):
        first = await make_quiz(db_session, count=4, title="First")
        second = await make_quiz(db_session, count=4, title="Second")
        await play_quiz(db_session, user.id, first.id, correct=4, answered=4)
        await play_quiz(db_session, user.id, second.id, correct=1, answered=4, started=NOW + timedelta(hours=1))
        await db_session.refresh(user)

        assert user.correct_answers == 5
        assert user.total_questions == 8
        assert user.accuracy == 62.5

    @pytest.mark.asyncio
    async def test_complete_twice_fails_without_double_count(self, db_session, user):
        quiz = await make_quiz(db_session, count=3, points=10)
        result = await play_quiz(db_session, user.id, quiz.id, correct=3, answered=3)

        with pytest.raises(AttemptCompleted):
            await complete_attempt(db_session, result.attempt.id, user.id, now=NOW + timedelta(minutes=5))

        await db_session.refresh(user)
        assert user.total_points == 30
        assert user.quizzes_completed == 1
        assert user.correct_answers == 3
        ledger = await db_session.execute(
            select(func.count(PointsLedgerEntry.id)).where(PointsLedgerEntry.user_id == user.id)
        )
        assert ledger.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_streak_continues_next_day(self, db_session, user):
        first = await make_quiz(db_session, title="Monday")
        second = await make_quiz(db_session, title="Tuesday")
        await play_quiz(db_session, user.id, first.id, correct=1, answered=1)
        result = await play_quiz(db_session, user.id, second.id, correct=1, answered=1, started=NOW + timedelta(days=1))

        assert result.current_streak == 2
        assert result.longest_streak == 2

    @pytest.mark.asyncio
    async def test_quiz_stats_running_mean(self, db_session, user):
        other = await make_user(db_session, "1002", "Other")
        quiz = await make_quiz(db_session, count=2)
        await play_quiz(db_session, user.id, quiz.id, correct=2, answered=2)
        await play_quiz(db_session, other.id, quiz.id, correct=0, answered=2)
        await db_session.refresh(quiz)

        assert quiz.attempts == 2
        assert quiz.average_score == pytest.approx(50.0)

    @pytest.mark.asyncio
    async def test_ranks_recomputed_when_enabled(self, db_session, user, settings, monkeypatch):
        monkeypatch.setattr(settings, "rank_recompute_on_completion", True)
        quiz = await make_quiz(db_session)
        result = await play_quiz(db_session, user.id, quiz.id, correct=1, answered=1)
        await db_session.refresh(user)

        assert result.ranks_recomputed
        assert user.rank == 1

    @pytest.mark.asyncio
    async def test_ranks_left_alone_by_default(self, db_session, user):
        quiz = await make_quiz(db_session)
        result = await play_quiz(db_session, user.id, quiz.id, correct=1, answered=1)
        assert not result.ranks_recomputed


class TestStartAttempt:
    @pytest.mark.asyncio
    async def test_open_attempt_is_resumed(self, db_session, user):
        quiz = await make_quiz(db_session)
        first = await start_attempt(db_session, user.id, quiz.id, now=NOW)
        second = await start_attempt(db_session, user.id, quiz.id, now=NOW + timedelta(minutes=1))

        assert first.id == second.id
        assert second.status == ATTEMPT_IN_PROGRESS

    @pytest.mark.asyncio
    async def test_completed_quiz_cannot_be_restarted(self, db_session, user):
        quiz = await make_quiz(db_session)
        result = await play_quiz(db_session, user.id, quiz.id, correct=1, answered=1)

        with pytest.raises(AlreadyCompleted) as exc_info:
            await start_attempt(db_session, user.id, quiz.id, now=NOW + timedelta(days=3))
        assert exc_info.value.attempt_id == result.attempt.id

    @pytest.mark.asyncio
    async def test_daily_quiz_once_per_day(self, db_session, user):
        quiz = await make_quiz(db_session, is_daily=True)
        result = await play_quiz(db_session, user.id, quiz.id, correct=1, answered=1)

        with pytest.raises(DailyLimitReached) as exc_info:
            await start_attempt(db_session, user.id, quiz.id, now=NOW + timedelta(hours=6))
        assert exc_info.value.attempt_id == result.attempt.id

        tomorrow = await start_attempt(db_session, user.id, quiz.id, now=NOW + timedelta(days=1))
        assert tomorrow.id != result.attempt.id

    @pytest.mark.asyncio
    async def test_inactive_quiz_not_found(self, db_session, user):
        quiz = await make_quiz(db_session, is_active=False)
        with pytest.raises(QuizNotFound):
            await start_attempt(db_session, user.id, quiz.id, now=NOW)

    @pytest.mark.asyncio
    async def test_completion_status(self, db_session, user):
        quiz = await make_quiz(db_session, is_daily=True)
        before = await get_completion_status(db_session, user.id, quiz.id, now=NOW)
        assert before["can_attempt"]

        await play_quiz(db_session, user.id, quiz.id, correct=1, answered=1)
        same_day = await get_completion_status(db_session, user.id, quiz.id, now=NOW + timedelta(hours=1))
        next_day = await get_completion_status(db_session, user.id, quiz.id, now=NOW + timedelta(days=1))

        assert same_day["completed"]
        assert not same_day["can_attempt"]
        assert same_day["total_points"] == 10
        assert next_day["can_attempt"]
