"""Quiz and attempt router: /api/v1/quizzes/*, /api/v1/attempts/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.auth.dependencies import get_current_user
from quizarena.database import get_session
from quizarena.db.models import Quiz, User
from quizarena.errors import QuizArenaError
from quizarena.quizzes.attempt_service import (
    complete_attempt,
    get_completion_status,
    start_attempt,
    submit_answer,
)
from quizarena.quizzes.quiz_service import get_questions, get_quiz, list_quizzes, public_question
from quizarena.quizzes.schemas import (
    AnswerRequest,
    AnswerResponse,
    CompleteAttemptResponse,
    CompletionStatusResponse,
    PublicQuestionResponse,
    QuizDetailResponse,
    QuizListResponse,
    QuizSummaryResponse,
    StartAttemptResponse,
)
from quizarena.redis_client import get_redis_optional

router = APIRouter(prefix="/api/v1", tags=["Quizzes"])


def _quiz_summary(quiz: Quiz) -> dict:
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "category": quiz.category,
        "difficulty": quiz.difficulty,
        "time_limit": quiz.time_limit,
        "total_questions": quiz.total_questions,
        "total_points": quiz.total_points,
        "is_daily": quiz.is_daily,
        "competition_id": quiz.competition_id,
        "attempts": quiz.attempts,
        "average_score": quiz.average_score,
    }


async def _public_questions(db: AsyncSession, quiz_id: int) -> list[PublicQuestionResponse]:
    return [PublicQuestionResponse(**public_question(q)) for q in await get_questions(db, quiz_id)]


# ── Catalogue ──


@router.get("/quizzes", response_model=QuizListResponse)
async def get_quizzes(
    category: str | None = Query(None),
    difficulty: str | None = Query(None, pattern="^(easy|medium|hard)$"),
    is_daily: bool | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> QuizListResponse:
    quizzes, total = await list_quizzes(
        db, category=category, difficulty=difficulty, is_daily=is_daily, page=page, per_page=per_page
    )
    return QuizListResponse(
        items=[QuizSummaryResponse(**_quiz_summary(q)) for q in quizzes],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/quizzes/{quiz_id}", response_model=QuizDetailResponse)
async def get_quiz_detail(
    quiz_id: int,
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> QuizDetailResponse:
    """Quiz with its questions, without correctness flags."""
    try:
        quiz = await get_quiz(db, quiz_id)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return QuizDetailResponse(**_quiz_summary(quiz), questions=await _public_questions(db, quiz_id))


# ── Attempts ──


@router.post("/quizzes/{quiz_id}/start", response_model=StartAttemptResponse)
async def start_quiz(
    quiz_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> StartAttemptResponse:
    """Open (or resume) an attempt. 409 when the quiz was already completed."""
    try:
        attempt = await start_attempt(db, user.id, quiz_id)
        quiz = await get_quiz(db, quiz_id)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e

    return StartAttemptResponse(
        attempt_id=attempt.id,
        quiz_id=quiz_id,
        status=attempt.status,
        started_at=attempt.started_at,
        time_limit=quiz.time_limit,
        answered=attempt.answer_count,
        questions=await _public_questions(db, quiz_id),
    )


@router.get("/quizzes/{quiz_id}/completion-status", response_model=CompletionStatusResponse)
async def completion_status(
    quiz_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CompletionStatusResponse:
    try:
        status = await get_completion_status(db, user.id, quiz_id)
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return CompletionStatusResponse(**status)


@router.post("/attempts/{attempt_id}/answer", response_model=AnswerResponse)
async def answer_question(
    attempt_id: int,
    body: AnswerRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AnswerResponse:
    try:
        result = await submit_answer(
            db,
            attempt_id,
            user.id,
            body.question_index,
            body.selected_option,
            body.time_spent,
        )
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return AnswerResponse(
        is_correct=result.is_correct,
        points_earned=result.points_earned,
        correct_option=result.correct_option,
        explanation=result.explanation,
    )


@router.post("/attempts/{attempt_id}/complete", response_model=CompleteAttemptResponse)
async def finish_attempt(
    attempt_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> CompleteAttemptResponse:
    """Finalize the attempt and apply points, level and streak. 409 on a repeat call."""
    try:
        result = await complete_attempt(db, attempt_id, user.id, redis=get_redis_optional())
    except QuizArenaError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e

    attempt = result.attempt
    grant = result.grant
    return CompleteAttemptResponse(
        attempt_id=attempt.id,
        quiz_id=attempt.quiz_id,
        status=attempt.status,
        total_correct=attempt.total_correct,
        answer_count=attempt.answer_count,
        total_points=attempt.total_points,
        total_time=attempt.total_time,
        accuracy=attempt.accuracy,
        points_awarded=grant.amount if grant else 0,
        total_points_balance=grant.total_points if grant else None,
        level=grant.level if grant else None,
        leveled_up=grant.leveled_up if grant else False,
        current_streak=result.current_streak,
        longest_streak=result.longest_streak,
    )
