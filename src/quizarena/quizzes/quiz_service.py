"""Quiz catalogue: validated construction, derived totals, lookups."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from quizarena.db.models import Quiz, QuizQuestion
from quizarena.errors import InvalidQuizDefinition, QuizNotFound
from quizarena.timeutils import utcnow

logger = structlog.get_logger()

DEFAULT_QUESTION_POINTS = 10
DEFAULT_QUESTION_TIME_LIMIT = 30
DEFAULT_QUIZ_TIME_LIMIT = 300
DIFFICULTIES = ("easy", "medium", "hard")


def validate_question(question: dict[str, Any]) -> None:
    """Reject a question that does not have exactly one correct option."""
    options = question.get("options") or []
    if len(options) < 2:
        raise InvalidQuizDefinition("Each question needs at least two options")
    correct = sum(1 for opt in options if opt.get("is_correct"))
    if correct != 1:
        raise InvalidQuizDefinition("Each question must have exactly one correct option")
    if question.get("points", DEFAULT_QUESTION_POINTS) < 0:
        raise InvalidQuizDefinition("Question points must be non-negative")


def correct_option_index(options: list[dict[str, Any]]) -> int:
    for idx, opt in enumerate(options):
        if opt.get("is_correct"):
            return idx
    return -1


async def create_quiz(
    db: AsyncSession,
    *,
    title: str,
    category: str,
    questions: list[dict[str, Any]],
    description: str | None = None,
    difficulty: str = "medium",
    time_limit: int = DEFAULT_QUIZ_TIME_LIMIT,
    is_daily: bool = False,
    is_active: bool = True,
    competition_id: int | None = None,
    competition_order: int | None = None,
    created_by_id: int | None = None,
) -> Quiz:
    """Create a quiz with its questions and derived totals.

    ``questions`` is a list of dicts with ``text``, ``options``
    (``[{"text": ..., "is_correct": ...}]``) and optional ``points``,
    ``time_limit``, ``explanation``, ``difficulty``.
    """
    if not questions:
        raise InvalidQuizDefinition("A quiz needs at least one question")
    if difficulty not in DIFFICULTIES:
        raise InvalidQuizDefinition(f"Unknown difficulty: {difficulty}")
    for question in questions:
        validate_question(question)

    quiz = Quiz(
        title=title,
        description=description,
        category=category,
        difficulty=difficulty,
        time_limit=time_limit,
        total_questions=0,
        total_points=0,
        is_active=is_active,
        is_daily=is_daily,
        competition_id=competition_id,
        competition_order=competition_order,
        attempts=0,
        average_score=0.0,
        created_by_id=created_by_id,
        created_at=utcnow(),
    )
    db.add(quiz)
    await db.flush()

    for position, question in enumerate(questions):
        db.add(QuizQuestion(
            quiz_id=quiz.id,
            position=position,
            text=question["text"],
            options=[
                {"text": opt["text"], "is_correct": bool(opt.get("is_correct"))}
                for opt in question["options"]
            ],
            explanation=question.get("explanation"),
            points=question.get("points", DEFAULT_QUESTION_POINTS),
            time_limit=question.get("time_limit", DEFAULT_QUESTION_TIME_LIMIT),
            difficulty=question.get("difficulty", difficulty),
        ))
    await db.flush()

    await recompute_quiz_totals(db, quiz.id)
    await db.refresh(quiz)
    logger.info("quiz_created", quiz_id=quiz.id, questions=quiz.total_questions)
    return quiz


async def recompute_quiz_totals(db: AsyncSession, quiz_id: int) -> tuple[int, int]:
    """Re-derive ``total_questions``/``total_points`` from the question rows."""
    result = await db.execute(
        select(func.count(QuizQuestion.id), func.coalesce(func.sum(QuizQuestion.points), 0))
        .where(QuizQuestion.quiz_id == quiz_id)
    )
    count, points = result.one()
    await db.execute(
        update(Quiz)
        .where(Quiz.id == quiz_id)
        .values(total_questions=count, total_points=points)
        .execution_options(synchronize_session=False)
    )
    return int(count), int(points)


async def get_quiz(db: AsyncSession, quiz_id: int, *, active_only: bool = True) -> Quiz:
    quiz = await db.get(Quiz, quiz_id)
    if quiz is None or (active_only and not quiz.is_active):
        raise QuizNotFound()
    return quiz


async def get_questions(db: AsyncSession, quiz_id: int) -> list[QuizQuestion]:
    result = await db.execute(
        select(QuizQuestion)
        .where(QuizQuestion.quiz_id == quiz_id)
        .order_by(QuizQuestion.position)
    )
    return list(result.scalars().all())


async def list_quizzes(
    db: AsyncSession,
    *,
    category: str | None = None,
    difficulty: str | None = None,
    is_daily: bool | None = None,
    page: int = 1,
    per_page: int = 10,
) -> tuple[list[Quiz], int]:
    """Active quizzes, newest first. Returns (page items, total count)."""
    conditions = [Quiz.is_active.is_(True)]
    if category:
        conditions.append(Quiz.category == category)
    if difficulty:
        conditions.append(Quiz.difficulty == difficulty)
    if is_daily is not None:
        conditions.append(Quiz.is_daily.is_(is_daily))

    total = (await db.execute(select(func.count(Quiz.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Quiz)
        .where(*conditions)
        .order_by(Quiz.created_at.desc(), Quiz.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


def public_question(question: QuizQuestion) -> dict[str, Any]:
    """Question as shown to a player: option texts only, no correctness flags."""
    return {
        "index": question.position,
        "text": question.text,
        "options": [opt["text"] for opt in question.options],
        "points": question.points,
        "time_limit": question.time_limit,
        "difficulty": question.difficulty,
    }
