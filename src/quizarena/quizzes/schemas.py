"""Pydantic request/response models for quiz and attempt endpoints.

Question payloads never carry correctness flags; the correct option is
only revealed in the response to an answer submission.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


# ── Catalogue ──


class QuizSummaryResponse(BaseModel):
    id: int
    title: str
    description: str | None
    category: str
    difficulty: str
    time_limit: int
    total_questions: int
    total_points: int
    is_daily: bool
    competition_id: int | None
    attempts: int
    average_score: float


class QuizListResponse(BaseModel):
    items: list[QuizSummaryResponse]
    total: int
    page: int
    per_page: int


class PublicQuestionResponse(BaseModel):
    index: int
    text: str
    options: list[str]
    points: int
    time_limit: int
    difficulty: str


class QuizDetailResponse(QuizSummaryResponse):
    questions: list[PublicQuestionResponse]


# ── Attempts ──


class StartAttemptResponse(BaseModel):
    attempt_id: int
    quiz_id: int
    status: str
    started_at: datetime
    time_limit: int
    answered: int
    questions: list[PublicQuestionResponse]


class CompletionStatusResponse(BaseModel):
    quiz_id: int
    is_daily: bool
    completed: bool
    can_attempt: bool
    attempt_id: int | None
    completed_at: datetime | None
    total_points: int
    accuracy: float


class AnswerRequest(BaseModel):
    question_index: int = Field(ge=0)
    selected_option: int
    time_spent: int = Field(default=0, ge=0)


class AnswerResponse(BaseModel):
    is_correct: bool
    points_earned: int
    correct_option: int
    explanation: str | None


class CompleteAttemptResponse(BaseModel):
    attempt_id: int
    quiz_id: int
    status: str
    total_correct: int
    answer_count: int
    total_points: int
    total_time: int
    accuracy: float
    points_awarded: int
    total_points_balance: int | None
    level: int | None
    leveled_up: bool
    current_streak: int
    longest_streak: int
