"""Pydantic response models for competition endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


# ── Competitions ──


class CompetitionResponse(BaseModel):
    id: int
    name: str
    description: str | None
    start_date: datetime
    end_date: datetime
    is_active: bool
    total_participants: int
    max_participants: int
    prize_pool: int
    entry_fee: int
    difficulty: str
    is_participant: bool = False


class ActiveCompetitionsResponse(BaseModel):
    competitions: list[CompetitionResponse]


class JoinResponse(BaseModel):
    competition_id: int
    rank: int
    total_participants: int


# ── Leaderboard ──


class CompetitionLeaderboardEntryResponse(BaseModel):
    user_id: int
    rank: int
    name: str
    username: str | None
    points: int
    quizzes_completed: int
    accuracy: float
    is_current_user: bool = False


class CompetitionLeaderboardResponse(BaseModel):
    competition_id: int
    entries: list[CompetitionLeaderboardEntryResponse]
    total: int
    page: int
    per_page: int


class CompetitionStandingResponse(BaseModel):
    competition_id: int
    rank: int | None
    points: int
    quizzes_completed: int
    accuracy: float
    total_participants: int
    total_attempts: int
    average_score: float
    average_time_per_quiz: int
    best_attempt_id: int | None


# ── Winners ──


class WinnerResponse(BaseModel):
    rank: int
    user_id: int
    prize: int


class WinnersResponse(BaseModel):
    competition_id: int
    prize_pool: int
    winners: list[WinnerResponse]
