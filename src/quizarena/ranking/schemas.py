"""Pydantic response models for leaderboard endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class LeaderboardEntryResponse(BaseModel):
    user_id: int
    rank: int
    name: str
    username: str | None
    score: int
    quizzes_completed: int
    accuracy: float
    level: int
    level_title: str
    trend: str
    rank_change: int
    is_current_user: bool = False


class LeaderboardResponse(BaseModel):
    timeframe: str
    entries: list[LeaderboardEntryResponse]
    total: int
    page: int
    per_page: int
    current_user_rank: int | None


class RankHistoryEntryResponse(BaseModel):
    date: datetime
    rank: int
    points: int


class RankHistoryResponse(BaseModel):
    history: list[RankHistoryEntryResponse]


class RankRecomputeResponse(BaseModel):
    total: int
    updated: int
    unchanged: int
    skipped: int
