"""Pydantic response models for user statistics."""

from __future__ import annotations

from pydantic import BaseModel


class UserStatsResponse(BaseModel):
    user_id: int
    total_points: int
    monthly_points: int
    weekly_points: int
    daily_points: int
    referral_points: int
    subscription_points: int
    level: int
    level_title: str
    experience: int
    next_level_threshold: int
    rank: int | None
    accuracy: float
    quizzes_completed: int
    correct_answers: int
    total_questions: int
    current_streak: int
    longest_streak: int
    total_referrals: int
    completed_attempts: int
    total_time_spent: int
