"""Pydantic request/response models for registration and user profiles."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    external_id: str = Field(min_length=1, max_length=64)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(default="", max_length=100)
    username: str | None = Field(default=None, max_length=50)
    referral_code: str | None = Field(default=None, max_length=16)


class UserResponse(BaseModel):
    id: int
    external_id: str
    first_name: str
    last_name: str
    username: str | None
    referral_code: str | None
    total_points: int
    level: int
    rank: int | None
    current_streak: int
    created_at: datetime | None


class RegisterResponse(BaseModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    referral_bonus_awarded: bool = False
