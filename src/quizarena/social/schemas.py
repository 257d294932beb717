"""Pydantic response models for referral and channel endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class ReferralSummaryResponse(BaseModel):
    referral_code: str | None
    total_referrals: int
    total_points: int


class ChannelSubscriptionResponse(BaseModel):
    channel_id: str
    points_awarded: int
