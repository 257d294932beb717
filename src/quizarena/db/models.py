"""ORM models for users, quizzes, attempts, competitions and point sources.

Column defaults mirror the canonical initial values set by the service
factories (``register_user``, ``create_quiz``, ``create_competition``),
so rows inserted by either path look the same.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from quizarena.db.base import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntId = BigInteger().with_variant(Integer(), "sqlite")
JSONType = JSON().with_variant(JSONB(), "postgresql")

UNRANKED = 9999
ATTEMPT_IN_PROGRESS = "in_progress"
ATTEMPT_COMPLETED = "completed"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Participant account with cumulative point balances and derived stats."""

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_total_points", "total_points"),
        Index("ix_users_rank", "rank"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    username: Mapped[str | None] = mapped_column(String(50), nullable=True)
    referral_code: Mapped[str | None] = mapped_column(String(16), unique=True, nullable=True)
    referred_by_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # --- Point buckets ---
    total_points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    monthly_points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    weekly_points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    daily_points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    referral_points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    subscription_points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # --- Lifetime totals ---
    quizzes_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_referrals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # --- Derived ---
    accuracy: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    experience: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    rank: Mapped[int] = mapped_column(Integer, nullable=False, default=UNRANKED)

    last_active: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or (self.username or "")


class RankHistoryEntry(Base):
    """Global rank snapshot, kept to the most recent N per user."""

    __tablename__ = "rank_history"
    __table_args__ = (Index("ix_rank_history_user_recorded", "user_id", "recorded_at"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    points: Mapped[int] = mapped_column(BigInteger, nullable=False)


class PointsLedgerEntry(Base):
    """Immutable log of point grants with an optional idempotency key."""

    __tablename__ = "points_ledger"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Quizzes
# ---------------------------------------------------------------------------


class Quiz(Base):
    """A quiz; ``total_points``/``total_questions`` are derived from its questions."""

    __tablename__ = "quizzes"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")
    time_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_daily: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    competition_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("competitions.id", ondelete="SET NULL"), nullable=True
    )
    competition_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_by_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class QuizQuestion(Base):
    """One question; ``options`` is ``[{"text": str, "is_correct": bool}, ...]``."""

    __tablename__ = "quiz_questions"
    __table_args__ = (UniqueConstraint("quiz_id", "position", name="quiz_questions_quiz_position_key"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    quiz_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    time_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")


class QuizAttempt(Base):
    """A user's pass through a quiz: in_progress -> completed."""

    __tablename__ = "quiz_attempts"
    __table_args__ = (Index("ix_quiz_attempts_user_quiz_status", "user_id", "quiz_id", "status"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    quiz_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    competition_id: Mapped[int | None] = mapped_column(
        BigIntId, ForeignKey("competitions.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ATTEMPT_IN_PROGRESS)
    total_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    answer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accuracy: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class AttemptAnswer(Base):
    """Latest answer for one question of an attempt (resubmission overwrites)."""

    __tablename__ = "attempt_answers"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_index", name="attempt_answers_attempt_question_key"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    attempt_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False
    )
    question_index: Mapped[int] = mapped_column(Integer, nullable=False)
    selected_option: Mapped[int] = mapped_column(Integer, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Competitions
# ---------------------------------------------------------------------------


class Competition(Base):
    """Time-boxed competition over a set of quizzes and participants."""

    __tablename__ = "competitions"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=5000)
    total_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prize_pool: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    entry_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    prize_distribution: Mapped[list[float] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class CompetitionParticipant(Base):
    """Membership record; survives leaderboard rebuilds."""

    __tablename__ = "competition_participants"
    __table_args__ = (
        UniqueConstraint("competition_id", "user_id", name="comp_participants_comp_user_key"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class CompetitionLeaderboardEntry(Base):
    """Projection of a participant's competition standing."""

    __tablename__ = "competition_leaderboard"
    __table_args__ = (
        UniqueConstraint("competition_id", "user_id", name="comp_leaderboard_comp_user_key"),
        Index("ix_comp_leaderboard_comp_rank", "competition_id", "rank"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    quizzes_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accuracy: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


class CompetitionWinner(Base):
    """Final prize assignment, written once after the competition ends."""

    __tablename__ = "competition_winners"
    __table_args__ = (
        UniqueConstraint("competition_id", "rank", name="comp_winners_comp_rank_key"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    competition_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("competitions.id", ondelete="CASCADE"), nullable=False
    )
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    prize: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    awarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Referrals & channel subscriptions
# ---------------------------------------------------------------------------


class Referral(Base):
    """A completed invite: the referrer earns points once per referred user."""

    __tablename__ = "referrals"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    referrer_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    referred_user_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    referral_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class TelegramChannel(Base):
    """Channel whose subscription is rewarded with points."""

    __tablename__ = "telegram_channels"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    channel_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    channel_username: Mapped[str] = mapped_column(String(64), nullable=False)
    channel_title: Mapped[str] = mapped_column(String(128), nullable=False)
    points_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ChannelSubscription(Base):
    """A rewarded subscription; one per (user, channel)."""

    __tablename__ = "channel_subscriptions"
    __table_args__ = (
        UniqueConstraint("user_id", "channel_id", name="channel_subscriptions_user_channel_key"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subscribed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
