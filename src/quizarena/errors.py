"""Domain errors raised by the scoring and ranking services.

All are caller-correctable. Routers translate them into HTTP responses
using ``status_code``; the services never retry on their own.
"""

from __future__ import annotations


class QuizArenaError(ValueError):
    """Base class for domain errors."""

    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


# --- Lookup failures ---


class UserNotFound(QuizArenaError):
    status_code = 404
    default_message = "User not found"


class QuizNotFound(QuizArenaError):
    status_code = 404
    default_message = "Quiz not available"


class AttemptNotFound(QuizArenaError):
    status_code = 404
    default_message = "Attempt not found"


class CompetitionNotFound(QuizArenaError):
    status_code = 404
    default_message = "Competition not found"


class ChannelNotFound(QuizArenaError):
    status_code = 404
    default_message = "Channel not found or inactive"


# --- Attempt scorer ---


class AlreadyCompleted(QuizArenaError):
    status_code = 409
    default_message = "You have already completed this quiz"

    def __init__(self, message: str | None = None, attempt_id: int | None = None) -> None:
        super().__init__(message)
        self.attempt_id = attempt_id


class DailyLimitReached(QuizArenaError):
    status_code = 409
    default_message = "You have already completed this daily quiz today. Try again tomorrow"

    def __init__(self, message: str | None = None, attempt_id: int | None = None) -> None:
        super().__init__(message)
        self.attempt_id = attempt_id


class AttemptCompleted(QuizArenaError):
    status_code = 409
    default_message = "Attempt already completed"


class InvalidQuestionIndex(QuizArenaError):
    default_message = "Invalid question index"


class InvalidQuizDefinition(QuizArenaError):
    default_message = "Invalid quiz definition"


# --- Point ledger ---


class InvalidAmount(QuizArenaError):
    default_message = "Point amount must be non-negative"


class InvalidSource(QuizArenaError):
    default_message = "Unknown point source"


# --- Competitions ---


class CompetitionFull(QuizArenaError):
    status_code = 409
    default_message = "Competition is full"


class AlreadyJoined(QuizArenaError):
    status_code = 409
    default_message = "You have already joined this competition"


class NotInWindow(QuizArenaError):
    default_message = "Competition is not running"


class NotEnded(QuizArenaError):
    default_message = "Competition has not ended yet"


class NotParticipant(QuizArenaError):
    default_message = "You are not participating in this competition"


class InvalidCompetition(QuizArenaError):
    default_message = "Invalid competition definition"


# --- Registration / referrals ---


class UserAlreadyExists(QuizArenaError):
    status_code = 409
    default_message = "User is already registered"


class InvalidReferralCode(QuizArenaError):
    default_message = "Invalid referral code"
