"""
Domain records for the adaptive learning core.

Plain dataclasses shared by the services and the repository adapters:
- SchedulingState: SM-2 state per (user, cuecard)
- LearningSession / SessionResponse: write-once review history
- LearningGap: recurring difficulty with one content item
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from studycore.errors import ValidationError


class ContentType(str, Enum):
    """Kinds of reviewable content."""

    CUECARD = "cuecard"
    MCQ = "mcq"
    OPEN_QUESTION = "open_question"

    @classmethod
    def parse(cls, value: ContentType | str) -> ContentType:
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown content type: {value!r}") from None


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# Scheduling
# =============================================================================


@dataclass
class SchedulingState:
    """SM-2 scheduling state for one card and one user."""

    card_id: str
    user_id: str
    interval_days: int = 0
    ease_factor: int = 250  # x100, so 250 = 2.5
    consecutive_correct: int = 0
    review_count: int = 0
    next_review_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    is_active: bool = True

    def is_due(self, now: datetime | None = None) -> bool:
        if self.next_review_at is None:
            return True
        return (now or utcnow()) >= self.next_review_at

    def days_overdue(self, now: datetime | None = None) -> int:
        """Whole days past next_review_at (0 when not yet due)."""
        if self.next_review_at is None:
            return 0
        delta = (now or utcnow()) - self.next_review_at
        return max(0, delta.days)


@dataclass
class RetentionStats:
    """Aggregate retention figures for one user."""

    total_cards: int = 0
    mastered_cards: int = 0
    struggling_cards: int = 0
    due_cards: int = 0
    average_ease: float = 0.0

    @property
    def mastery_rate(self) -> float:
        """Percentage of scheduled cards that are mastered."""
        if self.total_cards == 0:
            return 0.0
        return round(self.mastered_cards / self.total_cards * 100, 1)


# =============================================================================
# Sessions
# =============================================================================


@dataclass
class LearningSession:
    """Summary of a completed review session."""

    id: str
    user_id: str
    content_type: ContentType
    session_config: dict[str, Any]
    total_time: int  # milliseconds
    items_completed: int
    accuracy: int  # percentage 0-100
    started_at: datetime
    completed_at: datetime
    created_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


@dataclass
class SessionParams:
    """Input for SessionRecorder.create_session."""

    content_type: ContentType | str
    total_time: int
    items_completed: int
    accuracy: int
    started_at: datetime
    completed_at: datetime
    session_config: dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionResponse:
    """One answered item inside a session."""

    id: str
    session_id: str
    content_id: str
    response_data: dict[str, Any]
    response_time: int  # milliseconds
    is_correct: bool
    attempted_at: datetime


@dataclass
class ResponseInput:
    """Input for SessionRecorder.create_session_responses."""

    content_id: str
    response_data: dict[str, Any]
    response_time: int
    is_correct: bool
    attempted_at: datetime


@dataclass
class SessionSummary:
    """Compact session row for history navigation."""

    id: str
    content_type: ContentType
    accuracy: int
    items_completed: int
    total_time: int
    started_at: datetime
    completed_at: datetime | None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @classmethod
    def from_session(cls, session: LearningSession) -> SessionSummary:
        return cls(
            id=session.id,
            content_type=session.content_type,
            accuracy=session.accuracy,
            items_completed=session.items_completed,
            total_time=session.total_time,
            started_at=session.started_at,
            completed_at=session.completed_at,
        )


# =============================================================================
# Learning Gaps
# =============================================================================


@dataclass
class LearningGap:
    """
    A tracked difficulty with one content item.

    Lifecycle: active until recovered; a recovered row is never reopened.
    A later failure on the same content creates a new row.
    """

    id: str
    user_id: str
    content_type: ContentType
    content_id: str
    severity: int
    last_failure_at: datetime
    concept_id: str | None = None
    failure_count: int = 1
    is_active: bool = True
    identified_at: datetime | None = None
    recovered_at: datetime | None = None

    @property
    def is_recovered(self) -> bool:
        return self.recovered_at is not None
