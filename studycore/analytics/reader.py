"""
Analytics Reader.

Dashboard and session-feedback reads, always scoped to the caller.

Reads fail open: a store failure is logged and the documented default comes
back wrapped in ``Degraded`` so a broken read degrades a view instead of
breaking it. Ownership violations still raise.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from loguru import logger

from config import get_settings
from studycore.domain import (
    ContentType,
    LearningGap,
    LearningSession,
    SchedulingState,
    SessionResponse,
    SessionSummary,
)
from studycore.errors import StoreFailure, Unauthorized, ValidationError, require_owner
from studycore.results import Degraded, Ok, ReadResult
from studycore.store.repository import LearningRepository

T = TypeVar("T")

# Response-time buckets for the difficulty distribution (milliseconds)
EASY_MAX_MS = 5000
MEDIUM_MAX_MS = 10000


@dataclass
class PerformanceMetrics:
    average_response_time: float = 0.0  # milliseconds
    accuracy_percentage: float = 0.0
    difficulty_distribution: dict[str, int] = field(
        default_factory=lambda: {"easy": 0, "medium": 0, "hard": 0}
    )

    @classmethod
    def from_responses(cls, responses: list[SessionResponse]) -> PerformanceMetrics:
        if not responses:
            return cls()

        distribution = {"easy": 0, "medium": 0, "hard": 0}
        for response in responses:
            if response.response_time <= EASY_MAX_MS:
                distribution["easy"] += 1
            elif response.response_time <= MEDIUM_MAX_MS:
                distribution["medium"] += 1
            else:
                distribution["hard"] += 1

        correct = sum(1 for r in responses if r.is_correct)
        return cls(
            average_response_time=round(sum(r.response_time for r in responses) / len(responses), 1),
            accuracy_percentage=round(correct / len(responses) * 100, 1),
            difficulty_distribution=distribution,
        )


@dataclass
class SessionAnalytics:
    """Everything the session-feedback page shows for one session."""

    session: LearningSession
    responses: list[SessionResponse] = field(default_factory=list)
    learning_gaps: list[LearningGap] = field(default_factory=list)
    scheduling: list[SchedulingState] = field(default_factory=list)
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)


class AnalyticsReader:
    """Fail-open aggregate reads over sessions, responses, gaps and schedules."""

    def __init__(self, repository: LearningRepository):
        self.repository = repository

    def _read(self, action: str, caller_id: str, default: T, fn: Callable[[], T]) -> ReadResult[T]:
        try:
            return Ok(fn())
        except StoreFailure as e:
            logger.warning(f"{action} failed for {caller_id}, returning default: {e}")
            return Degraded(default, e)

    @staticmethod
    def _require_caller(caller_id: str, action: str) -> None:
        if not caller_id:
            raise Unauthorized(caller_id, None, action)

    def session_count(self, caller_id: str, user_id: str | None = None) -> ReadResult[int]:
        """Number of sessions the caller has recorded. Default 0."""
        if user_id is not None:
            require_owner(caller_id, user_id, "session_count")
        self._require_caller(caller_id, "session_count")
        return self._read("session_count", caller_id, 0, lambda: self.repository.count_sessions(caller_id))

    def recent_sessions(
        self,
        caller_id: str,
        limit: int | None = None,
        content_type: ContentType | str | None = None,
    ) -> ReadResult[list[LearningSession]]:
        """Latest sessions by completed_at, optionally for one content type. Default []."""
        self._require_caller(caller_id, "recent_sessions")
        limit = get_settings().analytics_recent_limit if limit is None else limit
        if limit < 0:
            raise ValidationError(f"limit must be >= 0, got {limit}")
        content_type = ContentType.parse(content_type) if content_type is not None else None

        return self._read(
            "recent_sessions",
            caller_id,
            [],
            lambda: self.repository.list_sessions(
                caller_id, limit=limit, content_type=content_type, order_by="completed_at"
            ),
        )

    def active_gaps(self, caller_id: str) -> ReadResult[list[LearningGap]]:
        """Active gaps, highest severity then most recent failure first. Default []."""
        self._require_caller(caller_id, "active_gaps")
        return self._read("active_gaps", caller_id, [], lambda: self.repository.list_active_gaps(caller_id))

    def session_history(self, caller_id: str, limit: int | None = None) -> ReadResult[list[SessionSummary]]:
        """Session summaries by started_at, newest first. Default []."""
        self._require_caller(caller_id, "session_history")
        limit = get_settings().analytics_history_limit if limit is None else limit

        def load() -> list[SessionSummary]:
            sessions = self.repository.list_sessions(caller_id, limit=limit, order_by="started_at")
            return [SessionSummary.from_session(s) for s in sessions]

        return self._read("session_history", caller_id, [], load)

    def session_analytics(self, caller_id: str, session_id: str) -> ReadResult[SessionAnalytics | None]:
        """
        Detailed view of one session.

        Includes its responses in attempt order, the caller's active gaps for
        the session's content type, current scheduling of the reviewed cards
        (cuecard sessions only) and performance metrics.

        A session that does not exist or belongs to someone else reads as None.
        """
        self._require_caller(caller_id, "session_analytics")

        def load() -> SessionAnalytics | None:
            session = self.repository.get_session(session_id)
            if session is None or session.user_id != caller_id:
                return None

            responses = self.repository.list_responses(session.id)
            gaps = self.repository.list_active_gaps(caller_id, session.content_type)

            scheduling: list[SchedulingState] = []
            if session.content_type == ContentType.CUECARD and responses:
                card_ids = list(dict.fromkeys(r.content_id for r in responses))
                scheduling = self.repository.list_schedules(caller_id, card_ids=card_ids)

            return SessionAnalytics(
                session=session,
                responses=responses,
                learning_gaps=gaps,
                scheduling=scheduling,
                performance=PerformanceMetrics.from_responses(responses),
            )

        return self._read("session_analytics", caller_id, None, load)
