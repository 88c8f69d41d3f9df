"""
Repository port for the adaptive learning core.

Services depend on this interface only. Two adapters implement it:
- InMemoryRepository (studycore.store.memory) for tests and local tooling
- SqlRepository (studycore.store.sql) on SQLAlchemy

Contract notes:
- upsert_schedule is a single idempotent write keyed by (user_id, card_id).
- insert_responses commits every row or none.
- increment_active_gap is one conditional update; it returns None when no
  active gap exists for the key.
- insert_gap raises ActiveGapConflict if an active gap already exists for
  the key.
- Adapters raise StoreFailure for persistence errors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from studycore.domain import (
    ContentType,
    LearningGap,
    LearningSession,
    SchedulingState,
    SessionResponse,
)
from studycore.errors import StudyCoreError


class ActiveGapConflict(StudyCoreError):
    """An active gap already exists for (user, content_type, content_id)."""


class LearningRepository(ABC):
    """Persistence port for scheduling state, sessions and gaps."""

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    @abstractmethod
    def get_schedule(self, user_id: str, card_id: str) -> SchedulingState | None:
        ...

    @abstractmethod
    def upsert_schedule(self, state: SchedulingState) -> SchedulingState:
        ...

    @abstractmethod
    def list_schedules(
        self,
        user_id: str,
        *,
        due_before: datetime | None = None,
        card_ids: Iterable[str] | None = None,
        active_only: bool = True,
    ) -> list[SchedulingState]:
        """Schedules for a user, soonest next_review_at first."""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @abstractmethod
    def insert_session(self, session: LearningSession) -> LearningSession:
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> LearningSession | None:
        ...

    @abstractmethod
    def insert_responses(self, responses: list[SessionResponse]) -> list[SessionResponse]:
        """Insert a batch atomically."""

    @abstractmethod
    def list_responses(self, session_id: str) -> list[SessionResponse]:
        """Responses of a session, oldest attempted_at first."""

    @abstractmethod
    def count_sessions(self, user_id: str) -> int:
        ...

    @abstractmethod
    def list_sessions(
        self,
        user_id: str,
        *,
        limit: int,
        content_type: ContentType | None = None,
        order_by: str = "completed_at",
    ) -> list[LearningSession]:
        """Sessions for a user, newest first by ``order_by`` (completed_at or started_at)."""

    # ------------------------------------------------------------------
    # Learning gaps
    # ------------------------------------------------------------------

    @abstractmethod
    def increment_active_gap(
        self,
        user_id: str,
        content_type: ContentType,
        content_id: str,
        now: datetime,
        max_severity: int,
    ) -> LearningGap | None:
        ...

    @abstractmethod
    def insert_gap(self, gap: LearningGap) -> LearningGap:
        ...

    @abstractmethod
    def recover_active_gap(
        self,
        user_id: str,
        content_type: ContentType,
        content_id: str,
        now: datetime,
    ) -> LearningGap | None:
        ...

    @abstractmethod
    def list_active_gaps(
        self, user_id: str, content_type: ContentType | None = None
    ) -> list[LearningGap]:
        """Active gaps ordered by severity desc, then last_failure_at desc."""

    @abstractmethod
    def list_gap_history(
        self, user_id: str, content_type: ContentType, content_id: str
    ) -> list[LearningGap]:
        """Every gap row for one content item, most recent failure first."""


def active_gap_order(gap: LearningGap) -> tuple:
    """Sort key: worst and most recent problems first."""
    return (-gap.severity, -gap.last_failure_at.timestamp())
