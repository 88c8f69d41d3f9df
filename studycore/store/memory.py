"""
In-memory implementation of the repository port.

Holds everything in dicts guarded by one lock, so every method is atomic
with respect to the others. Returned records are copies.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterable
from datetime import datetime

from studycore.domain import (
    ContentType,
    LearningGap,
    LearningSession,
    SchedulingState,
    SessionResponse,
)
from studycore.errors import NotFound
from studycore.store.repository import ActiveGapConflict, LearningRepository, active_gap_order


class InMemoryRepository(LearningRepository):
    """Dict-backed repository."""

    def __init__(self):
        self._lock = threading.RLock()
        self._schedules: dict[tuple[str, str], SchedulingState] = {}
        self._sessions: dict[str, LearningSession] = {}
        self._responses: dict[str, list[SessionResponse]] = {}
        self._gaps: dict[str, LearningGap] = {}

    # Scheduling

    def get_schedule(self, user_id: str, card_id: str) -> SchedulingState | None:
        with self._lock:
            state = self._schedules.get((user_id, card_id))
            return copy.deepcopy(state)

    def upsert_schedule(self, state: SchedulingState) -> SchedulingState:
        with self._lock:
            self._schedules[(state.user_id, state.card_id)] = copy.deepcopy(state)
            return copy.deepcopy(state)

    def list_schedules(
        self,
        user_id: str,
        *,
        due_before: datetime | None = None,
        card_ids: Iterable[str] | None = None,
        active_only: bool = True,
    ) -> list[SchedulingState]:
        wanted = set(card_ids) if card_ids is not None else None
        with self._lock:
            rows = [
                s
                for (uid, card_id), s in self._schedules.items()
                if uid == user_id
                and (wanted is None or card_id in wanted)
                and (not active_only or s.is_active)
                and (due_before is None or (s.next_review_at is not None and s.next_review_at <= due_before))
            ]
            rows.sort(key=lambda s: (s.next_review_at is None, s.next_review_at or datetime.max))
            return copy.deepcopy(rows)

    # Sessions

    def insert_session(self, session: LearningSession) -> LearningSession:
        with self._lock:
            self._sessions[session.id] = copy.deepcopy(session)
            self._responses.setdefault(session.id, [])
            return copy.deepcopy(session)

    def get_session(self, session_id: str) -> LearningSession | None:
        with self._lock:
            return copy.deepcopy(self._sessions.get(session_id))

    def insert_responses(self, responses: list[SessionResponse]) -> list[SessionResponse]:
        with self._lock:
            # Validate the whole batch before touching storage
            for response in responses:
                if response.session_id not in self._sessions:
                    raise NotFound("session", response.session_id)
            for response in responses:
                self._responses[response.session_id].append(copy.deepcopy(response))
            return copy.deepcopy(responses)

    def list_responses(self, session_id: str) -> list[SessionResponse]:
        with self._lock:
            rows = sorted(self._responses.get(session_id, []), key=lambda r: r.attempted_at)
            return copy.deepcopy(rows)

    def count_sessions(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if s.user_id == user_id)

    def list_sessions(
        self,
        user_id: str,
        *,
        limit: int,
        content_type: ContentType | None = None,
        order_by: str = "completed_at",
    ) -> list[LearningSession]:
        with self._lock:
            rows = [
                s
                for s in self._sessions.values()
                if s.user_id == user_id and (content_type is None or s.content_type == content_type)
            ]
            rows.sort(key=lambda s: getattr(s, order_by), reverse=True)
            return copy.deepcopy(rows[:limit])

    # Learning gaps

    def _find_active(self, user_id: str, content_type: ContentType, content_id: str) -> LearningGap | None:
        for gap in self._gaps.values():
            if (
                gap.is_active
                and gap.user_id == user_id
                and gap.content_type == content_type
                and gap.content_id == content_id
            ):
                return gap
        return None

    def increment_active_gap(
        self,
        user_id: str,
        content_type: ContentType,
        content_id: str,
        now: datetime,
        max_severity: int,
    ) -> LearningGap | None:
        with self._lock:
            gap = self._find_active(user_id, content_type, content_id)
            if gap is None:
                return None
            gap.failure_count += 1
            gap.severity = min(gap.severity + 1, max_severity)
            gap.last_failure_at = now
            return copy.deepcopy(gap)

    def insert_gap(self, gap: LearningGap) -> LearningGap:
        with self._lock:
            if gap.is_active and self._find_active(gap.user_id, gap.content_type, gap.content_id):
                raise ActiveGapConflict(
                    f"Active gap exists for {gap.user_id}/{gap.content_type.value}/{gap.content_id}"
                )
            self._gaps[gap.id] = copy.deepcopy(gap)
            return copy.deepcopy(gap)

    def recover_active_gap(
        self,
        user_id: str,
        content_type: ContentType,
        content_id: str,
        now: datetime,
    ) -> LearningGap | None:
        with self._lock:
            gap = self._find_active(user_id, content_type, content_id)
            if gap is None:
                return None
            gap.is_active = False
            gap.recovered_at = now
            return copy.deepcopy(gap)

    def list_active_gaps(
        self, user_id: str, content_type: ContentType | None = None
    ) -> list[LearningGap]:
        with self._lock:
            rows = [
                g
                for g in self._gaps.values()
                if g.user_id == user_id
                and g.is_active
                and (content_type is None or g.content_type == content_type)
            ]
            rows.sort(key=active_gap_order)
            return copy.deepcopy(rows)

    def list_gap_history(
        self, user_id: str, content_type: ContentType, content_id: str
    ) -> list[LearningGap]:
        with self._lock:
            rows = [
                g
                for g in self._gaps.values()
                if g.user_id == user_id and g.content_type == content_type and g.content_id == content_id
            ]
            rows.sort(key=lambda g: g.last_failure_at, reverse=True)
            return copy.deepcopy(rows)
