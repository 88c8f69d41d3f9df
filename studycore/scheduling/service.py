"""
Cuecard Scheduling Service.

Applies SM-2 review outcomes to the stored per-(user, card) state:
- update_scheduling: one review -> new interval, ease, streak, due date
- get_due_cards / get_review_schedule: what to study now and next
- reset_card_scheduling: start a card over
- get_retention_stats: mastered / struggling counts for a user

Every call checks that the caller owns the user's state. Writes propagate
store errors.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime, timedelta

from loguru import logger

from config import get_settings
from studycore.domain import RetentionStats, SchedulingState, utcnow
from studycore.errors import StoreFailure, ValidationError, require_owner
from studycore.scheduling.sm2 import SM2Config, next_ease_factor, next_interval
from studycore.store.locks import KeyedLocks
from studycore.store.repository import LearningRepository


class SchedulingService:
    """
    Reads and upserts cuecard scheduling state using the SM-2 engine.

    The read-compute-upsert sequence for one (user, card) pair runs under a
    per-key lock, so overlapping reviews of the same card in this process
    apply one after the other instead of overwriting each other.
    """

    def __init__(
        self,
        repository: LearningRepository,
        config: SM2Config | None = None,
        clock: Callable[[], datetime] = utcnow,
        locks: KeyedLocks | None = None,
    ):
        self.repository = repository
        self.config = config or SM2Config.from_settings()
        self._clock = clock
        self._locks = locks or KeyedLocks()

    def initial_state(self, card_id: str, user_id: str) -> SchedulingState:
        """State used for a card that has never been reviewed."""
        return SchedulingState(
            card_id=card_id,
            user_id=user_id,
            interval_days=0,
            ease_factor=self.config.initial_ease,
            consecutive_correct=0,
            review_count=0,
        )

    def update_scheduling(
        self,
        caller_id: str,
        card_id: str,
        user_id: str,
        is_correct: bool,
        response_time_ms: int,
    ) -> SchedulingState:
        """
        Record one review of a card and persist the new schedule.

        Args:
            caller_id: Authenticated user making the call
            card_id: Reviewed cuecard
            user_id: Owner of the scheduling state (must equal caller_id)
            is_correct: Whether the card was answered correctly
            response_time_ms: Time taken to answer

        Returns:
            The stored SchedulingState

        Raises:
            Unauthorized: caller_id != user_id
            ValidationError: missing ids or negative response time
            StoreFailure: persistence failed
        """
        require_owner(caller_id, user_id, "update_scheduling")
        if not card_id:
            raise ValidationError("card_id is required")
        if response_time_ms is None or response_time_ms < 0:
            raise ValidationError(f"response_time_ms must be >= 0, got {response_time_ms}")

        with self._locks.hold((user_id, card_id)):
            current = self.repository.get_schedule(user_id, card_id) or self.initial_state(card_id, user_id)

            now = self._clock()
            interval = next_interval(current.interval_days, current.ease_factor, is_correct, self.config)
            ease = next_ease_factor(current.ease_factor, is_correct, response_time_ms, self.config)

            updated = replace(
                current,
                interval_days=interval,
                ease_factor=ease,
                consecutive_correct=current.consecutive_correct + 1 if is_correct else 0,
                review_count=current.review_count + 1,
                next_review_at=now + timedelta(days=interval),
                last_reviewed_at=now,
                is_active=True,
            )

            try:
                stored = self.repository.upsert_schedule(updated)
            except StoreFailure:
                logger.error(
                    f"Failed to update cuecard scheduling card={card_id} user={user_id} "
                    f"correct={is_correct} response_ms={response_time_ms}"
                )
                raise

        logger.debug(
            f"Scheduled card {card_id} for {user_id}: interval={stored.interval_days}d "
            f"ease={stored.ease_factor} streak={stored.consecutive_correct}"
        )
        return stored

    def get_due_cards(
        self, caller_id: str, user_id: str, now: datetime | None = None
    ) -> list[SchedulingState]:
        """Active cards whose next review is at or before ``now``, most overdue first."""
        require_owner(caller_id, user_id, "get_due_cards")
        return self.repository.list_schedules(user_id, due_before=now or self._clock())

    def get_review_schedule(
        self, caller_id: str, user_id: str, days_ahead: int = 7
    ) -> dict[date, list[SchedulingState]]:
        """
        Upcoming reviews grouped by calendar date (UTC).

        Cards already overdue are grouped under today.
        """
        require_owner(caller_id, user_id, "get_review_schedule")
        if days_ahead < 0:
            raise ValidationError(f"days_ahead must be >= 0, got {days_ahead}")

        now = self._clock()
        horizon = now + timedelta(days=days_ahead)
        schedule: dict[date, list[SchedulingState]] = defaultdict(list)
        for state in self.repository.list_schedules(user_id, due_before=horizon):
            review_day = max(state.next_review_at, now).date()
            schedule[review_day].append(state)
        return dict(sorted(schedule.items()))

    def reset_card_scheduling(self, caller_id: str, card_id: str, user_id: str) -> SchedulingState:
        """Put a card back to its initial parameters, due immediately."""
        require_owner(caller_id, user_id, "reset_card_scheduling")
        if not card_id:
            raise ValidationError("card_id is required")

        with self._locks.hold((user_id, card_id)):
            existing = self.repository.get_schedule(user_id, card_id)
            reset = replace(
                self.initial_state(card_id, user_id),
                review_count=existing.review_count if existing else 0,
                next_review_at=self._clock(),
                last_reviewed_at=existing.last_reviewed_at if existing else None,
            )
            stored = self.repository.upsert_schedule(reset)

        logger.info(f"Reset scheduling for card {card_id} (user {user_id})")
        return stored

    def get_retention_stats(self, caller_id: str, user_id: str) -> RetentionStats:
        """
        Retention figures over all active scheduled cards.

        Mastered: interval at or above the mastery threshold.
        Struggling: ease below the struggling threshold, or a broken streak
        on a card that has been reviewed.
        """
        require_owner(caller_id, user_id, "get_retention_stats")
        settings = get_settings()
        now = self._clock()

        states = self.repository.list_schedules(user_id)
        if not states:
            return RetentionStats()

        mastered = sum(1 for s in states if s.interval_days >= settings.retention_mastered_interval_days)
        struggling = sum(
            1
            for s in states
            if s.ease_factor < settings.retention_struggling_ease
            or (s.review_count > 0 and s.consecutive_correct == 0)
        )
        return RetentionStats(
            total_cards=len(states),
            mastered_cards=mastered,
            struggling_cards=struggling,
            due_cards=sum(1 for s in states if s.is_due(now)),
            average_ease=round(sum(s.ease_factor for s in states) / len(states), 1),
        )
