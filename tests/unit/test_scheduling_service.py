"""
Unit tests for SchedulingService.

Tests:
- Review outcomes applied to stored state
- Ownership checks before any write
- Due cards, review calendar, reset and retention stats
- Serialised updates of the same card
"""

import threading
from datetime import timedelta

import pytest

from studycore.domain import SchedulingState
from studycore.errors import StoreFailure, Unauthorized, ValidationError
from studycore.scheduling.service import SchedulingService
from studycore.store.memory import InMemoryRepository


class FailingUpsertRepository(InMemoryRepository):
    """Repository whose schedule writes always fail."""

    def upsert_schedule(self, state):
        raise StoreFailure("upsert_schedule", "connection lost", user_id=state.user_id)


@pytest.fixture
def service(memory_repo, clock):
    """SchedulingService over the in-memory repository."""
    return SchedulingService(memory_repo, clock=clock)


class TestUpdateScheduling:
    """Tests for applying one review."""

    def test_new_card_fast_correct(self, service, clock):
        """Test first correct answer in 2 s on a new card."""
        state = service.update_scheduling("u1", "c1", "u1", True, 2000)

        assert state.interval_days == 1
        assert state.ease_factor == 260
        assert state.consecutive_correct == 1
        assert state.review_count == 1
        assert state.next_review_at == clock.now + timedelta(days=1)
        assert state.last_reviewed_at == clock.now

    def test_wrong_then_slow_correct(self, service):
        """Test wrong (5 s) then correct (9 s)."""
        first = service.update_scheduling("u1", "c1", "u1", False, 5000)
        assert (first.interval_days, first.ease_factor, first.consecutive_correct) == (1, 230, 0)

        second = service.update_scheduling("u1", "c1", "u1", True, 9000)
        assert (second.interval_days, second.ease_factor, second.consecutive_correct) == (6, 216, 1)
        assert second.review_count == 2

    def test_progression_uses_stored_ease(self, service):
        """Test the third correct review multiplies by the stored ease."""
        service.update_scheduling("u1", "c1", "u1", True, 5000)  # 1 day, 250
        service.update_scheduling("u1", "c1", "u1", True, 5000)  # 6 days, 250
        state = service.update_scheduling("u1", "c1", "u1", True, 5000)

        assert state.interval_days == 15
        assert state.consecutive_correct == 3

    def test_failure_resets_streak(self, service):
        """Test that a failure zeroes consecutive_correct."""
        service.update_scheduling("u1", "c1", "u1", True, 1000)
        service.update_scheduling("u1", "c1", "u1", True, 1000)
        state = service.update_scheduling("u1", "c1", "u1", False, 1000)

        assert state.consecutive_correct == 0
        assert state.interval_days == 1

    def test_other_users_state_rejected(self, service, memory_repo):
        """Test caller != owner raises and writes nothing."""
        with pytest.raises(Unauthorized):
            service.update_scheduling("intruder", "c1", "u1", True, 1000)

        assert memory_repo.get_schedule("u1", "c1") is None

    def test_negative_response_time_rejected(self, service):
        """Test input validation before store access."""
        with pytest.raises(ValidationError):
            service.update_scheduling("u1", "c1", "u1", True, -1)

    def test_store_failure_propagates(self, clock):
        """Test that a failed write raises StoreFailure."""
        service = SchedulingService(FailingUpsertRepository(), clock=clock)

        with pytest.raises(StoreFailure):
            service.update_scheduling("u1", "c1", "u1", True, 1000)

    def test_concurrent_updates_are_serialised(self, memory_repo, clock):
        """Test that parallel reviews of one card all count."""
        service = SchedulingService(memory_repo, clock=clock)
        threads = [
            threading.Thread(target=service.update_scheduling, args=("u1", "c1", "u1", True, 5000))
            for _ in range(10)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        state = memory_repo.get_schedule("u1", "c1")
        assert state.review_count == 10
        assert state.consecutive_correct == 10


class TestDueCards:
    """Tests for due card queries."""

    def test_due_cards_at_or_before_now(self, service, clock):
        """Test that only cards due by now are returned."""
        service.update_scheduling("u1", "c1", "u1", True, 1000)  # due in 1 day
        service.update_scheduling("u1", "c2", "u1", True, 1000)

        assert service.get_due_cards("u1", "u1") == []

        clock.advance(days=1)
        due = service.get_due_cards("u1", "u1")
        assert {s.card_id for s in due} == {"c1", "c2"}

    def test_due_cards_scoped_to_caller(self, service):
        """Test reading someone else's due cards is rejected."""
        with pytest.raises(Unauthorized):
            service.get_due_cards("u2", "u1")

    def test_review_schedule_groups_by_day(self, service, clock):
        """Test the upcoming review calendar."""
        service.update_scheduling("u1", "c1", "u1", True, 1000)  # +1 day
        service.update_scheduling("u1", "c2", "u1", True, 1000)
        service.update_scheduling("u1", "c2", "u1", True, 1000)  # +6 days
        service.reset_card_scheduling("u1", "c3", "u1")  # due now

        schedule = service.get_review_schedule("u1", "u1", days_ahead=7)

        today = clock.now.date()
        assert [s.card_id for s in schedule[today]] == ["c3"]
        assert [s.card_id for s in schedule[today + timedelta(days=1)]] == ["c1"]
        assert [s.card_id for s in schedule[today + timedelta(days=6)]] == ["c2"]
        assert list(schedule) == sorted(schedule)

    def test_review_schedule_overdue_under_today(self, service, clock):
        """Test that overdue cards are grouped under today."""
        service.update_scheduling("u1", "c1", "u1", True, 1000)
        clock.advance(days=3)

        schedule = service.get_review_schedule("u1", "u1", days_ahead=0)

        assert list(schedule) == [clock.now.date()]


class TestResetAndRetention:
    """Tests for reset and retention stats."""

    def test_reset_restores_initial_parameters(self, service, clock):
        """Test reset keeps review_count but restarts the card."""
        for _ in range(3):
            service.update_scheduling("u1", "c1", "u1", True, 1000)

        state = service.reset_card_scheduling("u1", "c1", "u1")

        assert state.interval_days == 0
        assert state.ease_factor == 250
        assert state.consecutive_correct == 0
        assert state.review_count == 3
        assert state.next_review_at == clock.now

    def test_next_review_after_reset_is_one_day(self, service):
        """Test a reset card behaves like a new card."""
        for _ in range(3):
            service.update_scheduling("u1", "c1", "u1", True, 1000)
        service.reset_card_scheduling("u1", "c1", "u1")

        assert service.update_scheduling("u1", "c1", "u1", True, 1000).interval_days == 1

    def test_retention_stats_empty(self, service):
        """Test zeros for a user without scheduled cards."""
        stats = service.get_retention_stats("u1", "u1")

        assert stats.total_cards == 0
        assert stats.mastery_rate == 0.0

    def test_retention_stats_counts(self, service, memory_repo, clock):
        """Test mastered, struggling and due counts."""
        memory_repo.upsert_schedule(
            SchedulingState("mastered", "u1", interval_days=30, ease_factor=270,
                            consecutive_correct=5, review_count=5,
                            next_review_at=clock.now + timedelta(days=30))
        )
        memory_repo.upsert_schedule(
            SchedulingState("low-ease", "u1", interval_days=1, ease_factor=150,
                            consecutive_correct=1, review_count=6,
                            next_review_at=clock.now - timedelta(days=1))
        )
        memory_repo.upsert_schedule(
            SchedulingState("lapsed", "u1", interval_days=1, ease_factor=230,
                            consecutive_correct=0, review_count=2,
                            next_review_at=clock.now + timedelta(days=1))
        )

        stats = service.get_retention_stats("u1", "u1")

        assert stats.total_cards == 3
        assert stats.mastered_cards == 1
        assert stats.struggling_cards == 2
        assert stats.due_cards == 1
        assert stats.average_ease == 216.7
        assert stats.mastery_rate == 33.3
