"""
Unit tests for ReviewCompletion.

Tests:
- Session, responses, scheduling and gaps applied in one call
- Follow-up failures reported instead of raised
- Session write failures surfaced
- Invalid batches rejected before the session is written
"""

from datetime import timedelta

import pytest

from studycore.domain import ResponseInput, SessionParams
from studycore.errors import StoreFailure, Unauthorized, ValidationError
from studycore.review import ReviewCompletion
from studycore.store.memory import InMemoryRepository


class FlakyScheduleRepository(InMemoryRepository):
    """Schedule writes fail; everything else works."""

    def upsert_schedule(self, state):
        raise StoreFailure("upsert_schedule", "timeout", card_id=state.card_id)


class FailingSessionRepository(InMemoryRepository):
    def insert_session(self, session):
        raise StoreFailure("insert_session", "timeout")


def params(clock, content_type="cuecard", items=2, accuracy=50):
    return SessionParams(
        content_type=content_type,
        total_time=60000,
        items_completed=items,
        accuracy=accuracy,
        started_at=clock.now - timedelta(minutes=1),
        completed_at=clock.now,
    )


def cuecard(clock, content_id, is_correct, ms):
    return ResponseInput(
        content_id=content_id,
        response_data={"feedback": "correct" if is_correct else "incorrect", "timeSpent": ms},
        response_time=ms,
        is_correct=is_correct,
        attempted_at=clock.now,
    )


class TestCompleteSession:
    """Tests for the end-of-session flow."""

    def test_cuecard_session_applies_everything(self, memory_repo, clock):
        """Test scheduling for every card and a gap for the failure."""
        flow = ReviewCompletion(memory_repo, clock=clock)

        report = flow.complete_session(
            "u1", params(clock), [cuecard(clock, "c1", True, 2000), cuecard(clock, "c2", False, 5000)]
        )

        assert report.fully_applied
        assert len(report.responses) == 2
        assert {s.card_id: s.ease_factor for s in report.schedules} == {"c1": 260, "c2": 230}
        assert [g.content_id for g in report.gaps_opened_or_escalated] == ["c2"]
        # Fast cuecard failure doubles the base severity
        assert report.gaps_opened_or_escalated[0].severity == 10
        assert memory_repo.count_sessions("u1") == 1

    def test_correct_answer_recovers_gap(self, memory_repo, clock):
        """Test a later correct answer closes the gap."""
        flow = ReviewCompletion(memory_repo, clock=clock)
        flow.complete_session("u1", params(clock, items=1, accuracy=0), [cuecard(clock, "c1", False, 40000)])
        clock.advance(days=1)

        report = flow.complete_session("u1", params(clock, items=1, accuracy=100), [cuecard(clock, "c1", True, 3000)])

        assert [g.content_id for g in report.gaps_recovered] == ["c1"]
        assert memory_repo.list_active_gaps("u1") == []

    def test_mcq_session_skips_scheduling(self, memory_repo, clock):
        """Test only cuecards are scheduled."""
        flow = ReviewCompletion(memory_repo, clock=clock)
        response = ResponseInput(
            content_id="q1",
            response_data={"selectedOption": "A", "allOptions": ["A", "B"], "correctOption": "B",
                           "timeSpent": 4000, "confidenceLevel": 5},
            response_time=4000,
            is_correct=False,
            attempted_at=clock.now,
        )

        report = flow.complete_session("u1", params(clock, "mcq", items=1, accuracy=0), [response])

        assert report.schedules == []
        assert memory_repo.get_schedule("u1", "q1") is None
        assert report.gaps_opened_or_escalated[0].severity == 10

    def test_scheduling_failure_does_not_block(self, clock):
        """Test a failed follow-up is reported, not raised."""
        repo = FlakyScheduleRepository()
        flow = ReviewCompletion(repo, clock=clock)

        report = flow.complete_session("u1", params(clock, items=1, accuracy=100), [cuecard(clock, "c1", True, 2000)])

        assert not report.fully_applied
        assert report.failed_updates == ["c1"]
        assert len(repo.list_responses(report.session.id)) == 1

    def test_session_write_failure_surfaces(self, clock):
        flow = ReviewCompletion(FailingSessionRepository(), clock=clock)

        with pytest.raises(StoreFailure):
            flow.complete_session("u1", params(clock), [cuecard(clock, "c1", True, 2000)])

    def test_bad_response_leaves_no_session(self, memory_repo, clock):
        """Test a malformed payload rejects the whole session before any write."""
        flow = ReviewCompletion(memory_repo, clock=clock)
        good = ResponseInput(
            content_id="q1",
            response_data={"selectedOption": "A", "allOptions": ["A", "B"], "correctOption": "A", "timeSpent": 3000},
            response_time=3000,
            is_correct=True,
            attempted_at=clock.now,
        )
        bad = ResponseInput(
            content_id="q2",
            response_data={"feedback": "correct", "timeSpent": 3000},
            response_time=3000,
            is_correct=True,
            attempted_at=clock.now,
        )

        with pytest.raises(ValidationError):
            flow.complete_session("u1", params(clock, "mcq", items=2, accuracy=100), [good, bad])

        assert memory_repo.count_sessions("u1") == 0
        assert memory_repo.list_active_gaps("u1") == []

    def test_mcq_confidence_level_drives_severity(self, memory_repo, clock):
        """Test the declared confidenceLevel field feeds the overconfidence factor."""
        flow = ReviewCompletion(memory_repo, clock=clock)

        def wrong_answer(content_id, confidence_level):
            return ResponseInput(
                content_id=content_id,
                response_data={"selectedOption": "A", "allOptions": ["A", "B"], "correctOption": "B",
                               "timeSpent": 40000, "confidenceLevel": confidence_level},
                response_time=40000,
                is_correct=False,
                attempted_at=clock.now,
            )

        report = flow.complete_session(
            "u1", params(clock, "mcq", items=2, accuracy=0), [wrong_answer("sure", 5), wrong_answer("unsure", 2)]
        )

        severities = {g.content_id: g.severity for g in report.gaps_opened_or_escalated}
        assert severities == {"sure": 6, "unsure": 3}

    def test_anonymous_caller_rejected(self, memory_repo, clock):
        flow = ReviewCompletion(memory_repo, clock=clock)

        with pytest.raises(Unauthorized):
            flow.complete_session("", params(clock), [])
