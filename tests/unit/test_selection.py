"""
Unit tests for smart card selection.

Tests:
- Priority tiers (gaps > due reviews > new)
- Gap and review share caps
- Selection metadata
"""

import random
from datetime import timedelta

import pytest

from studycore.domain import ContentType, LearningGap, SchedulingState
from studycore.scheduling.selection import (
    SelectionReason,
    assign_priorities,
    build_review_queue,
    describe_selection,
    gap_priority,
    review_priority,
    select_by_priority,
)


def make_gap(card_id, severity, now, content_type=ContentType.CUECARD):
    return LearningGap(
        id=f"gap-{card_id}",
        user_id="u1",
        content_type=content_type,
        content_id=card_id,
        severity=severity,
        last_failure_at=now,
    )


def make_schedule(card_id, next_review_at):
    return SchedulingState(card_id=card_id, user_id="u1", interval_days=1, next_review_at=next_review_at)


class TestPriorities:
    """Tests for priority assignment."""

    def test_tier_formulas(self):
        """Test gap and review priority ranges."""
        assert gap_priority(1) == 190
        assert gap_priority(10) == 1000
        assert review_priority(0) == 50
        assert review_priority(3) == 65
        assert review_priority(100) == 99

    def test_tiers_ordered(self, clock):
        """Test gap > review > new for every card."""
        now = clock.now
        prioritized = assign_priorities(
            ["gap", "due", "new"],
            [make_gap("gap", 1, now)],
            [make_schedule("due", now - timedelta(days=20))],
            now=now,
            rng=random.Random(7),
        )
        by_id = {c.card_id: c for c in prioritized}

        assert by_id["gap"].reason == SelectionReason.GAP
        assert by_id["due"].reason == SelectionReason.REVIEW
        assert by_id["due"].days_overdue == 20
        assert by_id["new"].reason == SelectionReason.NEW
        assert by_id["gap"].priority > by_id["due"].priority > by_id["new"].priority
        assert 1 <= by_id["new"].priority < 50

    def test_not_yet_due_cards_excluded(self, clock):
        """Test scheduled cards in the future are left out."""
        prioritized = assign_priorities(
            ["later"], [], [make_schedule("later", clock.now + timedelta(days=2))], now=clock.now
        )
        assert prioritized == []

    def test_non_cuecard_gaps_ignored(self, clock):
        """Test that an MCQ gap does not boost a card with the same id."""
        prioritized = assign_priorities(
            ["c1"], [make_gap("c1", 9, clock.now, ContentType.MCQ)], [], now=clock.now
        )
        assert prioritized[0].reason == SelectionReason.NEW


class TestSelectByPriority:
    """Tests for balanced selection."""

    @pytest.fixture
    def pool(self, clock):
        now = clock.now
        gaps = [make_gap(f"g{i}", 5, now) for i in range(10)]
        schedules = [make_schedule(f"r{i}", now - timedelta(days=i)) for i in range(10)]
        cards = [g.content_id for g in gaps] + [s.card_id for s in schedules] + [f"n{i}" for i in range(10)]
        return assign_priorities(cards, gaps, schedules, now=now, rng=random.Random(1))

    def test_gap_and_review_shares_capped(self, pool):
        """Test 40% caps leave room for new cards."""
        selected = select_by_priority(pool, 10, max_gap_ratio=0.4, max_review_ratio=0.4)
        meta = describe_selection(selected, len(pool))

        assert len(selected) == 10
        assert meta.gap_cards == 4
        assert meta.review_cards == 4
        assert meta.new_cards == 2

    def test_most_overdue_reviews_first(self, pool):
        """Test reviews are picked by days overdue."""
        selected = select_by_priority(pool, 10, max_gap_ratio=0.4, max_review_ratio=0.4)
        reviews = [c for c in selected if c.reason == SelectionReason.REVIEW]

        assert [c.card_id for c in reviews] == ["r9", "r8", "r7", "r6"]

    def test_short_pool_returns_everything(self, clock):
        """Test fewer candidates than max_cards."""
        prioritized = assign_priorities(["a", "b"], [], [], now=clock.now)
        assert len(select_by_priority(prioritized, 10)) == 2


class TestBuildReviewQueue:
    def test_gap_heavy_metadata(self, clock):
        """Test metadata reports a gap-focused queue."""
        now = clock.now
        result = build_review_queue(
            ["g1", "g2", "n1"],
            [make_gap("g1", 8, now), make_gap("g2", 3, now)],
            [],
            max_cards=5,
            now=now,
            rng=random.Random(3),
        )

        assert result.card_ids[:2] == ["g1", "g2"]
        assert result.metadata.gap_cards == 2
        assert result.metadata.new_cards == 1
        assert result.metadata.total_available == 3
        assert result.metadata.priority == "gaps"

    def test_duplicates_collapsed(self, clock):
        """Test the same card offered twice is scored once."""
        result = build_review_queue(["n1", "n1"], [], [], max_cards=5, now=clock.now)

        assert result.card_ids == ["n1"]
        assert result.metadata.priority == "new"
