"""
Smart card selection for review sessions.

Builds a review queue from the cards available to a session, using the
learner's active gaps and scheduling state.

Priority tiers:
- Learning gaps: 190-1000 (100 + severity * 90)
- Due reviews:   50-99   (50 + min(days_overdue * 5, 49))
- New cards:     1-49    (random within the tier)

Balanced selection caps gap and review cards at a share of the session so a
queue is never all remediation.
"""

from __future__ import annotations

import math
import random
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from config import get_settings
from studycore.domain import ContentType, LearningGap, SchedulingState, utcnow


class SelectionReason(str, Enum):
    GAP = "gap"
    REVIEW = "review"
    NEW = "new"


@dataclass
class CardPriority:
    """A candidate card with its priority and why it got it."""

    card_id: str
    priority: float
    reason: SelectionReason
    severity: int | None = None
    days_overdue: int | None = None


@dataclass
class SelectionMetadata:
    gap_cards: int = 0
    review_cards: int = 0
    new_cards: int = 0
    total_available: int = 0
    priority: str = "mixed"  # gaps, reviews, new, mixed


@dataclass
class SelectionResult:
    cards: list[CardPriority] = field(default_factory=list)
    metadata: SelectionMetadata = field(default_factory=SelectionMetadata)

    @property
    def card_ids(self) -> list[str]:
        return [c.card_id for c in self.cards]


def gap_priority(severity: int) -> float:
    return 100 + severity * 90


def review_priority(days_overdue: int) -> float:
    return 50 + min(days_overdue * 5, 49)


def assign_priorities(
    available_card_ids: Iterable[str],
    gaps: Iterable[LearningGap],
    schedules: Iterable[SchedulingState],
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> list[CardPriority]:
    """
    Score every available card.

    Gap cards outrank due reviews, which outrank new (never scheduled) cards.
    Scheduled cards that are not yet due and carry no gap are left out.
    """
    now = now or utcnow()
    rng = rng or random.Random()

    gap_severity = {
        g.content_id: g.severity
        for g in gaps
        if g.is_active and g.content_type == ContentType.CUECARD
    }
    schedule_by_card = {s.card_id: s for s in schedules if s.is_active}

    prioritized: list[CardPriority] = []
    for card_id in available_card_ids:
        if card_id in gap_severity:
            severity = gap_severity[card_id]
            prioritized.append(
                CardPriority(card_id, gap_priority(severity), SelectionReason.GAP, severity=severity)
            )
        elif card_id in schedule_by_card:
            state = schedule_by_card[card_id]
            if state.is_due(now):
                overdue = state.days_overdue(now)
                prioritized.append(
                    CardPriority(card_id, review_priority(overdue), SelectionReason.REVIEW, days_overdue=overdue)
                )
        else:
            prioritized.append(CardPriority(card_id, rng.random() * 49 + 1, SelectionReason.NEW))
    return prioritized


def select_by_priority(
    prioritized: list[CardPriority],
    max_cards: int,
    max_gap_ratio: float | None = None,
    max_review_ratio: float | None = None,
) -> list[CardPriority]:
    """Pick up to ``max_cards`` with gap and review shares capped."""
    settings = get_settings()
    max_gap_ratio = settings.selection_max_gap_ratio if max_gap_ratio is None else max_gap_ratio
    max_review_ratio = settings.selection_max_review_ratio if max_review_ratio is None else max_review_ratio

    ordered = sorted(prioritized, key=lambda c: c.priority, reverse=True)
    gap_cards = [c for c in ordered if c.reason == SelectionReason.GAP]
    review_cards = [c for c in ordered if c.reason == SelectionReason.REVIEW]
    new_cards = [c for c in ordered if c.reason == SelectionReason.NEW]

    max_gaps = min(math.ceil(max_cards * max_gap_ratio), len(gap_cards))
    max_reviews = min(math.ceil(max_cards * max_review_ratio), len(review_cards))

    selected = gap_cards[:max_gaps]
    selected += review_cards[: min(max_reviews, max_cards - len(selected))]
    remaining = max_cards - len(selected)
    if remaining > 0:
        selected += new_cards[:remaining]
    return selected


def describe_selection(selected: list[CardPriority], total_available: int) -> SelectionMetadata:
    gaps = sum(1 for c in selected if c.reason == SelectionReason.GAP)
    reviews = sum(1 for c in selected if c.reason == SelectionReason.REVIEW)
    new = sum(1 for c in selected if c.reason == SelectionReason.NEW)

    priority = "mixed"
    if gaps > reviews and gaps > new:
        priority = "gaps"
    elif reviews > gaps and reviews > new:
        priority = "reviews"
    elif new > 0 and gaps == 0 and reviews == 0:
        priority = "new"

    return SelectionMetadata(
        gap_cards=gaps,
        review_cards=reviews,
        new_cards=new,
        total_available=total_available,
        priority=priority,
    )


def build_review_queue(
    available_card_ids: Iterable[str],
    gaps: Iterable[LearningGap],
    schedules: Iterable[SchedulingState],
    max_cards: int,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> SelectionResult:
    """Score, select and describe a review queue in one call."""
    available = list(dict.fromkeys(available_card_ids))
    prioritized = assign_priorities(available, gaps, schedules, now=now, rng=rng)
    selected = select_by_priority(prioritized, max_cards)
    return SelectionResult(cards=selected, metadata=describe_selection(selected, len(available)))
