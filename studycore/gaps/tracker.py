"""
Learning Gap Tracker.

Tracks recurring difficulty per (user, content_type, content_id):

    NONE -> ACTIVE        first failure creates a gap
    ACTIVE -> ACTIVE      repeat failure, severity +1 (max 10)
    ACTIVE -> RECOVERED   learner demonstrated mastery

RECOVERED is terminal for a row. A later failure opens a new row, so the
history of earlier gaps is preserved.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from loguru import logger

from config import get_settings
from studycore.domain import ContentType, LearningGap, new_id, utcnow
from studycore.errors import Unauthorized, ValidationError, require_owner
from studycore.store.repository import ActiveGapConflict, LearningRepository

MIN_SEVERITY = 1


def initial_severity(
    content_type: ContentType | str,
    time_spent_ms: int,
    confidence: int | None = None,
) -> int:
    """
    Severity for a first failure, derived from how the learner failed.

    Fast wrong answers count double (the learner thought they knew it);
    for MCQs an over-confident wrong answer doubles again.
    """
    settings = get_settings()
    content_type = ContentType.parse(content_type)
    time_factor = 1 if time_spent_ms > settings.gap_slow_response_ms else 2

    if content_type == ContentType.MCQ:
        confidence_factor = 2 if (confidence or 3) > 3 else 1
        return min(settings.gap_max_severity, 3 * time_factor * confidence_factor)
    return min(settings.gap_max_severity, 5 * time_factor)


class GapTracker:
    """Creates, escalates and recovers learning gaps for the caller."""

    # Retries when a concurrent first failure wins the insert race
    MAX_CONFLICT_RETRIES = 3

    def __init__(self, repository: LearningRepository, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self._clock = clock
        settings = get_settings()
        self.default_severity = settings.gap_default_severity
        self.max_severity = settings.gap_max_severity

    def _clamp(self, severity: int) -> int:
        return max(MIN_SEVERITY, min(severity, self.max_severity))

    def record_failure(
        self,
        caller_id: str,
        user_id: str,
        content_type: ContentType | str,
        content_id: str,
        concept_id: str | None = None,
        severity: int | None = None,
    ) -> LearningGap:
        """
        Record a failed attempt on a content item.

        Escalates the active gap if there is one (failure_count + 1,
        severity + 1 capped at the maximum); otherwise opens a new gap with
        the supplied severity or the default.

        Raises:
            Unauthorized: caller_id != user_id
            ValidationError: bad content type, missing content id or non-integer severity
            StoreFailure: persistence failed
        """
        require_owner(caller_id, user_id, "record_failure")
        content_type = ContentType.parse(content_type)
        if not content_id:
            raise ValidationError("content_id is required")
        if severity is not None and not isinstance(severity, int):
            raise ValidationError(f"severity must be an integer, got {severity!r}")

        for _ in range(self.MAX_CONFLICT_RETRIES):
            now = self._clock()
            gap = self.repository.increment_active_gap(
                user_id, content_type, content_id, now, self.max_severity
            )
            if gap is not None:
                logger.debug(
                    f"Gap escalated {content_type.value}/{content_id} for {user_id}: "
                    f"severity={gap.severity} failures={gap.failure_count}"
                )
                return gap

            new_gap = LearningGap(
                id=new_id(),
                user_id=user_id,
                content_type=content_type,
                content_id=content_id,
                concept_id=concept_id,
                severity=self._clamp(severity if severity is not None else self.default_severity),
                failure_count=1,
                is_active=True,
                last_failure_at=now,
                identified_at=now,
            )
            try:
                created = self.repository.insert_gap(new_gap)
            except ActiveGapConflict:
                # Someone opened the gap between our update and insert; escalate it instead
                continue
            logger.info(
                f"Gap opened {content_type.value}/{content_id} for {user_id} (severity {created.severity})"
            )
            return created

        raise ActiveGapConflict(
            f"Could not record failure for {content_type.value}/{content_id} after "
            f"{self.MAX_CONFLICT_RETRIES} attempts"
        )

    def recover_gap(
        self, caller_id: str, content_type: ContentType | str, content_id: str
    ) -> LearningGap | None:
        """
        Mark the caller's active gap on a content item as recovered.

        Returns None when there is no active gap; that is not an error.
        """
        if not caller_id:
            raise Unauthorized(caller_id, None, "recover_gap")
        content_type = ContentType.parse(content_type)
        if not content_id:
            raise ValidationError("content_id is required")

        gap = self.repository.recover_active_gap(caller_id, content_type, content_id, self._clock())
        if gap is None:
            logger.debug(f"No active gap to recover for {content_type.value}/{content_id} ({caller_id})")
            return None

        logger.info(f"Gap recovered {content_type.value}/{content_id} for {caller_id}")
        return gap

    def gap_history(
        self, caller_id: str, content_type: ContentType | str, content_id: str
    ) -> list[LearningGap]:
        """Every gap row for a content item (active and recovered), newest first."""
        if not caller_id:
            raise Unauthorized(caller_id, None, "gap_history")
        content_type = ContentType.parse(content_type)
        return self.repository.list_gap_history(caller_id, content_type, content_id)
