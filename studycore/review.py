"""
Review completion flow.

What a review UI calls when a session ends:

0. validate the session and every response (nothing written on failure)
1. persist the session summary       (must succeed)
2. persist the response batch         (must succeed)
3. update SM-2 scheduling per cuecard (best-effort)
4. escalate or recover learning gaps  (best-effort)

Steps 3-4 never block the learner: failures are logged and reported back in
the CompletionReport.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from studycore.domain import (
    ContentType,
    LearningGap,
    LearningSession,
    ResponseInput,
    SchedulingState,
    SessionParams,
    SessionResponse,
    utcnow,
)
from studycore.errors import NotFound, StoreFailure, Unauthorized
from studycore.gaps.tracker import GapTracker, initial_severity
from studycore.scheduling.service import SchedulingService
from studycore.sessions.payloads import parse_response_data
from studycore.sessions.recorder import SessionRecorder
from studycore.store.repository import ActiveGapConflict, LearningRepository


@dataclass
class CompletionReport:
    session: LearningSession
    responses: list[SessionResponse] = field(default_factory=list)
    schedules: list[SchedulingState] = field(default_factory=list)
    gaps_opened_or_escalated: list[LearningGap] = field(default_factory=list)
    gaps_recovered: list[LearningGap] = field(default_factory=list)
    failed_updates: list[str] = field(default_factory=list)  # content ids

    @property
    def fully_applied(self) -> bool:
        return not self.failed_updates


class ReviewCompletion:
    """Wires the recorder, scheduler and gap tracker into one end-of-session call."""

    def __init__(
        self,
        repository: LearningRepository,
        clock: Callable[[], datetime] = utcnow,
        recorder: SessionRecorder | None = None,
        scheduler: SchedulingService | None = None,
        gaps: GapTracker | None = None,
    ):
        self.recorder = recorder or SessionRecorder(repository, clock=clock)
        self.scheduler = scheduler or SchedulingService(repository, clock=clock)
        self.gaps = gaps or GapTracker(repository, clock=clock)

    def complete_session(
        self,
        caller_id: str,
        params: SessionParams,
        responses: Sequence[ResponseInput],
    ) -> CompletionReport:
        """
        Record a finished session and apply its follow-up updates.

        Raises:
            Unauthorized, ValidationError, NotFound, StoreFailure: from the
            session or response writes. Follow-up failures do not raise.
        """
        if not caller_id:
            raise Unauthorized(caller_id, None, "complete_session")
        # Reject a bad batch before the session row exists
        self.recorder.validate_batch(params, responses)

        session = self.recorder.create_session(caller_id, params)
        stored = self.recorder.create_session_responses(caller_id, session.id, responses)
        report = CompletionReport(session=session, responses=stored)

        for response in stored:
            if session.content_type == ContentType.CUECARD:
                self._update_schedule(caller_id, response, report)
            self._update_gap(caller_id, session.content_type, response, report)

        if report.failed_updates:
            logger.warning(
                f"Session {session.id}: {len(report.failed_updates)} follow-up update(s) failed "
                f"for {caller_id}"
            )
        return report

    def _update_schedule(self, caller_id: str, response: SessionResponse, report: CompletionReport) -> None:
        try:
            state = self.scheduler.update_scheduling(
                caller_id, response.content_id, caller_id, response.is_correct, response.response_time
            )
        except (StoreFailure, NotFound) as e:
            logger.error(f"Scheduling update skipped for card {response.content_id}: {e}")
            report.failed_updates.append(response.content_id)
            return
        report.schedules.append(state)

    def _update_gap(
        self,
        caller_id: str,
        content_type: ContentType,
        response: SessionResponse,
        report: CompletionReport,
    ) -> None:
        try:
            if response.is_correct:
                gap = self.gaps.recover_gap(caller_id, content_type, response.content_id)
                if gap is not None:
                    report.gaps_recovered.append(gap)
            else:
                payload = parse_response_data(content_type, response.response_data)
                severity = initial_severity(
                    content_type,
                    response.response_time,
                    getattr(payload, "confidence_level", None),
                )
                report.gaps_opened_or_escalated.append(
                    self.gaps.record_failure(
                        caller_id, caller_id, content_type, response.content_id, severity=severity
                    )
                )
        except (StoreFailure, NotFound, ActiveGapConflict) as e:
            logger.error(f"Gap update skipped for {content_type.value}/{response.content_id}: {e}")
            if response.content_id not in report.failed_updates:
                report.failed_updates.append(response.content_id)
