"""
Session Recorder.

Persists a completed review session and its item-level responses:
- create_session: one insert of the session summary
- create_session_responses: ownership check, payload validation, then one
  all-or-nothing batch insert

Write errors propagate. try_create_session keeps the older null-returning
contract for callers that prefer it.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime

from loguru import logger

from studycore.domain import (
    ContentType,
    LearningSession,
    ResponseInput,
    SessionParams,
    SessionResponse,
    new_id,
    utcnow,
)
from studycore.errors import NotFound, StoreFailure, Unauthorized, ValidationError
from studycore.sessions.payloads import parse_response_data
from studycore.store.repository import LearningRepository


def _validate_params(params: SessionParams) -> ContentType:
    content_type = ContentType.parse(params.content_type)
    if params.total_time is None or params.total_time < 0:
        raise ValidationError(f"total_time must be >= 0, got {params.total_time}")
    if params.items_completed is None or params.items_completed < 0:
        raise ValidationError(f"items_completed must be >= 0, got {params.items_completed}")
    if params.accuracy is None or not 0 <= params.accuracy <= 100:
        raise ValidationError(f"accuracy must be within 0-100, got {params.accuracy}")
    if params.started_at is None or params.completed_at is None:
        raise ValidationError("started_at and completed_at are required")
    if params.completed_at < params.started_at:
        raise ValidationError("completed_at is before started_at")
    if not isinstance(params.session_config, dict):
        raise ValidationError("session_config must be an object")
    return content_type


def _check_response_shapes(responses: Sequence[ResponseInput]) -> None:
    """Checks that do not need the session row."""
    for index, response in enumerate(responses):
        if not response.content_id:
            raise ValidationError(f"response {index}: content_id is required")
        if response.response_time is None or response.response_time < 0:
            raise ValidationError(f"response {index}: response_time must be >= 0")
        if response.attempted_at is None:
            raise ValidationError(f"response {index}: attempted_at is required")
        if not isinstance(response.response_data, dict):
            raise ValidationError(f"response {index}: response_data must be an object")


def _check_payloads(content_type: ContentType, responses: Sequence[ResponseInput]) -> None:
    for index, response in enumerate(responses):
        try:
            parse_response_data(content_type, response.response_data)
        except ValidationError as e:
            raise ValidationError(f"response {index}: {e}") from e


class SessionRecorder:
    """Writes session summaries and response batches for the caller."""

    def __init__(self, repository: LearningRepository, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self._clock = clock

    def create_session(self, caller_id: str, params: SessionParams) -> LearningSession:
        """
        Insert a completed session owned by the caller.

        Raises:
            Unauthorized: no caller identity
            ValidationError: malformed params
            StoreFailure: persistence failed
        """
        if not caller_id:
            raise Unauthorized(caller_id, None, "create_session")
        content_type = _validate_params(params)

        session = LearningSession(
            id=new_id(),
            user_id=caller_id,
            content_type=content_type,
            session_config=dict(params.session_config),
            total_time=params.total_time,
            items_completed=params.items_completed,
            accuracy=params.accuracy,
            started_at=params.started_at,
            completed_at=params.completed_at,
            created_at=self._clock(),
        )
        try:
            stored = self.repository.insert_session(session)
        except StoreFailure:
            logger.error(f"create_session failed for user={caller_id} type={content_type.value}")
            raise

        logger.info(
            f"Recorded {content_type.value} session {stored.id} for {caller_id}: "
            f"{stored.items_completed} items, {stored.accuracy}% accuracy"
        )
        return stored

    def try_create_session(self, caller_id: str, params: SessionParams) -> LearningSession | None:
        """create_session that returns None on store failure. Callers must check."""
        try:
            return self.create_session(caller_id, params)
        except StoreFailure as e:
            logger.warning(f"Session not recorded for {caller_id}: {e}")
            return None

    def validate_batch(self, params: SessionParams, responses: Sequence[ResponseInput]) -> ContentType:
        """
        Validate a session and its responses without touching the store.

        Lets a caller reject a bad batch before the session row is written.
        """
        content_type = _validate_params(params)
        _check_response_shapes(responses)
        _check_payloads(content_type, responses)
        return content_type

    def create_session_responses(
        self,
        caller_id: str,
        session_id: str,
        responses: Sequence[ResponseInput],
    ) -> list[SessionResponse]:
        """
        Insert every response of a session in one batch.

        The session must exist and belong to the caller, and every payload
        must match the session's content type, before anything is written.
        Either all rows are stored or none are.

        Raises:
            NotFound: unknown session
            Unauthorized: session owned by someone else
            ValidationError: malformed response
            StoreFailure: persistence failed (nothing was stored)
        """
        if not caller_id:
            raise Unauthorized(caller_id, None, "create_session_responses")
        if not session_id:
            raise ValidationError("session_id is required")
        _check_response_shapes(responses)

        session = self.repository.get_session(session_id)
        if session is None:
            raise NotFound("session", session_id)
        if session.user_id != caller_id:
            raise Unauthorized(caller_id, session.user_id, "create_session_responses")

        if not responses:
            return []

        _check_payloads(session.content_type, responses)
        rows = [
            SessionResponse(
                id=new_id(),
                session_id=session_id,
                content_id=response.content_id,
                response_data=dict(response.response_data),
                response_time=response.response_time,
                is_correct=bool(response.is_correct),
                attempted_at=response.attempted_at,
            )
            for response in responses
        ]

        try:
            stored = self.repository.insert_responses(rows)
        except StoreFailure:
            logger.error(
                f"create_session_responses failed session={session_id} user={caller_id} count={len(rows)}"
            )
            raise

        logger.debug(f"Stored {len(stored)} responses for session {session_id}")
        return stored
