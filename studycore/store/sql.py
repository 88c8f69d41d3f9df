"""
SQLAlchemy implementation of the repository port.

Each method runs in its own transaction via session_scope. SQLAlchemy errors
are logged with the action name and entity ids, then re-raised as
StoreFailure.

Write paths:
- upsert_schedule: INSERT ... ON CONFLICT (user_id, card_id) DO UPDATE
- insert_responses: one transaction for the whole batch
- increment_active_gap: UPDATE ... SET failure_count = failure_count + 1
  WHERE active, so concurrent failures never lose an increment
- insert_gap: guarded by the partial unique index on active gaps
"""

from __future__ import annotations

from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import Engine, case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from studycore.db.database import get_session_factory, session_scope
from studycore.db.models import (
    CuecardScheduling,
    LearningGapRow,
    LearningSessionRow,
    SessionResponseRow,
)
from studycore.domain import (
    ContentType,
    LearningGap,
    LearningSession,
    SchedulingState,
    SessionResponse,
    new_id,
)
from studycore.errors import NotFound, StoreFailure, StudyCoreError
from studycore.store.repository import ActiveGapConflict, LearningRepository


def _aware(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; every stored timestamp is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Row <-> domain conversion
# =============================================================================


def _schedule_from_row(row: CuecardScheduling) -> SchedulingState:
    return SchedulingState(
        card_id=row.card_id,
        user_id=row.user_id,
        interval_days=row.interval_days,
        ease_factor=row.ease_factor,
        consecutive_correct=row.consecutive_correct,
        review_count=row.review_count,
        next_review_at=_aware(row.next_review_at),
        last_reviewed_at=_aware(row.last_reviewed_at),
        is_active=row.is_active,
    )


def _session_from_row(row: LearningSessionRow) -> LearningSession:
    return LearningSession(
        id=row.id,
        user_id=row.user_id,
        content_type=ContentType(row.content_type),
        session_config=row.session_config,
        total_time=row.total_time,
        items_completed=row.items_completed,
        accuracy=row.accuracy,
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
        created_at=_aware(row.created_at),
    )


def _response_from_row(row: SessionResponseRow) -> SessionResponse:
    return SessionResponse(
        id=row.id,
        session_id=row.session_id,
        content_id=row.content_id,
        response_data=row.response_data,
        response_time=row.response_time,
        is_correct=row.is_correct,
        attempted_at=_aware(row.attempted_at),
    )


def _gap_from_row(row: LearningGapRow) -> LearningGap:
    return LearningGap(
        id=row.id,
        user_id=row.user_id,
        content_type=ContentType(row.content_type),
        content_id=row.content_id,
        concept_id=row.concept_id,
        severity=row.severity,
        failure_count=row.failure_count,
        is_active=row.is_active,
        last_failure_at=_aware(row.last_failure_at),
        identified_at=_aware(row.identified_at),
        recovered_at=_aware(row.recovered_at),
    )


class SqlRepository(LearningRepository):
    """Repository backed by a relational database through SQLAlchemy."""

    def __init__(self, engine: Engine | None = None, session_factory: sessionmaker[Session] | None = None):
        """
        Args:
            engine: Engine to bind a private session factory to
            session_factory: Explicit factory (takes precedence over engine)
        """
        if session_factory is not None:
            self._factory = session_factory
        else:
            self._factory = get_session_factory(engine)

    @contextmanager
    def _transaction(self, action: str, **ids: object) -> Generator[Session, None, None]:
        try:
            with session_scope(self._factory) as session:
                yield session
        except StudyCoreError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"{action} failed: {e} {ids}")
            raise StoreFailure(action, str(e), **ids) from e

    def _insert_statement(self, session: Session):
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise StoreFailure("upsert_schedule", f"Upsert not supported on dialect {dialect}")
        return insert

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def get_schedule(self, user_id: str, card_id: str) -> SchedulingState | None:
        with self._transaction("get_schedule", user_id=user_id, card_id=card_id) as session:
            row = session.scalars(
                select(CuecardScheduling).where(
                    CuecardScheduling.user_id == user_id,
                    CuecardScheduling.card_id == card_id,
                )
            ).one_or_none()
            return _schedule_from_row(row) if row else None

    def upsert_schedule(self, state: SchedulingState) -> SchedulingState:
        ids = {"user_id": state.user_id, "card_id": state.card_id}
        with self._transaction("upsert_schedule", **ids) as session:
            insert = self._insert_statement(session)
            values = {
                "interval_days": state.interval_days,
                "ease_factor": state.ease_factor,
                "consecutive_correct": state.consecutive_correct,
                "review_count": state.review_count,
                "next_review_at": state.next_review_at,
                "last_reviewed_at": state.last_reviewed_at,
                "is_active": state.is_active,
            }
            stmt = insert(CuecardScheduling).values(
                id=new_id(), user_id=state.user_id, card_id=state.card_id, **values
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "card_id"],
                set_={**values, "updated_at": func.now()},
            )
            session.execute(stmt)
            row = session.scalars(
                select(CuecardScheduling).where(
                    CuecardScheduling.user_id == state.user_id,
                    CuecardScheduling.card_id == state.card_id,
                )
            ).one()
            return _schedule_from_row(row)

    def list_schedules(
        self,
        user_id: str,
        *,
        due_before: datetime | None = None,
        card_ids: Iterable[str] | None = None,
        active_only: bool = True,
    ) -> list[SchedulingState]:
        with self._transaction("list_schedules", user_id=user_id) as session:
            stmt = select(CuecardScheduling).where(CuecardScheduling.user_id == user_id)
            if active_only:
                stmt = stmt.where(CuecardScheduling.is_active.is_(True))
            if due_before is not None:
                stmt = stmt.where(CuecardScheduling.next_review_at <= due_before)
            if card_ids is not None:
                card_ids = list(card_ids)
                if not card_ids:
                    return []
                stmt = stmt.where(CuecardScheduling.card_id.in_(card_ids))
            stmt = stmt.order_by(CuecardScheduling.next_review_at.asc())
            return [_schedule_from_row(row) for row in session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def insert_session(self, learning_session: LearningSession) -> LearningSession:
        ids = {"session_id": learning_session.id, "user_id": learning_session.user_id}
        with self._transaction("insert_session", **ids) as session:
            row = LearningSessionRow(
                id=learning_session.id,
                user_id=learning_session.user_id,
                content_type=learning_session.content_type.value,
                session_config=learning_session.session_config,
                total_time=learning_session.total_time,
                items_completed=learning_session.items_completed,
                accuracy=learning_session.accuracy,
                started_at=learning_session.started_at,
                completed_at=learning_session.completed_at,
                created_at=learning_session.created_at or datetime.now(timezone.utc),
            )
            session.add(row)
            session.flush()
            return _session_from_row(row)

    def get_session(self, session_id: str) -> LearningSession | None:
        with self._transaction("get_session", session_id=session_id) as session:
            row = session.get(LearningSessionRow, session_id)
            return _session_from_row(row) if row else None

    def insert_responses(self, responses: list[SessionResponse]) -> list[SessionResponse]:
        if not responses:
            return []
        session_ids = sorted({r.session_id for r in responses})
        with self._transaction("insert_responses", session_ids=session_ids, count=len(responses)) as session:
            for session_id in session_ids:
                if session.get(LearningSessionRow, session_id) is None:
                    raise NotFound("session", session_id)
            rows = [
                SessionResponseRow(
                    id=r.id,
                    session_id=r.session_id,
                    content_id=r.content_id,
                    response_data=r.response_data,
                    response_time=r.response_time,
                    is_correct=r.is_correct,
                    attempted_at=r.attempted_at,
                )
                for r in responses
            ]
            session.add_all(rows)
            session.flush()
            return [_response_from_row(row) for row in rows]

    def list_responses(self, session_id: str) -> list[SessionResponse]:
        with self._transaction("list_responses", session_id=session_id) as session:
            stmt = (
                select(SessionResponseRow)
                .where(SessionResponseRow.session_id == session_id)
                .order_by(SessionResponseRow.attempted_at.asc())
            )
            return [_response_from_row(row) for row in session.scalars(stmt)]

    def count_sessions(self, user_id: str) -> int:
        with self._transaction("count_sessions", user_id=user_id) as session:
            stmt = select(func.count()).select_from(LearningSessionRow).where(
                LearningSessionRow.user_id == user_id
            )
            return session.execute(stmt).scalar_one()

    def list_sessions(
        self,
        user_id: str,
        *,
        limit: int,
        content_type: ContentType | None = None,
        order_by: str = "completed_at",
    ) -> list[LearningSession]:
        column = {
            "completed_at": LearningSessionRow.completed_at,
            "started_at": LearningSessionRow.started_at,
        }[order_by]
        with self._transaction("list_sessions", user_id=user_id) as session:
            stmt = select(LearningSessionRow).where(LearningSessionRow.user_id == user_id)
            if content_type is not None:
                stmt = stmt.where(LearningSessionRow.content_type == content_type.value)
            stmt = stmt.order_by(column.desc()).limit(limit)
            return [_session_from_row(row) for row in session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Learning gaps
    # ------------------------------------------------------------------

    def _active_gap_filter(self, user_id: str, content_type: ContentType, content_id: str) -> tuple:
        return (
            LearningGapRow.user_id == user_id,
            LearningGapRow.content_type == content_type.value,
            LearningGapRow.content_id == content_id,
            LearningGapRow.is_active.is_(True),
        )

    def increment_active_gap(
        self,
        user_id: str,
        content_type: ContentType,
        content_id: str,
        now: datetime,
        max_severity: int,
    ) -> LearningGap | None:
        ids = {"user_id": user_id, "content_type": content_type.value, "content_id": content_id}
        with self._transaction("increment_active_gap", **ids) as session:
            where = self._active_gap_filter(user_id, content_type, content_id)
            stmt = (
                update(LearningGapRow)
                .where(*where)
                .values(
                    failure_count=LearningGapRow.failure_count + 1,
                    severity=case(
                        (LearningGapRow.severity + 1 > max_severity, max_severity),
                        else_=LearningGapRow.severity + 1,
                    ),
                    last_failure_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            result = session.execute(stmt)
            if result.rowcount == 0:
                return None
            row = session.scalars(select(LearningGapRow).where(*where)).one()
            return _gap_from_row(row)

    def insert_gap(self, gap: LearningGap) -> LearningGap:
        ids = {"user_id": gap.user_id, "content_type": gap.content_type.value, "content_id": gap.content_id}
        try:
            with self._transaction("insert_gap", **ids) as session:
                row = LearningGapRow(
                    id=gap.id,
                    user_id=gap.user_id,
                    content_type=gap.content_type.value,
                    content_id=gap.content_id,
                    concept_id=gap.concept_id,
                    severity=gap.severity,
                    failure_count=gap.failure_count,
                    last_failure_at=gap.last_failure_at,
                    identified_at=gap.identified_at or gap.last_failure_at,
                    is_active=gap.is_active,
                    recovered_at=gap.recovered_at,
                )
                session.add(row)
                session.flush()
                return _gap_from_row(row)
        except StoreFailure as e:
            if isinstance(e.__cause__, IntegrityError):
                raise ActiveGapConflict(str(e)) from e
            raise

    def recover_active_gap(
        self,
        user_id: str,
        content_type: ContentType,
        content_id: str,
        now: datetime,
    ) -> LearningGap | None:
        ids = {"user_id": user_id, "content_type": content_type.value, "content_id": content_id}
        with self._transaction("recover_active_gap", **ids) as session:
            row = session.scalars(
                select(LearningGapRow)
                .where(*self._active_gap_filter(user_id, content_type, content_id))
                .with_for_update()
            ).one_or_none()
            if row is None:
                return None
            row.is_active = False
            row.recovered_at = now
            row.updated_at = now
            session.flush()
            return _gap_from_row(row)

    def list_active_gaps(
        self, user_id: str, content_type: ContentType | None = None
    ) -> list[LearningGap]:
        with self._transaction("list_active_gaps", user_id=user_id) as session:
            stmt = select(LearningGapRow).where(
                LearningGapRow.user_id == user_id,
                LearningGapRow.is_active.is_(True),
            )
            if content_type is not None:
                stmt = stmt.where(LearningGapRow.content_type == content_type.value)
            stmt = stmt.order_by(LearningGapRow.severity.desc(), LearningGapRow.last_failure_at.desc())
            return [_gap_from_row(row) for row in session.scalars(stmt)]

    def list_gap_history(
        self, user_id: str, content_type: ContentType, content_id: str
    ) -> list[LearningGap]:
        with self._transaction("list_gap_history", user_id=user_id, content_id=content_id) as session:
            stmt = (
                select(LearningGapRow)
                .where(
                    LearningGapRow.user_id == user_id,
                    LearningGapRow.content_type == content_type.value,
                    LearningGapRow.content_id == content_id,
                )
                .order_by(LearningGapRow.last_failure_at.desc())
            )
            return [_gap_from_row(row) for row in session.scalars(stmt)]
