"""
Adaptive Learning Core Models.

SQLAlchemy models for the four tables owned by the core:
- Cuecard scheduling state (SM-2) per user per card
- Learning sessions and their item-level responses
- Learning gaps (active and recovered)

User, card and content ids reference tables owned by the surrounding schema,
so they are stored as plain text without foreign keys.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studycore.domain import new_id

from .base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class CuecardScheduling(Base):
    """
    SM-2 scheduling state per learner per cuecard.

    Rows are created on the first review and updated in place afterwards;
    they are never deleted (is_active=False retires a card).
    """

    __tablename__ = "cuecard_scheduling"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    card_id: Mapped[str] = mapped_column(Text, nullable=False)

    next_review_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False)
    ease_factor: Mapped[int] = mapped_column(Integer, default=250, nullable=False)  # x100
    review_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    consecutive_correct: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="cuecard_scheduling_user_card_unique"),
        Index("idx_cuecard_scheduling_due", "user_id", "is_active", "next_review_at"),
    )

    def __repr__(self) -> str:
        return f"<CuecardScheduling user={self.user_id} card={self.card_id} interval={self.interval_days}>"


class LearningSessionRow(Base):
    """
    Summary of one completed review session.

    Written once when the session ends; accuracy and items_completed must
    agree with the response rows inserted for it.
    """

    __tablename__ = "learning_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)  # 'cuecard', 'mcq', 'open_question'
    session_config: Mapped[dict] = mapped_column(JSONType, nullable=False)
    total_time: Mapped[int] = mapped_column(Integer, nullable=False)  # milliseconds
    items_completed: Mapped[int] = mapped_column(Integer, nullable=False)
    accuracy: Mapped[int] = mapped_column(Integer, nullable=False)  # percentage 0-100
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    responses: Mapped[list[SessionResponseRow]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_learning_sessions_user_content", "user_id", "content_type"),
        Index("idx_learning_sessions_user_date", "user_id", "completed_at"),
    )

    def __repr__(self) -> str:
        return f"<LearningSessionRow id={self.id} user={self.user_id} type={self.content_type}>"


class SessionResponseRow(Base):
    """Individual item responses within a learning session."""

    __tablename__ = "session_responses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("learning_sessions.id", ondelete="CASCADE"), nullable=False
    )
    content_id: Mapped[str] = mapped_column(Text, nullable=False)  # cuecard / mcq / open question
    response_data: Mapped[dict] = mapped_column(JSONType, nullable=False)
    response_time: Mapped[int] = mapped_column(Integer, nullable=False)  # milliseconds
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    session: Mapped[LearningSessionRow] = relationship(back_populates="responses")

    __table_args__ = (
        Index("idx_session_responses_session_id", "session_id"),
        Index("idx_session_responses_content_performance", "content_id", "attempted_at", "is_correct"),
    )

    def __repr__(self) -> str:
        return f"<SessionResponseRow session={self.session_id} content={self.content_id} correct={self.is_correct}>"


class LearningGapRow(Base):
    """
    Recurring difficulty with one content item.

    At most one active row per (user, content_type, content_id), enforced by
    a partial unique index. Recovered rows stay as history.
    """

    __tablename__ = "learning_gaps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content_id: Mapped[str] = mapped_column(Text, nullable=False)
    concept_id: Mapped[str | None] = mapped_column(Text)
    severity: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-10
    failure_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    last_failure_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    identified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    recovered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index(
            "uq_learning_gaps_active_content",
            "user_id",
            "content_type",
            "content_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_learning_gaps_user_active", "user_id", "is_active"),
        Index("idx_learning_gaps_severity", "severity"),
    )

    def __repr__(self) -> str:
        return f"<LearningGapRow user={self.user_id} content={self.content_id} severity={self.severity} active={self.is_active}>"
