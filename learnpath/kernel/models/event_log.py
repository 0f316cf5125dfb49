"""
Immutable event log for learner activity.

Engine notifications (node completed, hearts depleted/refilled, ...) are
appended here in the same transaction as the state change they describe.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, func, Index, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from learnpath.kernel.models.base import Base, generate_uuid


class EventType(str, Enum):
    """All event types for the learner event log."""

    # Skill tree
    NODE_COMPLETED = "progression.node_completed"
    NODE_UNLOCKED = "progression.node_unlocked"

    # Heart economy
    HEARTS_DEPLETED = "hearts.depleted"
    HEARTS_REFILLED = "hearts.refilled"

    # Quiz sessions
    QUIZ_STARTED = "quiz.started"
    QUIZ_COMPLETED = "quiz.completed"

    # Rewards
    LEVEL_UP = "rewards.level_up"
    ACHIEVEMENT_UNLOCKED = "rewards.achievement_unlocked"
    DAILY_GOAL_MET = "rewards.daily_goal_met"


class EventLog(Base):
    """
    Append-only learner event log.

    Rows are never updated or deleted.
    """

    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )

    event_type: Mapped[EventType] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    # Entity reference (node ids are strings, so this is not a UUID column)
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    entity_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    learner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )

    # Operation that produced the event, when the caller supplied one
    operation_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_event_logs_entity", "entity_type", "entity_id"),
        Index("ix_event_logs_learner_time", "learner_id", "created_at"),
    )

    def __repr__(self) -> str:
        event_type = self.event_type.value if hasattr(self.event_type, "value") else self.event_type
        return f"<EventLog {event_type} {self.entity_type}:{self.entity_id}>"
