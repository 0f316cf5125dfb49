"""
Progression models - per-learner node progress, hearts, profile, applied operations.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, Integer, JSON, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from learnpath.kernel.models.base import Base, TimestampMixin, generate_uuid


class LearnerNodeProgress(Base, TimestampMixin):
    """Per-learner, per-node progress record."""

    __tablename__ = "learner_node_progress"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=generate_uuid,
    )
    learner_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    node_id: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="locked")
    stars: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("learner_id", "node_id", name="uq_learner_node_progress_learner_node"),
    )


class LearnerHeartState(Base, TimestampMixin):
    """Heart counter for one learner. refill_at is set only while depleted."""

    __tablename__ = "learner_heart_state"

    learner_id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    current: Mapped[int] = mapped_column(Integer, nullable=False)
    max_hearts: Mapped[int] = mapped_column(Integer, nullable=False)
    refill_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class LearnerProfile(Base, TimestampMixin):
    """XP, level, streak, daily XP and achievement bookkeeping."""

    __tablename__ = "learner_profiles"

    learner_id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp_in_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mastery_per_topic: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    last_completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    achievements: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    daily_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_xp_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class AppliedOperation(Base):
    """
    Result of an idempotent mutating request, keyed by client operation id.
    A replay with the same id returns the stored result instead of re-applying.
    """

    __tablename__ = "applied_operations"

    operation_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    learner_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    result: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
