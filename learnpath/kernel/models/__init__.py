"""
Kernel Data Models

SQLAlchemy models for learner progression state and the event log.
"""

from learnpath.kernel.models.base import Base, TimestampMixin, generate_uuid
from learnpath.kernel.models.event_log import EventLog, EventType
from learnpath.kernel.models.progression import (
    AppliedOperation,
    LearnerHeartState,
    LearnerNodeProgress,
    LearnerProfile,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    # Event Log
    "EventLog",
    "EventType",
    # Progression
    "LearnerNodeProgress",
    "LearnerHeartState",
    "LearnerProfile",
    "AppliedOperation",
]
