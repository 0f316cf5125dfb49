"""
Kernel Layer

Storage primitives shared by the engines:
- Learner progression tables (node progress, hearts, profile, applied operations)
- Immutable Event Log (every engine notification, appended before commit)
"""

from learnpath.kernel.models import (
    AppliedOperation,
    EventLog,
    EventType,
    LearnerHeartState,
    LearnerNodeProgress,
    LearnerProfile,
)

__all__ = [
    "AppliedOperation",
    "EventLog",
    "EventType",
    "LearnerHeartState",
    "LearnerNodeProgress",
    "LearnerProfile",
]
