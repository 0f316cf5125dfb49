"""
Event sourcing infrastructure.

Provides append-only learner event logging with immutable events.
"""

from learnpath.kernel.events.event_store import EventStore
from learnpath.kernel.events.event_types import (
    BaseEvent,
    NodeEvent,
    NodeCompletedEvent,
    NodeUnlockedEvent,
    HeartsDepletedEvent,
    HeartsRefilledEvent,
    QuizEvent,
    QuizStartedEvent,
    QuizCompletedEvent,
    LevelUpEvent,
)

__all__ = [
    "EventStore",
    "BaseEvent",
    "NodeEvent",
    "NodeCompletedEvent",
    "NodeUnlockedEvent",
    "HeartsDepletedEvent",
    "HeartsRefilledEvent",
    "QuizEvent",
    "QuizStartedEvent",
    "QuizCompletedEvent",
    "LevelUpEvent",
]
