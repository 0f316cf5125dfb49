"""
Event type definitions using Pydantic for validation.

These are the payloads the progression engine emits to its notification sink
and that end up in the learner event log.
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from learnpath.kernel.models.event_log import EventType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """Base event payload structure."""

    model_config = ConfigDict(extra="allow")

    event_type: ClassVar[EventType]
    entity_type: ClassVar[str] = "learner"

    # The engine passes its own clock reading; wall clock otherwise
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def entity_id(self) -> Optional[str]:
        """Entity the event is about; None means the learner itself."""
        return None


# Skill tree events

class NodeEvent(BaseEvent):
    """Skill tree node event payloads."""

    entity_type: ClassVar[str] = "node"

    node_id: str

    def entity_id(self) -> Optional[str]:
        return self.node_id


class NodeCompletedEvent(NodeEvent):
    """A completion that changed progression (first completion or improvement)."""

    event_type: ClassVar[EventType] = EventType.NODE_COMPLETED

    score: int
    stars: int
    best_score: int
    attempts: int
    xp_earned: int = 0
    first_completion: bool = True
    unlocked_node_ids: List[str] = Field(default_factory=list)


class NodeUnlockedEvent(NodeEvent):
    """Node moved from locked to current."""

    event_type: ClassVar[EventType] = EventType.NODE_UNLOCKED

    unlocked_by: str


# Heart events

class HeartsDepletedEvent(BaseEvent):
    """Last heart lost; refill deadline scheduled."""

    event_type: ClassVar[EventType] = EventType.HEARTS_DEPLETED

    refill_at: datetime


class HeartsRefilledEvent(BaseEvent):
    """Hearts reset to max by timer expiry or a passed recovery quiz."""

    event_type: ClassVar[EventType] = EventType.HEARTS_REFILLED

    reason: str  # timer, recovery
    hearts: int


# Quiz events

class QuizEvent(BaseEvent):
    """Quiz session event payloads."""

    entity_type: ClassVar[str] = "quiz_session"

    session_id: str
    topic_id: str
    purpose: str

    def entity_id(self) -> Optional[str]:
        return self.session_id


class QuizStartedEvent(QuizEvent):
    """Quiz session drawn and started."""

    event_type: ClassVar[EventType] = EventType.QUIZ_STARTED

    question_count: int


class QuizCompletedEvent(QuizEvent):
    """Quiz session finished and summarized."""

    event_type: ClassVar[EventType] = EventType.QUIZ_COMPLETED

    score: int
    correct_count: int
    total_questions: int


# Reward events

class LevelUpEvent(BaseEvent):
    """Learner gained one or more levels."""

    event_type: ClassVar[EventType] = EventType.LEVEL_UP

    new_level: int
    levels_gained: int


class AchievementUnlockedEvent(BaseEvent):
    """Achievement earned; its XP reward was added."""

    event_type: ClassVar[EventType] = EventType.ACHIEVEMENT_UNLOCKED
    entity_type: ClassVar[str] = "achievement"

    achievement_id: str
    title: str
    xp_reward: int

    def entity_id(self) -> Optional[str]:
        return self.achievement_id


class DailyGoalMetEvent(BaseEvent):
    """XP earned today reached the daily goal."""

    event_type: ClassVar[EventType] = EventType.DAILY_GOAL_MET

    daily_xp: int
    daily_goal_xp: int
