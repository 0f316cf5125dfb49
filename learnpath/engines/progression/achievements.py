"""
Achievements - milestone rewards checked after every progression change.

Achievements come from the catalog. Each one names a counter of the
AchievementContext and a threshold; once the counter reaches the threshold the
achievement unlocks, exactly once per learner, and its XP reward is added to
the learner's profile.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List

from pydantic import BaseModel, Field

from learnpath.engines.progression.rewards import LearnerProfile
from learnpath.engines.progression.skill_tree import NodeStatus, UserNodeProgress


class AchievementCondition(str, Enum):
    """Counter an achievement is measured against."""

    NODES_COMPLETED = "nodes_completed"
    PERFECT_NODES = "perfect_nodes"
    NODES_COMPLETED_TODAY = "nodes_completed_today"
    STREAK = "streak"
    TOTAL_XP = "total_xp"


class Achievement(BaseModel):
    """A milestone and its reward."""

    id: str
    title: str
    description: str = ""
    condition: AchievementCondition
    threshold: int = Field(ge=1)
    xp_reward: int = Field(default=0, ge=0)


class AchievementContext(BaseModel):
    """Learner counters that achievement conditions are checked against."""

    nodes_completed: int = 0
    perfect_nodes: int = 0
    nodes_completed_today: int = 0
    streak: int = 0
    total_xp: int = 0

    @classmethod
    def build(
        cls,
        progress: Dict[str, UserNodeProgress],
        profile: LearnerProfile,
        now: datetime,
    ) -> "AchievementContext":
        completed = [r for r in progress.values() if r.status == NodeStatus.COMPLETED]
        today = now.date()
        return cls(
            nodes_completed=len(completed),
            perfect_nodes=sum(1 for r in completed if r.stars == 3),
            nodes_completed_today=sum(
                1 for r in completed
                if r.completed_at is not None and r.completed_at.date() == today
            ),
            streak=profile.streak,
            total_xp=profile.xp,
        )

    def value(self, condition: AchievementCondition) -> int:
        return getattr(self, condition.value)


class AchievementChecker:
    """
    Finds the achievements a learner has earned but not yet unlocked.

    Usage:
        checker = AchievementChecker(catalog.achievements)
        context = AchievementContext.build(progress, profile, now)
        for achievement in checker.check(context, profile.achievements):
            ...
    """

    def __init__(self, achievements: Iterable[Achievement] = ()):
        self._achievements: List[Achievement] = list(achievements)
        seen = set()
        for achievement in self._achievements:
            if achievement.id in seen:
                raise ValueError(f"Duplicate achievement id: {achievement.id}")
            seen.add(achievement.id)

    @property
    def achievements(self) -> List[Achievement]:
        return list(self._achievements)

    def __len__(self) -> int:
        return len(self._achievements)

    def check(self, context: AchievementContext, unlocked: Iterable[str]) -> List[Achievement]:
        """Newly earned achievements, in catalog order."""
        done = set(unlocked)
        return [
            achievement for achievement in self._achievements
            if achievement.id not in done
            and context.value(achievement.condition) >= achievement.threshold
        ]
