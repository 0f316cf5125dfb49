"""
Rewards - XP, levels, daily streak, daily XP goal, achievements and topic
mastery for a learner.
"""

import math
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from learnpath.engines.progression.mastery_scorer import MasteryScorer


def xp_for_level(level: int) -> int:
    """XP needed to go from `level` to the next one: floor(100 * level^1.5)."""
    return int(math.floor(100 * math.pow(level, 1.5)))


class LearnerProfile(BaseModel):
    """
    Learner-wide reward counters.

    Methods return an updated copy; the instance itself is not changed.
    """

    xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    xp_in_level: int = Field(default=0, ge=0)
    streak: int = Field(default=0, ge=0)
    best_streak: int = Field(default=0, ge=0)
    mastery_per_topic: Dict[str, int] = Field(default_factory=dict)
    last_completed_at: Optional[datetime] = None
    achievements: List[str] = Field(default_factory=list)
    # XP earned on daily_xp_date (UTC); a new day starts from zero
    daily_xp: int = Field(default=0, ge=0)
    daily_xp_date: Optional[date] = None

    @property
    def xp_for_next_level(self) -> int:
        return xp_for_level(self.level)

    def add_xp(self, amount: int, now: Optional[datetime] = None) -> "LearnerProfile":
        """
        Add XP and level up as many times as the level thresholds allow.

        With `now`, the XP also counts towards that day's goal progress.
        """
        if amount <= 0:
            return self.model_copy()
        daily = {}
        if now is not None:
            daily = {"daily_xp": self.daily_xp_on(now) + amount, "daily_xp_date": now.date()}
        level = self.level
        xp_in_level = self.xp_in_level + amount
        while xp_in_level >= xp_for_level(level):
            xp_in_level -= xp_for_level(level)
            level += 1
        return self.model_copy(
            update={"xp": self.xp + amount, "level": level, "xp_in_level": xp_in_level, **daily}
        )

    def record_activity(self, now: datetime) -> "LearnerProfile":
        """
        Update the daily streak for activity at `now`.

        Under 24h since the last activity keeps the streak, under 48h extends
        it, anything longer starts over at 1.
        """
        streak = self.streak
        if self.last_completed_at is None or streak == 0:
            streak = 1
        else:
            elapsed = now - self.last_completed_at
            if elapsed >= timedelta(hours=48):
                streak = 1
            elif elapsed >= timedelta(hours=24):
                streak += 1
        return self.model_copy(
            update={
                "streak": streak,
                "best_streak": max(self.best_streak, streak),
                "last_completed_at": now,
            }
        )

    def record_topic_score(self, topic_id: str, score: int) -> "LearnerProfile":
        """Fold a 0-100 score into the topic's running mastery."""
        current = self.mastery_per_topic.get(topic_id, 0)
        mastery = dict(self.mastery_per_topic)
        mastery[topic_id] = current + MasteryScorer.mastery_delta(current, score)
        return self.model_copy(update={"mastery_per_topic": mastery})

    def daily_xp_on(self, now: datetime) -> int:
        """XP earned so far on the day of `now`."""
        return self.daily_xp if self.daily_xp_date == now.date() else 0

    def unlock_achievement(self, achievement_id: str) -> "LearnerProfile":
        if achievement_id in self.achievements:
            return self.model_copy()
        return self.model_copy(update={"achievements": [*self.achievements, achievement_id]})
