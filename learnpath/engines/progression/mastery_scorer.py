"""
Mastery Scorer - converts a 0-100 score into a star rating and XP.
"""

import math
from typing import List


def round_half_up(value: float) -> int:
    """Round .5 up for non-negative values (built-in round() rounds half to even)."""
    return int(math.floor(value + 0.5))


class MasteryScorer:
    """
    Star thresholds:
    - 90+ -> 3 stars
    - 70+ -> 2 stars
    - anything else -> 1 star (a score of 0 still earns 1 star)
    """

    THREE_STAR_SCORE = 90
    TWO_STAR_SCORE = 70

    # Indexed by stars (0-3)
    XP_MULTIPLIERS: List[float] = [0.5, 0.75, 1.0, 1.25]

    # Weight of the newest score in a topic's running mastery
    MASTERY_WEIGHT = 0.3

    @classmethod
    def score_to_stars(cls, score: float) -> int:
        """Get the star rating for a score."""
        if score >= cls.THREE_STAR_SCORE:
            return 3
        if score >= cls.TWO_STAR_SCORE:
            return 2
        return 1

    @classmethod
    def xp_for_stars(cls, xp_reward: int, stars: int) -> int:
        """XP earned for a node worth xp_reward at the given star rating."""
        stars = max(0, min(stars, len(cls.XP_MULTIPLIERS) - 1))
        return round_half_up(xp_reward * cls.XP_MULTIPLIERS[stars])

    @classmethod
    def mastery_delta(cls, current_mastery: int, score: float) -> int:
        """
        Change in topic mastery after a scored attempt.

        Mastery is a weighted running average: 70% previous mastery, 30% new score.
        """
        updated = round_half_up(
            current_mastery * (1 - cls.MASTERY_WEIGHT) + score * cls.MASTERY_WEIGHT
        )
        return updated - current_mastery


def score_to_stars(score: float) -> int:
    """Module-level shortcut for MasteryScorer.score_to_stars."""
    return MasteryScorer.score_to_stars(score)
