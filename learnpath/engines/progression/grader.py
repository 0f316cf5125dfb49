"""
Grader - answer checking for exercises and quiz questions.
"""

from typing import Optional

from learnpath.engines.progression.question_bank import AnswerValue


class Grader:
    """
    Compares a submitted answer with the expected one.

    Single answers match only when exactly equal. List answers (multi-select)
    match when they hold the same entries in any order.
    """

    @classmethod
    def answers_match(cls, expected: AnswerValue, submitted: Optional[AnswerValue]) -> bool:
        """Check a submitted answer against the expected answer."""
        if submitted is None:
            return False
        if isinstance(expected, list) or isinstance(submitted, list):
            if not (isinstance(expected, list) and isinstance(submitted, list)):
                return False
            return sorted(expected) == sorted(submitted)
        return expected == submitted
