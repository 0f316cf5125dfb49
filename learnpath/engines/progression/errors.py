"""
Progression errors.

Every error here is recoverable at the call site: the UI shows a message and
offers another action (wait, retry, pick another topic).
"""

from datetime import datetime
from typing import List, Optional


class ProgressionError(Exception):
    """Base class for learning progression failures."""

    code = "progression_error"


class InvalidTransition(ProgressionError):
    """Operation is not valid for the current state."""

    code = "invalid_transition"


class UnknownNode(InvalidTransition):
    """Node id is not part of the skill tree."""

    code = "unknown_node"

    def __init__(self, node_id: str):
        super().__init__(f"Unknown skill tree node: {node_id}")
        self.node_id = node_id


class UnknownLesson(InvalidTransition):
    """Lesson id is not linked to any skill tree node."""

    code = "unknown_lesson"

    def __init__(self, lesson_id: str):
        super().__init__(f"Unknown lesson: {lesson_id}")
        self.lesson_id = lesson_id


class UnknownQuizSession(InvalidTransition):
    """No active quiz session with this id for the learner."""

    code = "unknown_quiz_session"

    def __init__(self, session_id: str):
        super().__init__(f"No active quiz session: {session_id}")
        self.session_id = session_id


class InvalidScore(InvalidTransition):
    """Score outside 0-100."""

    code = "invalid_score"

    def __init__(self, score: int):
        super().__init__(f"Invalid score {score}. Must be between 0-100")
        self.score = score


class PrerequisitesNotMet(ProgressionError):
    """Node cannot be completed before its prerequisites."""

    code = "prerequisites_not_met"

    def __init__(self, node_id: str, missing: List[str]):
        super().__init__(
            f"Prerequisites not met for {node_id}: missing {', '.join(missing)}"
        )
        self.node_id = node_id
        self.missing = list(missing)


class OutOfLives(ProgressionError):
    """Hearts are depleted; graded answers are rejected until refill."""

    code = "out_of_lives"

    def __init__(self, refill_at: Optional[datetime] = None):
        message = "No hearts left"
        if refill_at is not None:
            message += f"; refill at {refill_at.isoformat()}"
        super().__init__(message)
        self.refill_at = refill_at


class NoQuestionsAvailable(ProgressionError):
    """Question bank returned nothing for a topic."""

    code = "no_questions_available"

    def __init__(self, topic_id: str):
        super().__init__(f"No questions available for topic: {topic_id}")
        self.topic_id = topic_id


class NoExerciseAvailable(ProgressionError):
    """Every exercise of the lesson has already been served."""

    code = "no_exercise_available"

    def __init__(self, lesson_id: str):
        super().__init__(f"No more exercises available for lesson: {lesson_id}")
        self.lesson_id = lesson_id


class CollaboratorUnavailable(ProgressionError):
    """Question bank or persistence failed underneath an operation."""

    code = "collaborator_unavailable"

    def __init__(self, collaborator: str, detail: str = ""):
        message = f"{collaborator} unavailable"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.collaborator = collaborator
