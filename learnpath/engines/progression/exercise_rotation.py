"""
Exercise Rotation - serves unseen exercises within one lesson attempt.

Exercises are never repeated inside a LessonAttempt; a new attempt of the same
lesson starts with an empty used set.
"""

import random
import uuid
from typing import Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, Field

from learnpath.engines.progression.errors import InvalidTransition
from learnpath.engines.progression.mastery_scorer import round_half_up
from learnpath.engines.progression.question_bank import (
    AnswerValue,
    Exercise,
    QuestionSource,
)


class ExerciseRotationSelector:
    """Picks a random exercise of a lesson that has not been used yet."""

    def __init__(self, bank: QuestionSource, rng: Optional[random.Random] = None):
        self.bank = bank
        self._rng = rng or random.Random()

    def select_replacement(
        self,
        lesson_id: str,
        used_exercise_ids: Set[str],
    ) -> Optional[Exercise]:
        """
        Uniform random choice among the lesson's unused exercises.

        Returns None when every exercise has been used. The caller adds the
        returned id to its used set.
        """
        candidates = [
            exercise for exercise in self.bank.get_exercises_for_lesson(lesson_id)
            if exercise.id not in used_exercise_ids
        ]
        if not candidates:
            return None
        return self._rng.choice(candidates)


class ExerciseAttemptRecord(BaseModel):
    """One graded answer inside a lesson attempt."""

    exercise_id: str
    submitted_answer: AnswerValue
    is_correct: bool


class LessonAttempt(BaseModel):
    """A learner's pass through one lesson. Transient; never persisted."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    lesson_id: str
    node_id: str
    total_exercises: int = Field(default=0, ge=0)
    used_exercise_ids: List[str] = Field(default_factory=list)
    current_exercise_id: Optional[str] = None
    records: List[ExerciseAttemptRecord] = Field(default_factory=list)

    @property
    def used(self) -> Set[str]:
        return set(self.used_exercise_ids)

    @property
    def answered_ids(self) -> Set[str]:
        return {record.exercise_id for record in self.records}

    @property
    def correct_count(self) -> int:
        return sum(1 for record in self.records if record.is_correct)

    @property
    def score(self) -> int:
        """
        round(100 * correct / exercises in the lesson); 0 before any answer.

        Skipped and unanswered exercises count as wrong.
        """
        if not self.records:
            return 0
        total = max(self.total_exercises, len(self.records))
        return round_half_up(100 * self.correct_count / total)

    def serve(self, exercise: Exercise) -> None:
        if exercise.id not in self.used:
            self.used_exercise_ids.append(exercise.id)
        self.current_exercise_id = exercise.id

    def record(self, exercise_id: str, answer: AnswerValue, is_correct: bool) -> ExerciseAttemptRecord:
        """Record a graded answer for a served, not yet answered exercise."""
        if exercise_id not in self.used:
            raise InvalidTransition(f"Exercise {exercise_id} was not served in this lesson attempt")
        if exercise_id in self.answered_ids:
            raise InvalidTransition(f"Exercise {exercise_id} was already answered")
        entry = ExerciseAttemptRecord(
            exercise_id=exercise_id,
            submitted_answer=answer,
            is_correct=is_correct,
        )
        self.records.append(entry)
        return entry


class LessonAttemptRegistry:
    """In-flight lesson attempts, at most one per learner and lesson."""

    def __init__(self):
        self._attempts: Dict[Tuple[uuid.UUID, str], LessonAttempt] = {}

    def put(self, learner_id: uuid.UUID, attempt: LessonAttempt) -> None:
        self._attempts[(learner_id, attempt.lesson_id)] = attempt

    def get(self, learner_id: uuid.UUID, lesson_id: str) -> LessonAttempt:
        attempt = self._attempts.get((learner_id, lesson_id))
        if attempt is None:
            raise InvalidTransition(f"No active attempt for lesson {lesson_id}")
        return attempt

    def discard(self, learner_id: uuid.UUID, lesson_id: str) -> None:
        self._attempts.pop((learner_id, lesson_id), None)

    def clear(self) -> None:
        self._attempts.clear()

    def __len__(self) -> int:
        return len(self._attempts)
