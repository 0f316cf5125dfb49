"""
Question Bank - lesson exercises and quiz questions.

The engine only talks to a QuestionSource; InMemoryQuestionBank is the default
source, built from the catalog (packaged sample or a JSON file).
"""

import random
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

# Single-answer questions compare strings; multi-select questions compare sets
AnswerValue = Union[str, List[str]]


class QuestionType(str, Enum):
    """Types of exercises and quiz questions."""
    MULTIPLE_CHOICE = "multiple_choice"
    MULTI_SELECT = "multi_select"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"


class Exercise(BaseModel):
    """A graded exercise inside a lesson."""

    id: str
    lesson_id: str
    question_type: QuestionType
    prompt: str
    options: Optional[List[str]] = None
    correct_answer: AnswerValue


class Question(BaseModel):
    """A quiz question."""

    id: str
    topic: str
    question_type: QuestionType
    text: str
    options: Optional[List[str]] = None
    correct_answer: AnswerValue
    difficulty: int = Field(default=1, ge=1, le=5)


class QuestionSource(ABC):
    """
    Source of exercises and quiz questions.

    Implementations may be remote; any exception they raise is reported to
    callers of the engine as CollaboratorUnavailable.
    """

    @abstractmethod
    def get_exercises_for_lesson(self, lesson_id: str) -> List[Exercise]:
        """All exercises of a lesson, in catalog order."""
        pass

    @abstractmethod
    def get_quiz_questions(self, topic_id: str, count: int) -> List[Question]:
        """Up to `count` randomly drawn questions for a topic."""
        pass


class InMemoryQuestionBank(QuestionSource):
    """Question source backed by in-memory lists."""

    def __init__(
        self,
        exercises: List[Exercise],
        questions: List[Question],
        rng: Optional[random.Random] = None,
    ):
        self._rng = rng or random.Random()
        self._exercises: Dict[str, List[Exercise]] = {}
        for exercise in exercises:
            self._exercises.setdefault(exercise.lesson_id, []).append(exercise)
        self._questions: Dict[str, List[Question]] = {}
        for question in questions:
            self._questions.setdefault(question.topic, []).append(question)

    @property
    def lesson_ids(self) -> List[str]:
        return list(self._exercises)

    @property
    def topic_ids(self) -> List[str]:
        return list(self._questions)

    def get_exercises_for_lesson(self, lesson_id: str) -> List[Exercise]:
        return list(self._exercises.get(lesson_id, []))

    def get_quiz_questions(self, topic_id: str, count: int) -> List[Question]:
        questions = list(self._questions.get(topic_id, []))
        self._rng.shuffle(questions)
        return questions[:max(count, 0)]
