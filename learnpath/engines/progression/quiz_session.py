"""
Quiz Session Runner - one run over a fixed set of drawn questions.

States: in_progress -> completed (terminal). A session completes when the last
unanswered question is answered or when the learner ends it early. Only the
QuizSummary outlives the session; what it feeds (hearts, skill tree) is the
caller's decision, carried here as `purpose`.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from learnpath.engines.progression.errors import (
    InvalidTransition,
    NoQuestionsAvailable,
    UnknownQuizSession,
)
from learnpath.engines.progression.grader import Grader
from learnpath.engines.progression.mastery_scorer import round_half_up
from learnpath.engines.progression.question_bank import (
    AnswerValue,
    Question,
    QuestionSource,
)


class QuizPurpose(str, Enum):
    """What a finished quiz feeds into."""
    PRACTICE = "practice"  # topic mastery only
    RECOVERY = "recovery"  # heart economy
    LESSON = "lesson"  # skill tree node completion


class QuizState(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QuizAnswer(BaseModel):
    """Recorded answer for one question index."""

    answer: AnswerValue
    correct: bool


class QuizSummary(BaseModel):
    """Durable output of a quiz session."""

    session_id: str
    topic_id: str
    purpose: QuizPurpose
    node_id: Optional[str] = None
    score: int
    correct_count: int
    total_questions: int
    answered_count: int
    ended_early: bool


class QuizSession:
    """A quiz in progress. Questions are fixed at start."""

    def __init__(
        self,
        questions: List[Question],
        topic_id: str,
        purpose: QuizPurpose = QuizPurpose.PRACTICE,
        node_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        if not questions:
            raise NoQuestionsAvailable(topic_id)
        self.id = session_id or str(uuid.uuid4())
        self.topic_id = topic_id
        self.purpose = purpose
        self.node_id = node_id
        self._questions: Tuple[Question, ...] = tuple(questions)
        self._answers: Dict[int, QuizAnswer] = {}
        self.state = QuizState.IN_PROGRESS
        self.ended_early = False
        self.started_at = datetime.now(timezone.utc)

    @classmethod
    def start(
        cls,
        bank: QuestionSource,
        topic_id: str,
        question_count: int,
        purpose: QuizPurpose = QuizPurpose.PRACTICE,
        node_id: Optional[str] = None,
    ) -> "QuizSession":
        """Draw questions and start; raises NoQuestionsAvailable on an empty draw."""
        questions = bank.get_quiz_questions(topic_id, question_count)
        return cls(questions, topic_id=topic_id, purpose=purpose, node_id=node_id)

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self._questions

    @property
    def answers(self) -> Dict[int, QuizAnswer]:
        return dict(self._answers)

    @property
    def total_questions(self) -> int:
        return len(self._questions)

    @property
    def completed(self) -> bool:
        return self.state == QuizState.COMPLETED

    @property
    def correct_count(self) -> int:
        return sum(1 for answer in self._answers.values() if answer.correct)

    @property
    def next_index(self) -> Optional[int]:
        """Lowest unanswered index, or None once everything is answered."""
        for index in range(len(self._questions)):
            if index not in self._answers:
                return index
        return None

    def submit_answer(self, index: int, answer: AnswerValue) -> QuizAnswer:
        """Grade and record an answer; the last answer completes the session."""
        if self.completed:
            raise InvalidTransition(f"Quiz {self.id} is already completed")
        if not 0 <= index < len(self._questions):
            raise InvalidTransition(f"Question index {index} is out of range")
        if index in self._answers:
            raise InvalidTransition(f"Question {index} was already answered")

        question = self._questions[index]
        result = QuizAnswer(
            answer=answer,
            correct=Grader.answers_match(question.correct_answer, answer),
        )
        self._answers[index] = result
        if len(self._answers) == len(self._questions):
            self.state = QuizState.COMPLETED
        return result

    def end(self) -> None:
        """Learner stops early; unanswered questions count as wrong."""
        if self.completed:
            return
        self.ended_early = True
        self.state = QuizState.COMPLETED

    def finish(self) -> QuizSummary:
        """Summarize a completed session; score = round(100 * correct / total)."""
        if not self.completed:
            raise InvalidTransition(f"Quiz {self.id} is still in progress")
        correct = self.correct_count
        return QuizSummary(
            session_id=self.id,
            topic_id=self.topic_id,
            purpose=self.purpose,
            node_id=self.node_id,
            score=round_half_up(100 * correct / len(self._questions)),
            correct_count=correct,
            total_questions=len(self._questions),
            answered_count=len(self._answers),
            ended_early=self.ended_early,
        )


class QuizSessionRegistry:
    """
    In-flight quiz sessions, one per learner.

    Starting a new quiz abandons the learner's previous one.
    """

    def __init__(self):
        self._sessions: Dict[uuid.UUID, QuizSession] = {}

    def put(self, learner_id: uuid.UUID, session: QuizSession) -> None:
        self._sessions[learner_id] = session

    def get(self, learner_id: uuid.UUID, session_id: str) -> QuizSession:
        session = self._sessions.get(learner_id)
        if session is None or session.id != session_id:
            raise UnknownQuizSession(session_id)
        return session

    def discard(self, learner_id: uuid.UUID, session_id: Optional[str] = None) -> None:
        session = self._sessions.get(learner_id)
        if session is not None and (session_id is None or session.id == session_id):
            del self._sessions[learner_id]

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)
