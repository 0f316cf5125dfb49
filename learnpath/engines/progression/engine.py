"""
Learning Progression Engine - single entry point for progression state.

LearningProgressionEngine holds what is shared by every learner (the skill
tree, the question bank, the rules and the clock). LearnerSession is the
per-learner store object: opened with the learner's persisted state, it runs
operations and buffers the events they emit until it is closed.

Each operation is all-or-nothing. State is replaced, never edited in place,
so a failing operation restores the previous state and drops its events.
"""

import random
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from learnpath.config import Settings
from learnpath.engines.progression.achievements import AchievementChecker, AchievementContext
from learnpath.engines.progression.catalog import Catalog
from learnpath.engines.progression.errors import (
    CollaboratorUnavailable,
    InvalidTransition,
    NoExerciseAvailable,
    PrerequisitesNotMet,
    ProgressionError,
)
from learnpath.engines.progression.exercise_rotation import (
    ExerciseRotationSelector,
    LessonAttempt,
)
from learnpath.engines.progression.grader import Grader
from learnpath.engines.progression.heart_economy import HeartEconomy, HeartState
from learnpath.engines.progression.question_bank import (
    AnswerValue,
    Exercise,
    QuestionSource,
)
from learnpath.engines.progression.quiz_session import (
    QuizAnswer,
    QuizPurpose,
    QuizSession,
    QuizSummary,
)
from learnpath.engines.progression.rewards import LearnerProfile
from learnpath.engines.progression.skill_tree import (
    NodeCompletion,
    SkillTree,
    UserNodeProgress,
)
from learnpath.kernel.events.event_types import (
    AchievementUnlockedEvent,
    BaseEvent,
    DailyGoalMetEvent,
    LevelUpEvent,
    NodeCompletedEvent,
    NodeUnlockedEvent,
    QuizCompletedEvent,
    QuizStartedEvent,
)
from learnpath.logging_config import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EngineRules(BaseModel):
    """Tunable rules of the engine."""

    model_config = ConfigDict(frozen=True)

    max_hearts: int = 5
    heart_refill_minutes: int = 20
    recovery_pass_score: int = 50
    quiz_question_count: int = 10
    recovery_question_count: int = 5
    daily_goal_xp: int = 30

    @property
    def refill_after(self) -> timedelta:
        return timedelta(minutes=self.heart_refill_minutes)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineRules":
        return cls(
            max_hearts=settings.max_hearts,
            heart_refill_minutes=settings.heart_refill_minutes,
            recovery_pass_score=settings.recovery_pass_score,
            quiz_question_count=settings.quiz_question_count,
            recovery_question_count=settings.recovery_question_count,
            daily_goal_xp=settings.daily_goal_xp,
        )


class LearnerState(BaseModel):
    """Everything persisted for one learner."""

    learner_id: uuid.UUID
    progress: Dict[str, UserNodeProgress]
    hearts: HeartState
    profile: LearnerProfile


class HeartStatus(BaseModel):
    """Hearts as shown to the learner."""

    current: int
    max_hearts: int
    depleted: bool
    refill_at: Optional[datetime] = None
    seconds_until_refill: Optional[int] = None


class ExerciseResult(BaseModel):
    """Outcome of answering one lesson exercise."""

    exercise_id: str
    correct: bool
    hearts: HeartStatus
    answered_count: int
    correct_count: int


class LessonStart(BaseModel):
    """A new lesson attempt with its first exercise."""

    attempt: LessonAttempt
    exercise: Exercise
    hearts: HeartStatus


class LessonResult(BaseModel):
    """Outcome of finishing a lesson attempt."""

    lesson_id: str
    node_id: str
    score: int
    correct_count: int
    answered_count: int
    total_exercises: int
    completion: NodeCompletion


class QuizOutcome(BaseModel):
    """A finished quiz and what it changed."""

    summary: QuizSummary
    hearts: HeartStatus
    hearts_refilled: bool = False
    topic_mastery: int
    completion: Optional[NodeCompletion] = None


class LearningProgressionEngine:
    """
    Shared engine configuration.

    Usage:
        engine = LearningProgressionEngine.from_catalog(load_catalog())
        session = engine.open_session(learner_id, stored_state)
        completion = session.complete_node("place-value", 92)
        events = session.close()
    """

    def __init__(
        self,
        tree: SkillTree,
        bank: QuestionSource,
        rules: Optional[EngineRules] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        achievements: Optional[AchievementChecker] = None,
    ):
        self.tree = tree
        self.bank = bank
        self.achievements = achievements if achievements is not None else AchievementChecker()
        self.rules = rules or EngineRules()
        self._clock = clock or utcnow
        self.selector = ExerciseRotationSelector(bank, rng=rng)

    @classmethod
    def from_catalog(
        cls,
        catalog: Catalog,
        rules: Optional[EngineRules] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ) -> "LearningProgressionEngine":
        return cls(
            catalog.build_tree(),
            catalog.build_bank(rng=rng),
            rules=rules,
            clock=clock,
            rng=rng,
            achievements=catalog.build_achievements(),
        )

    def now(self) -> datetime:
        return self._clock()

    def new_learner_state(self, learner_id: uuid.UUID) -> LearnerState:
        return LearnerState(
            learner_id=learner_id,
            progress=self.tree.initial_progress(),
            hearts=HeartState.full(self.rules.max_hearts),
            profile=LearnerProfile(),
        )

    def open_session(
        self,
        learner_id: uuid.UUID,
        state: Optional[LearnerState] = None,
    ) -> "LearnerSession":
        """Start a learner session from persisted state (or a fresh learner)."""
        if state is None:
            state = self.new_learner_state(learner_id)
        elif state.learner_id != learner_id:
            raise ValueError("state belongs to a different learner")
        return LearnerSession(self, state)

    def heart_economy(self, sink=None) -> HeartEconomy:
        return HeartEconomy(
            max_hearts=self.rules.max_hearts,
            refill_after=self.rules.refill_after,
            recovery_pass_score=self.rules.recovery_pass_score,
            sink=sink,
        )

    @contextmanager
    def collaborator(self, name: str) -> Iterator[None]:
        """Report failures of an external collaborator as CollaboratorUnavailable."""
        try:
            yield
        except ProgressionError:
            raise
        except Exception as exc:
            logger.error(
                "Collaborator call failed",
                extra={"collaborator": name, "error": str(exc)},
            )
            raise CollaboratorUnavailable(name, str(exc)) from exc


class LearnerSession:
    """
    Store object for one learner.

    Created at session start with the learner's state, torn down with close().
    Read `state` and the drained events after each operation to persist them.
    """

    def __init__(self, engine: LearningProgressionEngine, state: LearnerState):
        self.engine = engine
        self._events: List[BaseEvent] = []
        self._hearts = engine.heart_economy(sink=self._events.append)
        self._closed = False
        self._state = state.model_copy(
            update={"progress": engine.tree.reconcile(state.progress)}
        )

    @property
    def learner_id(self) -> uuid.UUID:
        return self._state.learner_id

    @property
    def state(self) -> LearnerState:
        return self._state.model_copy(deep=True)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_events(self) -> List[BaseEvent]:
        return list(self._events)

    def drain_events(self) -> List[BaseEvent]:
        # Clear in place: the heart economy's sink is bound to this list
        events = list(self._events)
        self._events.clear()
        return events

    def close(self) -> List[BaseEvent]:
        """Tear down the session; returns events not yet drained."""
        self._closed = True
        return self.drain_events()

    @contextmanager
    def _operation(self, name: str) -> Iterator[datetime]:
        if self._closed:
            raise InvalidTransition("Learner session is closed")
        snapshot = self._state
        mark = len(self._events)
        try:
            yield self.engine.now()
        except Exception:
            self._state = snapshot
            del self._events[mark:]
            logger.debug("Operation rolled back", extra={"operation": name})
            raise

    def _set(self, **changes) -> None:
        self._state = self._state.model_copy(update=changes)

    def _heart_status(self, hearts: HeartState, now: datetime) -> HeartStatus:
        remaining = self._hearts.remaining(hearts, now)
        return HeartStatus(
            current=hearts.current,
            max_hearts=hearts.max_hearts,
            depleted=hearts.depleted,
            refill_at=hearts.refill_at,
            seconds_until_refill=int(remaining.total_seconds()) if remaining is not None else None,
        )

    def _check_prerequisites(self, node_id: str) -> None:
        check = self.engine.tree.check_prerequisites(self._state.progress, node_id)
        if not check.met:
            raise PrerequisitesNotMet(node_id, check.missing)

    def _apply_completion(self, node_id: str, score: int, now: datetime) -> NodeCompletion:
        progress, completion = self.engine.tree.complete_node(
            self._state.progress, node_id, score, now=now
        )
        profile = self._state.profile
        if completion.improved:
            before = profile.level
            self._events.append(
                NodeCompletedEvent(
                    node_id=node_id,
                    score=score,
                    stars=completion.stars,
                    best_score=completion.best_score,
                    attempts=completion.attempts,
                    xp_earned=completion.xp_earned,
                    first_completion=completion.first_completion,
                    unlocked_node_ids=completion.unlocked_node_ids,
                    timestamp=now,
                )
            )
            for unlocked_id in completion.unlocked_node_ids:
                self._events.append(
                    NodeUnlockedEvent(node_id=unlocked_id, unlocked_by=node_id, timestamp=now)
                )
            profile = self._add_xp(profile, completion.xp_earned, now).record_activity(now)
            profile, earned = self._award_achievements(progress, profile, now)
            completion = completion.model_copy(update={"achievements_unlocked": earned})
            if profile.level > before:
                self._events.append(
                    LevelUpEvent(
                        new_level=profile.level,
                        levels_gained=profile.level - before,
                        timestamp=now,
                    )
                )
        self._set(progress=progress, profile=profile)
        logger.info(
            "Node attempt recorded",
            extra={
                "node_id": node_id,
                "score": score,
                "stars": completion.stars,
                "improved": completion.improved,
                "unlocked": completion.unlocked_node_ids,
            },
        )
        return completion

    def _add_xp(self, profile: LearnerProfile, amount: int, now: datetime) -> LearnerProfile:
        """Add XP; crossing the daily goal emits DailyGoalMetEvent once per day."""
        goal = self.engine.rules.daily_goal_xp
        before = profile.daily_xp_on(now)
        profile = profile.add_xp(amount, now)
        after = profile.daily_xp_on(now)
        if before < goal <= after:
            self._events.append(DailyGoalMetEvent(daily_xp=after, daily_goal_xp=goal, timestamp=now))
        return profile

    def _award_achievements(
        self,
        progress: Dict[str, UserNodeProgress],
        profile: LearnerProfile,
        now: datetime,
    ) -> Tuple[LearnerProfile, List[str]]:
        # Rewards can push XP over another threshold, so check until nothing new
        earned: List[str] = []
        while True:
            context = AchievementContext.build(progress, profile, now)
            new = self.engine.achievements.check(context, profile.achievements)
            if not new:
                return profile, earned
            for achievement in new:
                profile = self._add_xp(
                    profile.unlock_achievement(achievement.id), achievement.xp_reward, now
                )
                earned.append(achievement.id)
                self._events.append(
                    AchievementUnlockedEvent(
                        achievement_id=achievement.id,
                        title=achievement.title,
                        xp_reward=achievement.xp_reward,
                        timestamp=now,
                    )
                )
                logger.info(
                    "Achievement unlocked",
                    extra={"achievement_id": achievement.id, "xp_reward": achievement.xp_reward},
                )

    # Skill tree

    def complete_node(self, node_id: str, score: int) -> NodeCompletion:
        with self._operation("complete_node") as now:
            return self._apply_completion(node_id, score, now)

    # Hearts

    def hearts(self) -> HeartStatus:
        with self._operation("hearts") as now:
            hearts = self._hearts.refresh(self._state.hearts, now)
            self._set(hearts=hearts)
            return self._heart_status(hearts, now)

    # Lessons

    def _lesson_exercises(self, lesson_id: str) -> List[Exercise]:
        with self.engine.collaborator("question_bank"):
            return self.engine.bank.get_exercises_for_lesson(lesson_id)

    def _serve_next(self, attempt: LessonAttempt) -> Exercise:
        with self.engine.collaborator("question_bank"):
            exercise = self.engine.selector.select_replacement(attempt.lesson_id, attempt.used)
        if exercise is None:
            raise NoExerciseAvailable(attempt.lesson_id)
        attempt.serve(exercise)
        return exercise

    def start_lesson(self, lesson_id: str) -> LessonStart:
        """Begin a lesson attempt and serve its first exercise."""
        with self._operation("start_lesson") as now:
            node = self.engine.tree.node_for_lesson(lesson_id)
            self._check_prerequisites(node.id)
            hearts = self._hearts.ensure_can_answer(self._state.hearts, now)
            self._set(hearts=hearts)
            attempt = LessonAttempt(
                lesson_id=lesson_id,
                node_id=node.id,
                total_exercises=len(self._lesson_exercises(lesson_id)),
            )
            exercise = self._serve_next(attempt)
            return LessonStart(
                attempt=attempt,
                exercise=exercise,
                hearts=self._heart_status(hearts, now),
            )

    def replace_exercise(self, attempt: LessonAttempt) -> Exercise:
        """Serve another exercise of the lesson that this attempt has not seen."""
        with self._operation("replace_exercise"):
            return self._serve_next(attempt)

    def answer_exercise(
        self,
        attempt: LessonAttempt,
        exercise_id: str,
        answer: AnswerValue,
    ) -> ExerciseResult:
        """Grade an answer; a wrong one costs a heart. Raises OutOfLives while depleted."""
        with self._operation("answer_exercise") as now:
            hearts = self._hearts.ensure_can_answer(self._state.hearts, now)
            exercise = next(
                (e for e in self._lesson_exercises(attempt.lesson_id) if e.id == exercise_id),
                None,
            )
            if exercise is None:
                raise InvalidTransition(
                    f"Exercise {exercise_id} is not part of lesson {attempt.lesson_id}"
                )
            correct = Grader.answers_match(exercise.correct_answer, answer)
            if not correct:
                hearts = self._hearts.record_wrong_answer(hearts, now)
            attempt.record(exercise_id, answer, correct)
            self._set(hearts=hearts)
            return ExerciseResult(
                exercise_id=exercise_id,
                correct=correct,
                hearts=self._heart_status(hearts, now),
                answered_count=len(attempt.records),
                correct_count=attempt.correct_count,
            )

    def finish_lesson(self, attempt: LessonAttempt) -> LessonResult:
        """Score the attempt and record it on the lesson's node."""
        with self._operation("finish_lesson") as now:
            if not attempt.records:
                raise InvalidTransition(f"Lesson {attempt.lesson_id} has no answered exercises")
            score = attempt.score
            node = self.engine.tree.get_node(attempt.node_id)
            completion = self._apply_completion(node.id, score, now)
            self._set(profile=self._state.profile.record_topic_score(node.topic, score))
            return LessonResult(
                lesson_id=attempt.lesson_id,
                node_id=node.id,
                score=score,
                correct_count=attempt.correct_count,
                answered_count=len(attempt.records),
                total_exercises=attempt.total_exercises,
                completion=completion,
            )

    # Quizzes

    def start_quiz(
        self,
        purpose: QuizPurpose = QuizPurpose.PRACTICE,
        topic_id: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> QuizSession:
        """
        Draw and start a quiz.

        Lesson quizzes take their topic from `node_id` and require its
        prerequisites; recovery quizzes are short. Raises NoQuestionsAvailable
        when the bank has nothing for the topic.
        """
        with self._operation("start_quiz") as now:
            if purpose == QuizPurpose.LESSON:
                if node_id is None:
                    raise InvalidTransition("Lesson quizzes need a node_id")
                node = self.engine.tree.get_node(node_id)
                self._check_prerequisites(node.id)
                topic_id = topic_id or node.topic
            elif node_id is not None:
                raise InvalidTransition("Only lesson quizzes are linked to a node")
            if not topic_id:
                raise InvalidTransition("A topic_id is required")

            count = (
                self.engine.rules.recovery_question_count
                if purpose == QuizPurpose.RECOVERY
                else self.engine.rules.quiz_question_count
            )
            with self.engine.collaborator("question_bank"):
                quiz = QuizSession.start(
                    self.engine.bank,
                    topic_id,
                    count,
                    purpose=purpose,
                    node_id=node_id,
                )
            self._events.append(
                QuizStartedEvent(
                    session_id=quiz.id,
                    topic_id=topic_id,
                    purpose=purpose.value,
                    question_count=quiz.total_questions,
                    timestamp=now,
                )
            )
            return quiz

    def submit_quiz_answer(self, quiz: QuizSession, index: int, answer: AnswerValue) -> QuizAnswer:
        with self._operation("submit_quiz_answer"):
            return quiz.submit_answer(index, answer)

    def end_quiz(self, quiz: QuizSession) -> None:
        with self._operation("end_quiz"):
            quiz.end()

    def finish_quiz(self, quiz: QuizSession) -> QuizOutcome:
        """
        Summarize a completed quiz and forward it by purpose: recovery quizzes
        to the hearts, lesson quizzes to the skill tree.
        """
        with self._operation("finish_quiz") as now:
            summary = quiz.finish()
            self._events.append(
                QuizCompletedEvent(
                    session_id=summary.session_id,
                    topic_id=summary.topic_id,
                    purpose=summary.purpose.value,
                    score=summary.score,
                    correct_count=summary.correct_count,
                    total_questions=summary.total_questions,
                    timestamp=now,
                )
            )

            hearts = self._hearts.refresh(self._state.hearts, now)
            hearts_refilled = False
            if summary.purpose == QuizPurpose.RECOVERY:
                was_full = hearts.current == hearts.max_hearts
                hearts = self._hearts.apply_recovery_quiz(hearts, summary.score, now)
                hearts_refilled = not was_full and hearts.current == hearts.max_hearts
            self._set(hearts=hearts)

            completion = None
            if summary.purpose == QuizPurpose.LESSON and summary.node_id is not None:
                completion = self._apply_completion(summary.node_id, summary.score, now)

            profile = self._state.profile.record_topic_score(summary.topic_id, summary.score)
            self._set(profile=profile)
            return QuizOutcome(
                summary=summary,
                hearts=self._heart_status(hearts, now),
                hearts_refilled=hearts_refilled,
                topic_mastery=profile.mastery_per_topic[summary.topic_id],
                completion=completion,
            )
