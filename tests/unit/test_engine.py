"""Unit tests for LearningProgressionEngine and LearnerSession."""

import uuid
from typing import List

import pytest

from learnpath.engines.progression.achievements import (
    Achievement,
    AchievementChecker,
    AchievementCondition,
)
from learnpath.engines.progression.engine import EngineRules, LearningProgressionEngine
from learnpath.engines.progression.errors import (
    CollaboratorUnavailable,
    InvalidTransition,
    NoExerciseAvailable,
    NoQuestionsAvailable,
    OutOfLives,
    PrerequisitesNotMet,
    UnknownLesson,
)
from learnpath.engines.progression.heart_economy import HeartState
from learnpath.engines.progression.question_bank import QuestionSource
from learnpath.engines.progression.quiz_session import QuizPurpose, QuizSession
from learnpath.engines.progression.skill_tree import NodeStatus
from learnpath.kernel.events.event_types import (
    AchievementUnlockedEvent,
    DailyGoalMetEvent,
    HeartsDepletedEvent,
    HeartsRefilledEvent,
    LevelUpEvent,
    NodeCompletedEvent,
    NodeUnlockedEvent,
    QuizCompletedEvent,
    QuizStartedEvent,
)


class BrokenBank(QuestionSource):
    """Question source whose backend is down."""

    def get_exercises_for_lesson(self, lesson_id: str) -> List:
        raise ConnectionError("question service timed out")

    def get_quiz_questions(self, topic_id: str, count: int) -> List:
        raise ConnectionError("question service timed out")


def _event_types(events) -> List[type]:
    return [type(event) for event in events]


def _answer_quiz(learner, quiz: QuizSession, answers, correct: int) -> None:
    for index, question in enumerate(quiz.questions):
        answer = answers[question.id] if index < correct else "wrong"
        learner.submit_quiz_answer(quiz, index, answer)


def _with_hearts(engine, learner_id, current: int):
    state = engine.new_learner_state(learner_id)
    return state.model_copy(update={"hearts": HeartState(current=current, max_hearts=5)})


class TestSessionLifecycle:
    """Tests for opening and closing learner sessions."""

    def test_new_learner(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        state = learner.state
        assert state.learner_id == learner_id
        assert state.hearts.current == 5
        assert state.progress["A"].status == NodeStatus.CURRENT
        assert state.profile.level == 1

    def test_state_for_other_learner_rejected(self, engine, learner_id):
        with pytest.raises(ValueError):
            engine.open_session(uuid.uuid4(), engine.new_learner_state(learner_id))

    def test_stored_progress_reconciled_on_open(self, engine, learner_id):
        state = engine.new_learner_state(learner_id)
        progress = dict(state.progress)
        del progress["C"]
        learner = engine.open_session(learner_id, state.model_copy(update={"progress": progress}))
        assert set(learner.state.progress) == {"A", "B", "C"}

    def test_closed_session_rejects_operations(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        learner.close()
        assert learner.closed
        with pytest.raises(InvalidTransition):
            learner.complete_node("A", 90)

    def test_state_is_a_copy(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        learner.state.progress["A"].stars = 3
        assert learner.state.progress["A"].stars == 0


class TestCompleteNode:
    """Tests for node completion through the engine."""

    def test_events_and_rewards(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        completion = learner.complete_node("A", 92)

        assert completion.unlocked_node_ids == ["B"]
        assert completion.xp_earned == 125
        events = learner.drain_events()
        assert _event_types(events) == [
            NodeCompletedEvent,
            NodeUnlockedEvent,
            DailyGoalMetEvent,
            LevelUpEvent,
        ]
        assert events[1].node_id == "B"
        assert events[1].unlocked_by == "A"
        assert events[3].new_level == 2

        state = learner.state
        assert state.profile.xp == 125
        assert state.profile.level == 2
        assert state.profile.streak == 1
        assert state.progress["B"].status == NodeStatus.CURRENT

    def test_failed_operation_rolls_back(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        before = learner.state
        with pytest.raises(PrerequisitesNotMet):
            learner.complete_node("C", 100)
        assert learner.state == before
        assert learner.pending_events == []

    def test_no_events_without_improvement(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        learner.complete_node("A", 92)
        learner.drain_events()
        completion = learner.complete_node("A", 50)
        assert not completion.improved
        assert learner.pending_events == []
        assert learner.state.progress["A"].attempts == 2

    def test_close_returns_undrained_events(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        learner.complete_node("A", 60)
        events = learner.close()
        assert _event_types(events) == [NodeCompletedEvent, NodeUnlockedEvent, DailyGoalMetEvent]
        assert learner.pending_events == []


class TestHearts:
    """Tests for heart status through the engine."""

    def test_full_hearts(self, engine, learner_id):
        status = engine.open_session(learner_id).hearts()
        assert status.current == 5
        assert not status.depleted
        assert status.seconds_until_refill is None

    def test_timer_refill(self, engine, learner_id, clock):
        state = _with_hearts(engine, learner_id, 1)
        learner = engine.open_session(learner_id, state)
        start = learner.start_lesson("A")
        result = learner.answer_exercise(start.attempt, start.exercise.id, "wrong")
        assert result.hearts.current == 0
        assert result.hearts.seconds_until_refill == 20 * 60

        clock.advance(minutes=5)
        assert learner.hearts().seconds_until_refill == 15 * 60

        clock.advance(minutes=15)
        learner.drain_events()
        status = learner.hearts()
        assert status.current == 5
        assert _event_types(learner.drain_events()) == [HeartsRefilledEvent]


class TestLessons:
    """Tests for lesson attempts, exercise rotation and grading."""

    def test_lesson_flow(self, engine, learner_id, answers):
        learner = engine.open_session(learner_id)
        start = learner.start_lesson("A")
        assert start.exercise.lesson_id == "A"
        assert start.hearts.current == 5

        attempt = start.attempt
        right = learner.answer_exercise(attempt, start.exercise.id, answers[start.exercise.id])
        assert right.correct
        assert right.hearts.current == 5

        second = learner.replace_exercise(attempt)
        assert second.id != start.exercise.id
        wrong = learner.answer_exercise(attempt, second.id, "definitely wrong")
        assert not wrong.correct
        assert wrong.hearts.current == 4
        assert wrong.answered_count == 2
        assert wrong.correct_count == 1

        result = learner.finish_lesson(attempt)
        assert result.score == 33
        assert result.total_exercises == 3
        assert result.completion.stars == 1
        assert result.completion.unlocked_node_ids == ["B"]
        state = learner.state
        assert state.progress["A"].status == NodeStatus.COMPLETED
        assert state.profile.mastery_per_topic == {"A": 10}
        assert state.hearts.current == 4

    def test_skipped_exercises_count_as_wrong(self, engine, learner_id, answers):
        learner = engine.open_session(learner_id)
        start = learner.start_lesson("A")
        learner.answer_exercise(start.attempt, start.exercise.id, answers[start.exercise.id])

        result = learner.finish_lesson(start.attempt)
        assert result.answered_count == 1
        assert result.correct_count == 1
        assert result.score == 33
        assert result.completion.stars == 1

    def test_rotation_exhausts_lesson(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        attempt = learner.start_lesson("A").attempt
        learner.replace_exercise(attempt)
        learner.replace_exercise(attempt)
        assert sorted(attempt.used_exercise_ids) == ["A-1", "A-2", "A-3"]
        with pytest.raises(NoExerciseAvailable):
            learner.replace_exercise(attempt)

    def test_new_attempt_starts_fresh(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        first = learner.start_lesson("A").attempt
        learner.replace_exercise(first)
        second = learner.start_lesson("A").attempt
        assert len(second.used_exercise_ids) == 1
        assert second.id != first.id

    def test_locked_lesson(self, engine, learner_id):
        with pytest.raises(PrerequisitesNotMet):
            engine.open_session(learner_id).start_lesson("B")

    def test_unknown_lesson(self, engine, learner_id):
        with pytest.raises(UnknownLesson):
            engine.open_session(learner_id).start_lesson("nope")

    def test_exercise_from_other_lesson_rejected(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        attempt = learner.start_lesson("A").attempt
        with pytest.raises(InvalidTransition):
            learner.answer_exercise(attempt, "B-1", "1")

    def test_finish_without_answers(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        attempt = learner.start_lesson("A").attempt
        with pytest.raises(InvalidTransition):
            learner.finish_lesson(attempt)

    def test_last_heart_depletes(self, engine, learner_id):
        learner = engine.open_session(learner_id, _with_hearts(engine, learner_id, 1))
        start = learner.start_lesson("A")
        learner.drain_events()
        result = learner.answer_exercise(start.attempt, start.exercise.id, "wrong")
        assert result.hearts.depleted
        assert _event_types(learner.drain_events()) == [HeartsDepletedEvent]

        exercise = learner.replace_exercise(start.attempt)
        with pytest.raises(OutOfLives) as exc_info:
            learner.answer_exercise(start.attempt, exercise.id, "anything")
        assert exc_info.value.refill_at == result.hearts.refill_at
        with pytest.raises(OutOfLives):
            learner.start_lesson("A")

    def test_depleted_learner_cannot_start_lesson(self, engine, learner_id):
        learner = engine.open_session(learner_id, _with_hearts(engine, learner_id, 0))
        before = learner.state
        with pytest.raises(OutOfLives):
            learner.start_lesson("A")
        assert learner.state == before
        assert learner.pending_events == []


class TestQuizzes:
    """Tests for quizzes feeding hearts, nodes and mastery."""

    def test_practice_quiz(self, engine, learner_id, answers):
        learner = engine.open_session(learner_id)
        quiz = learner.start_quiz(QuizPurpose.PRACTICE, topic_id="A")
        assert quiz.total_questions == 10
        _answer_quiz(learner, quiz, answers, correct=7)
        outcome = learner.finish_quiz(quiz)

        assert outcome.summary.score == 70
        assert outcome.completion is None
        assert not outcome.hearts_refilled
        assert outcome.topic_mastery == 21
        assert _event_types(learner.drain_events()) == [QuizStartedEvent, QuizCompletedEvent]

    def test_quiz_answers_cost_no_hearts(self, engine, learner_id, answers):
        learner = engine.open_session(learner_id)
        quiz = learner.start_quiz(topic_id="A")
        _answer_quiz(learner, quiz, answers, correct=0)
        outcome = learner.finish_quiz(quiz)
        assert outcome.hearts.current == 5

    def test_recovery_quiz_refills(self, engine, learner_id, answers):
        learner = engine.open_session(learner_id, _with_hearts(engine, learner_id, 0))
        quiz = learner.start_quiz(QuizPurpose.RECOVERY, topic_id="A")
        assert quiz.total_questions == 5
        _answer_quiz(learner, quiz, answers, correct=3)
        outcome = learner.finish_quiz(quiz)

        assert outcome.summary.score == 60
        assert outcome.hearts_refilled
        assert outcome.hearts.current == 5
        assert HeartsRefilledEvent in _event_types(learner.drain_events())

    def test_failed_recovery_quiz(self, engine, learner_id, answers):
        learner = engine.open_session(learner_id, _with_hearts(engine, learner_id, 0))
        quiz = learner.start_quiz(QuizPurpose.RECOVERY, topic_id="A")
        _answer_quiz(learner, quiz, answers, correct=2)
        outcome = learner.finish_quiz(quiz)
        assert outcome.summary.score == 40
        assert not outcome.hearts_refilled
        assert outcome.hearts.depleted

    def test_lesson_quiz_completes_node(self, engine, learner_id, answers):
        learner = engine.open_session(learner_id)
        quiz = learner.start_quiz(QuizPurpose.LESSON, node_id="A")
        assert quiz.topic_id == "A"
        _answer_quiz(learner, quiz, answers, correct=10)
        outcome = learner.finish_quiz(quiz)
        assert outcome.completion.stars == 3
        assert outcome.completion.unlocked_node_ids == ["B"]
        assert learner.state.progress["B"].status == NodeStatus.CURRENT

    def test_lesson_quiz_needs_prerequisites(self, engine, learner_id):
        with pytest.raises(PrerequisitesNotMet):
            engine.open_session(learner_id).start_quiz(QuizPurpose.LESSON, node_id="B")

    def test_lesson_quiz_needs_node(self, engine, learner_id):
        with pytest.raises(InvalidTransition):
            engine.open_session(learner_id).start_quiz(QuizPurpose.LESSON, topic_id="A")

    def test_practice_quiz_with_node_rejected(self, engine, learner_id):
        with pytest.raises(InvalidTransition):
            engine.open_session(learner_id).start_quiz(QuizPurpose.PRACTICE, topic_id="A", node_id="A")

    def test_empty_topic(self, engine, learner_id):
        learner = engine.open_session(learner_id)
        with pytest.raises(NoQuestionsAvailable):
            learner.start_quiz(topic_id="C")
        assert learner.pending_events == []

    def test_end_early(self, engine, learner_id, answers):
        learner = engine.open_session(learner_id)
        quiz = learner.start_quiz(topic_id="A")
        for index in range(4):
            learner.submit_quiz_answer(quiz, index, answers[quiz.questions[index].id])
        learner.end_quiz(quiz)
        outcome = learner.finish_quiz(quiz)
        assert outcome.summary.ended_early
        assert outcome.summary.score == 40


class TestCollaborators:
    """Failures of the question source surface as CollaboratorUnavailable."""

    @pytest.fixture
    def broken_engine(self, chain_tree, clock) -> LearningProgressionEngine:
        return LearningProgressionEngine(chain_tree, BrokenBank(), clock=clock)

    def test_quiz_start(self, broken_engine, learner_id):
        learner = broken_engine.open_session(learner_id)
        with pytest.raises(CollaboratorUnavailable) as exc_info:
            learner.start_quiz(topic_id="A")
        assert exc_info.value.collaborator == "question_bank"
        assert learner.pending_events == []

    def test_lesson_start(self, broken_engine, learner_id):
        learner = broken_engine.open_session(learner_id)
        before = learner.state
        with pytest.raises(CollaboratorUnavailable):
            learner.start_lesson("A")
        assert learner.state == before


class TestEventTimestamps:
    """Events carry the engine clock reading, not the wall clock."""

    def test_completion_events(self, engine, learner_id, clock):
        clock.advance(hours=2)
        learner = engine.open_session(learner_id)
        learner.complete_node("A", 92)
        events = learner.drain_events()
        assert events
        assert all(event.timestamp == clock.now for event in events)

    def test_heart_events(self, engine, learner_id, clock):
        learner = engine.open_session(learner_id, _with_hearts(engine, learner_id, 1))
        start = learner.start_lesson("A")
        learner.drain_events()
        learner.answer_exercise(start.attempt, start.exercise.id, "wrong")
        depleted = learner.drain_events()
        assert [event.timestamp for event in depleted] == [clock.now]

        clock.advance(minutes=20)
        learner.hearts()
        refilled = learner.drain_events()
        assert _event_types(refilled) == [HeartsRefilledEvent]
        assert refilled[0].timestamp == clock.now

    def test_quiz_events(self, engine, learner_id, answers, clock):
        learner = engine.open_session(learner_id)
        quiz = learner.start_quiz(topic_id="A")
        started_at = clock.now
        clock.advance(minutes=3)
        _answer_quiz(learner, quiz, answers, correct=5)
        learner.finish_quiz(quiz)

        started, completed = learner.drain_events()
        assert started.timestamp == started_at
        assert completed.timestamp == clock.now


class TestDailyGoal:
    """Tests for the daily XP goal."""

    def test_goal_met_once_per_day(self, engine, learner_id, clock):
        learner = engine.open_session(learner_id)
        learner.complete_node("A", 60)
        goal_events = [e for e in learner.drain_events() if isinstance(e, DailyGoalMetEvent)]
        assert len(goal_events) == 1
        assert goal_events[0].daily_xp == 50
        assert goal_events[0].daily_goal_xp == 30

        learner.complete_node("A", 92)
        assert DailyGoalMetEvent not in _event_types(learner.drain_events())
        assert learner.state.profile.daily_xp_on(clock.now) == 125

        clock.advance(days=1)
        learner.complete_node("B", 60)
        assert DailyGoalMetEvent in _event_types(learner.drain_events())
        assert learner.state.profile.daily_xp_on(clock.now) == 50

    def test_below_goal(self, chain_tree, bank, clock, rng, learner_id):
        engine = LearningProgressionEngine(
            chain_tree, bank, rules=EngineRules(daily_goal_xp=200), clock=clock, rng=rng
        )
        learner = engine.open_session(learner_id)
        learner.complete_node("A", 92)
        assert DailyGoalMetEvent not in _event_types(learner.drain_events())


class TestAchievements:
    """Tests for achievements unlocked by node completions."""

    @pytest.fixture
    def checker(self) -> AchievementChecker:
        return AchievementChecker(
            [
                Achievement(
                    id="first",
                    title="First steps",
                    condition=AchievementCondition.NODES_COMPLETED,
                    threshold=1,
                    xp_reward=10,
                ),
                Achievement(
                    id="perfect",
                    title="Flawless",
                    condition=AchievementCondition.PERFECT_NODES,
                    threshold=1,
                    xp_reward=15,
                ),
                Achievement(
                    id="two-today",
                    title="On a roll",
                    condition=AchievementCondition.NODES_COMPLETED_TODAY,
                    threshold=2,
                    xp_reward=5,
                ),
            ]
        )

    @pytest.fixture
    def rewarded_engine(self, chain_tree, bank, clock, rng, checker) -> LearningProgressionEngine:
        return LearningProgressionEngine(
            chain_tree, bank, rules=EngineRules(), clock=clock, rng=rng, achievements=checker
        )

    def test_unlocked_on_completion(self, rewarded_engine, learner_id):
        learner = rewarded_engine.open_session(learner_id)
        completion = learner.complete_node("A", 92)

        assert completion.achievements_unlocked == ["first", "perfect"]
        events = learner.drain_events()
        unlocked = [e for e in events if isinstance(e, AchievementUnlockedEvent)]
        assert [(e.achievement_id, e.xp_reward) for e in unlocked] == [
            ("first", 10),
            ("perfect", 15),
        ]
        assert _event_types(events)[-1] is LevelUpEvent

        profile = learner.state.profile
        assert profile.achievements == ["first", "perfect"]
        assert profile.xp == 125 + 10 + 15

    def test_each_achievement_unlocks_once(self, rewarded_engine, learner_id):
        learner = rewarded_engine.open_session(learner_id)
        assert learner.complete_node("A", 60).achievements_unlocked == ["first"]
        assert learner.complete_node("A", 95).achievements_unlocked == ["perfect"]
        assert learner.complete_node("B", 50).achievements_unlocked == ["two-today"]
        assert learner.complete_node("C", 100).achievements_unlocked == []
        assert learner.state.profile.achievements == ["first", "perfect", "two-today"]

    def test_not_checked_without_improvement(self, rewarded_engine, learner_id):
        learner = rewarded_engine.open_session(learner_id)
        learner.complete_node("A", 92)
        learner.drain_events()
        completion = learner.complete_node("A", 40)
        assert completion.achievements_unlocked == []
        assert learner.pending_events == []

    def test_yesterday_not_counted_today(self, rewarded_engine, learner_id, clock):
        learner = rewarded_engine.open_session(learner_id)
        learner.complete_node("A", 60)
        clock.advance(days=1)
        assert learner.complete_node("B", 60).achievements_unlocked == []

    def test_reward_counts_towards_daily_goal(self, chain_tree, bank, clock, rng, checker, learner_id):
        engine = LearningProgressionEngine(
            chain_tree,
            bank,
            rules=EngineRules(daily_goal_xp=60),
            clock=clock,
            rng=rng,
            achievements=checker,
        )
        learner = engine.open_session(learner_id)
        learner.complete_node("A", 60)
        assert _event_types(learner.drain_events()) == [
            NodeCompletedEvent,
            NodeUnlockedEvent,
            AchievementUnlockedEvent,
            DailyGoalMetEvent,
        ]
        assert learner.state.profile.daily_xp_on(clock.now) == 60
