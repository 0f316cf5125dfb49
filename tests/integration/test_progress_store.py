"""Integration tests for ProgressStore and EventStore on SQLite."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select

from learnpath.engines.progression.heart_economy import HeartState
from learnpath.engines.progression.progress_store import ProgressStore
from learnpath.engines.progression.skill_tree import NodeStatus
from learnpath.kernel.events.event_store import EventStore
from learnpath.kernel.events.event_types import (
    HeartsDepletedEvent,
    NodeCompletedEvent,
    QuizStartedEvent,
)
from learnpath.kernel.models import EventType, LearnerNodeProgress

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TestProgressStore:
    """Tests for loading and saving learner state."""

    async def test_unknown_learner(self, db_session):
        assert await ProgressStore(db_session).load(uuid.uuid4()) is None

    async def test_round_trip(self, engine, learner_id, session_maker):
        learner = engine.open_session(learner_id)
        learner.complete_node("A", 92)
        learner.complete_node("B", 40)
        state = learner.state

        async with session_maker() as session:
            await ProgressStore(session).save(state)
            await session.commit()

        async with session_maker() as session:
            loaded = await ProgressStore(session).load(learner_id)

        assert loaded.progress == state.progress
        assert loaded.progress["A"].completed_at == START
        assert loaded.progress["C"].status == NodeStatus.CURRENT
        assert loaded.hearts == state.hearts
        assert loaded.profile == state.profile
        assert loaded.profile.daily_xp == state.profile.daily_xp > 0
        assert loaded.profile.daily_xp_date == START.date()

    async def test_achievements_round_trip(self, engine, learner_id, session_maker):
        state = engine.new_learner_state(learner_id)
        profile = state.profile.unlock_achievement("node-first").unlock_achievement("streak-3")
        state = state.model_copy(update={"profile": profile})

        async with session_maker() as session:
            await ProgressStore(session).save(state)
            await session.commit()

        async with session_maker() as session:
            loaded = await ProgressStore(session).load(learner_id)
        assert loaded.profile.achievements == ["node-first", "streak-3"]

    async def test_depleted_hearts_round_trip(self, engine, learner_id, session_maker, clock):
        learner = engine.open_session(
            learner_id,
            engine.new_learner_state(learner_id).model_copy(
                update={"hearts": HeartState(current=1, max_hearts=5)}
            ),
        )
        start = learner.start_lesson("A")
        learner.answer_exercise(start.attempt, start.exercise.id, "wrong")

        async with session_maker() as session:
            await ProgressStore(session).save(learner.state)
            await session.commit()

        async with session_maker() as session:
            loaded = await ProgressStore(session).load(learner_id)
        assert loaded.hearts.current == 0
        assert loaded.hearts.refill_at == clock.now + engine.rules.refill_after
        assert loaded.hearts.refill_at.tzinfo is not None

    async def test_save_upserts(self, engine, learner_id, session_maker):
        learner = engine.open_session(learner_id)
        async with session_maker() as session:
            store = ProgressStore(session)
            await store.save(learner.state)
            learner.complete_node("A", 75)
            await store.save(learner.state)
            await session.commit()

            count = await session.execute(
                select(func.count(LearnerNodeProgress.id)).where(
                    LearnerNodeProgress.learner_id == learner_id
                )
            )
            assert count.scalar() == 3

        async with session_maker() as session:
            loaded = await ProgressStore(session).load(learner_id)
        assert loaded.progress["A"].stars == 2

    async def test_applied_operations(self, db_session, learner_id):
        store = ProgressStore(db_session)
        assert await store.get_operation("op-1") is None
        await store.record_operation("op-1", learner_id, "complete_node", {"stars": 3})
        applied = await store.get_operation("op-1")
        assert applied.learner_id == learner_id
        assert applied.kind == "complete_node"
        assert applied.result == {"stars": 3}


class TestEventStore:
    """Tests for the append-only learner event log."""

    async def test_entity_from_event(self, db_session, learner_id):
        store = EventStore(db_session)
        node_event = await store.log_from_model(
            learner_id,
            NodeCompletedEvent(node_id="A", score=92, stars=3, best_score=92, attempts=1),
            operation_id="op-7",
        )
        heart_event = await store.log_from_model(
            learner_id,
            HeartsDepletedEvent(refill_at=START),
        )
        quiz_event = await store.log_from_model(
            learner_id,
            QuizStartedEvent(session_id="s-1", topic_id="A", purpose="practice", question_count=10),
        )
        await db_session.flush()

        assert node_event.entity_type == "node"
        assert node_event.entity_id == "A"
        assert node_event.operation_id == "op-7"
        assert node_event.payload["stars"] == 3
        assert heart_event.entity_type == "learner"
        assert heart_event.entity_id == str(learner_id)
        assert heart_event.payload["refill_at"].startswith("2026-03-02T09:00:00")
        assert quiz_event.entity_type == "quiz_session"
        assert quiz_event.entity_id == "s-1"

    async def test_learner_activity(self, db_session, learner_id):
        store = EventStore(db_session)
        other = uuid.uuid4()
        await store.log(EventType.NODE_COMPLETED, "node", "A", learner_id, {"score": 80})
        await store.log(EventType.NODE_UNLOCKED, "node", "B", learner_id, {"unlocked_by": "A"})
        await store.log(EventType.NODE_COMPLETED, "node", "A", other, {"score": 50})
        await db_session.flush()

        activity = await store.get_learner_activity(learner_id)
        assert len(activity) == 2
        assert {e.entity_id for e in activity} == {"A", "B"}

        completed = await store.get_learner_activity(
            learner_id, event_types=[EventType.NODE_COMPLETED]
        )
        assert len(completed) == 1

        assert len(await store.get_learner_activity(other)) == 1
        unlocked = await store.get_learner_activity(
            learner_id, event_types=[EventType.NODE_UNLOCKED]
        )
        assert [e.payload for e in unlocked] == [{"unlocked_by": "A"}]

    async def test_payload_values_serialized(self, db_session, learner_id):
        store = EventStore(db_session)
        event = await store.log(
            EventType.LEVEL_UP,
            "learner",
            str(learner_id),
            learner_id,
            {"learner": learner_id, "at": START, "nested": {"ids": [learner_id]}},
        )
        assert event.payload == {
            "learner": str(learner_id),
            "at": START.isoformat(),
            "nested": {"ids": [str(learner_id)]},
        }
