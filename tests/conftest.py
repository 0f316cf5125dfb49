"""
Pytest fixtures for learning progression tests.
"""

import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from learnpath.database import create_engine_for_url, get_db
from learnpath.engines.progression.catalog import Catalog, load_catalog
from learnpath.engines.progression.engine import EngineRules, LearningProgressionEngine
from learnpath.engines.progression.exercise_rotation import LessonAttemptRegistry
from learnpath.engines.progression.question_bank import (
    Exercise,
    InMemoryQuestionBank,
    Question,
    QuestionType,
)
from learnpath.engines.progression.quiz_session import QuizSessionRegistry
from learnpath.engines.progression.skill_tree import ProgressionNode, SkillTree
from learnpath.kernel.models import Base

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for the engine."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# Engine fixtures

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def chain_nodes() -> List[ProgressionNode]:
    """A -> B -> C, each its own lesson and topic."""
    return [
        ProgressionNode(id="A", title="Counting", xp_reward=100),
        ProgressionNode(id="B", title="Adding", prerequisites=["A"], xp_reward=100),
        ProgressionNode(id="C", title="Carrying", prerequisites=["B"], xp_reward=200),
    ]


@pytest.fixture
def chain_tree(chain_nodes) -> SkillTree:
    return SkillTree(chain_nodes)


@pytest.fixture
def exercises() -> List[Exercise]:
    """Three exercises per lesson; the answer to `<lesson>-<n>` is `<n>`."""
    return [
        Exercise(
            id=f"{lesson}-{n}",
            lesson_id=lesson,
            question_type=QuestionType.SHORT_ANSWER,
            prompt=f"{lesson} exercise {n}",
            correct_answer=str(n),
        )
        for lesson in ("A", "B", "C")
        for n in (1, 2, 3)
    ]


@pytest.fixture
def questions() -> List[Question]:
    """Ten questions for topic A, two for B, none for C."""
    topic_a = [
        Question(
            id=f"qa-{n}",
            topic="A",
            question_type=QuestionType.SHORT_ANSWER,
            text=f"Question {n}",
            correct_answer=f"answer-{n}",
        )
        for n in range(1, 11)
    ]
    topic_b = [
        Question(
            id=f"qb-{n}",
            topic="B",
            question_type=QuestionType.TRUE_FALSE,
            text=f"Statement {n}",
            options=["True", "False"],
            correct_answer="True",
        )
        for n in range(1, 3)
    ]
    return topic_a + topic_b


@pytest.fixture
def bank(exercises, questions, rng) -> InMemoryQuestionBank:
    return InMemoryQuestionBank(exercises, questions, rng=rng)


@pytest.fixture
def answers(exercises, questions) -> Dict[str, object]:
    """Correct answer by exercise or question id."""
    key = {exercise.id: exercise.correct_answer for exercise in exercises}
    key.update({question.id: question.correct_answer for question in questions})
    return key


@pytest.fixture
def engine(chain_tree, bank, clock, rng) -> LearningProgressionEngine:
    return LearningProgressionEngine(chain_tree, bank, rules=EngineRules(), clock=clock, rng=rng)


@pytest.fixture
def learner_id() -> uuid.UUID:
    return uuid.uuid4()


# Database fixtures

@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """File-based SQLite so every connection sees the same database."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'learnpath_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


# API fixtures

@pytest.fixture
def sample_catalog() -> Catalog:
    return load_catalog()


@pytest.fixture
def catalog_answers(sample_catalog) -> Dict[str, object]:
    """Correct answer by id for every exercise and question of the sample catalog."""
    key = {exercise.id: exercise.correct_answer for exercise in sample_catalog.exercises}
    key.update({question.id: question.correct_answer for question in sample_catalog.questions})
    return key


@pytest.fixture
def api_engine(sample_catalog, clock, rng) -> LearningProgressionEngine:
    return LearningProgressionEngine.from_catalog(sample_catalog, clock=clock, rng=rng)


@pytest_asyncio.fixture
async def client(session_maker, api_engine) -> AsyncGenerator[AsyncClient, None]:
    """Async client against the app with a test database and a fresh engine."""
    from learnpath.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # Lifespan does not run under ASGITransport
    app.state.engine = api_engine
    app.state.quiz_sessions = QuizSessionRegistry()
    app.state.lesson_attempts = LessonAttemptRegistry()
    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def learner_headers(learner_id) -> Dict[str, str]:
    return {"X-Learner-ID": str(learner_id)}
