"""
FastAPI dependencies for database sessions, the learner id and engine objects.
"""

import uuid
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.database import get_db
from learnpath.engines.progression.engine import LearningProgressionEngine
from learnpath.engines.progression.exercise_rotation import LessonAttemptRegistry
from learnpath.engines.progression.quiz_session import QuizSessionRegistry
from learnpath.engines.progression.service import ProgressionService
from learnpath.logging_config import learner_id_var

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_learner_id(
    x_learner_id: Annotated[Optional[str], Header()] = None,
) -> uuid.UUID:
    """Learner identity from the X-Learner-ID header (no authentication)."""
    if not x_learner_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Learner-ID header is required",
        )
    try:
        learner_id = uuid.UUID(x_learner_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Learner-ID must be a UUID",
        )
    learner_id_var.set(str(learner_id))
    return learner_id


LearnerId = Annotated[uuid.UUID, Depends(get_learner_id)]


def get_engine(request: Request) -> LearningProgressionEngine:
    return request.app.state.engine


def get_quiz_sessions(request: Request) -> QuizSessionRegistry:
    return request.app.state.quiz_sessions


def get_lesson_attempts(request: Request) -> LessonAttemptRegistry:
    return request.app.state.lesson_attempts


Engine = Annotated[LearningProgressionEngine, Depends(get_engine)]
QuizSessions = Annotated[QuizSessionRegistry, Depends(get_quiz_sessions)]
LessonAttempts = Annotated[LessonAttemptRegistry, Depends(get_lesson_attempts)]


async def get_service(db: DbSession, engine: Engine) -> ProgressionService:
    return ProgressionService(db, engine)


Service = Annotated[ProgressionService, Depends(get_service)]
