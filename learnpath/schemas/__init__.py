"""
Pydantic schemas for API request/response validation.
"""

from learnpath.schemas.common import ErrorResponse, HealthResponse
from learnpath.schemas.progression import (
    ActivityItem,
    ActivityResponse,
    AnswerRequest,
    CompleteNodeRequest,
    ExerciseView,
    FinishRequest,
    LessonStartResponse,
    NextNodesResponse,
    PrerequisitesResponse,
    ProfileResponse,
    QuestionView,
    QuizAnswerRequest,
    QuizAnswerResponse,
    QuizStartResponse,
    QuizStateResponse,
    SkillTreeNodeResponse,
    SkillTreeResponse,
    StartQuizRequest,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "ActivityItem",
    "ActivityResponse",
    "AnswerRequest",
    "CompleteNodeRequest",
    "ExerciseView",
    "FinishRequest",
    "LessonStartResponse",
    "NextNodesResponse",
    "PrerequisitesResponse",
    "ProfileResponse",
    "QuestionView",
    "QuizAnswerRequest",
    "QuizAnswerResponse",
    "QuizStartResponse",
    "QuizStateResponse",
    "SkillTreeNodeResponse",
    "SkillTreeResponse",
    "StartQuizRequest",
]
