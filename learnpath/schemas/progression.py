"""
Pydantic schemas for the progression API.

Engine result models (NodeCompletion, QuizSummary, HeartStatus, ...) are
returned as they are; the schemas here cover requests and the views that
hide answers from the learner.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from learnpath.engines.progression.engine import HeartStatus
from learnpath.engines.progression.quiz_session import QuizPurpose
from learnpath.engines.progression.skill_tree import NodeStatus

AnswerPayload = Union[str, List[str]]


# Requests

class CompleteNodeRequest(BaseModel):
    """Record an attempt on a node with an externally computed score."""

    score: int = Field(ge=0, le=100)
    operation_id: Optional[str] = Field(default=None, max_length=64)


class AnswerRequest(BaseModel):
    """Answer to a lesson exercise."""

    answer: AnswerPayload
    operation_id: Optional[str] = Field(default=None, max_length=64)


class FinishRequest(BaseModel):
    """Body for finishing a lesson or quiz."""

    operation_id: Optional[str] = Field(default=None, max_length=64)


class StartQuizRequest(BaseModel):
    """Start a quiz. Lesson quizzes give node_id; the others give topic_id."""

    purpose: QuizPurpose = QuizPurpose.PRACTICE
    topic_id: Optional[str] = None
    node_id: Optional[str] = None


class QuizAnswerRequest(BaseModel):
    """Answer to the question at `index`."""

    index: int = Field(ge=0)
    answer: AnswerPayload


# Skill tree

class SkillTreeNodeResponse(BaseModel):
    """A node with the learner's progress on it."""

    id: str
    title: str
    prerequisites: List[str]
    xp_reward: int
    lesson_id: str
    topic_id: str
    status: NodeStatus
    stars: int
    attempts: int
    best_score: int
    completed_at: Optional[datetime] = None


class SkillTreeResponse(BaseModel):
    nodes: List[SkillTreeNodeResponse]


class NextNodesResponse(BaseModel):
    nodes: List[SkillTreeNodeResponse]


class PrerequisitesResponse(BaseModel):
    """Prerequisite status of a node and its full prerequisite chain."""

    node_id: str
    met: bool
    missing: List[str]
    completed: List[str]
    chain: List[str]


# Exercises and quizzes

class ExerciseView(BaseModel):
    """An exercise without its answer."""

    id: str
    lesson_id: str
    question_type: str
    prompt: str
    options: Optional[List[str]] = None


class LessonStartResponse(BaseModel):
    attempt_id: str
    lesson_id: str
    node_id: str
    exercise: ExerciseView
    hearts: HeartStatus


class QuestionView(BaseModel):
    """A quiz question without its answer."""

    index: int
    id: str
    question_type: str
    text: str
    options: Optional[List[str]] = None


class QuizStartResponse(BaseModel):
    session_id: str
    topic_id: str
    purpose: QuizPurpose
    node_id: Optional[str] = None
    questions: List[QuestionView]


class QuizAnswerResponse(BaseModel):
    index: int
    correct: bool
    completed: bool
    answered_count: int
    total_questions: int


class QuizStateResponse(BaseModel):
    session_id: str
    completed: bool
    answered_count: int
    total_questions: int


# Learner

class ProfileResponse(BaseModel):
    learner_id: uuid.UUID
    xp: int
    level: int
    xp_in_level: int
    xp_for_next_level: int
    streak: int
    best_streak: int
    mastery_per_topic: Dict[str, int]
    last_completed_at: Optional[datetime] = None
    achievements: List[str]
    daily_xp: int
    daily_goal_xp: int
    daily_goal_met: bool


class AchievementView(BaseModel):
    """A catalog achievement and whether the learner has it."""

    id: str
    title: str
    description: str
    condition: str
    threshold: int
    xp_reward: int
    unlocked: bool


class AchievementsResponse(BaseModel):
    items: List[AchievementView]


class ActivityItem(BaseModel):
    event_type: str
    entity_type: str
    entity_id: str
    operation_id: Optional[str] = None
    payload: Dict[str, Any]
    created_at: datetime


class ActivityResponse(BaseModel):
    items: List[ActivityItem]
