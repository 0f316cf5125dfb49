"""
Learning Progression Engine

Components:
- Mastery Scorer: score -> stars, XP and topic mastery
- Heart Economy: bounded lives with timed refill and recovery quiz
- Exercise Rotation: unseen exercises within a lesson attempt
- Skill Tree: prerequisite DAG with unlock cascade
- Quiz Session Runner: drawn question sets, scoring, summaries
- Achievements: catalog milestones with XP rewards
- Engine / LearnerSession: per-learner store object tying them together
"""

from learnpath.engines.progression.achievements import (
    Achievement,
    AchievementChecker,
    AchievementCondition,
)
from learnpath.engines.progression.catalog import Catalog, load_catalog
from learnpath.engines.progression.engine import (
    EngineRules,
    LearnerSession,
    LearnerState,
    LearningProgressionEngine,
)
from learnpath.engines.progression.errors import (
    CollaboratorUnavailable,
    InvalidTransition,
    NoExerciseAvailable,
    NoQuestionsAvailable,
    OutOfLives,
    PrerequisitesNotMet,
    ProgressionError,
)
from learnpath.engines.progression.exercise_rotation import (
    ExerciseRotationSelector,
    LessonAttempt,
    LessonAttemptRegistry,
)
from learnpath.engines.progression.heart_economy import HeartEconomy, HeartState
from learnpath.engines.progression.mastery_scorer import MasteryScorer, score_to_stars
from learnpath.engines.progression.quiz_session import (
    QuizPurpose,
    QuizSession,
    QuizSessionRegistry,
    QuizSummary,
)
from learnpath.engines.progression.skill_tree import (
    NodeCompletion,
    NodeStatus,
    ProgressionNode,
    SkillTree,
    UserNodeProgress,
)

__all__ = [
    "Achievement",
    "AchievementChecker",
    "AchievementCondition",
    "Catalog",
    "load_catalog",
    "EngineRules",
    "LearnerSession",
    "LearnerState",
    "LearningProgressionEngine",
    "CollaboratorUnavailable",
    "InvalidTransition",
    "NoExerciseAvailable",
    "NoQuestionsAvailable",
    "OutOfLives",
    "PrerequisitesNotMet",
    "ProgressionError",
    "ExerciseRotationSelector",
    "LessonAttempt",
    "LessonAttemptRegistry",
    "HeartEconomy",
    "HeartState",
    "MasteryScorer",
    "score_to_stars",
    "QuizPurpose",
    "QuizSession",
    "QuizSessionRegistry",
    "QuizSummary",
    "NodeCompletion",
    "NodeStatus",
    "ProgressionNode",
    "SkillTree",
    "UserNodeProgress",
]
