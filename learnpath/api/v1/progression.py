"""
Progression endpoints - skill tree, hearts, lessons, quizzes, learner profile.

Every route acts for the learner named by the X-Learner-ID header. Lesson
attempts and quiz sessions are in-memory; everything else goes through
ProgressionService and is persisted per request.
"""

import copy
from typing import Dict, List, Optional

from fastapi import APIRouter, Query

from learnpath.api.deps import Engine, LearnerId, LessonAttempts, QuizSessions, Service
from learnpath.engines.progression.engine import (
    ExerciseResult,
    HeartStatus,
    LearningProgressionEngine,
    LessonResult,
    QuizOutcome,
)
from learnpath.engines.progression.question_bank import Exercise
from learnpath.engines.progression.quiz_session import QuizSession
from learnpath.engines.progression.skill_tree import NodeCompletion, TreeProgress, UserNodeProgress
from learnpath.schemas.progression import (
    AchievementView,
    AchievementsResponse,
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

router = APIRouter()


def _enum_val(e) -> str:
    return e.value if hasattr(e, "value") else str(e)


def _node_views(
    engine: LearningProgressionEngine,
    progress: Dict[str, UserNodeProgress],
    node_ids: Optional[List[str]] = None,
) -> List[SkillTreeNodeResponse]:
    nodes = engine.tree.nodes
    if node_ids is not None:
        wanted = set(node_ids)
        nodes = [node for node in nodes if node.id in wanted]
    return [
        SkillTreeNodeResponse(
            id=node.id,
            title=node.title,
            prerequisites=list(node.prerequisites),
            xp_reward=node.xp_reward,
            lesson_id=node.lesson,
            topic_id=node.topic,
            status=progress[node.id].status,
            stars=progress[node.id].stars,
            attempts=progress[node.id].attempts,
            best_score=progress[node.id].best_score,
            completed_at=progress[node.id].completed_at,
        )
        for node in nodes
    ]


def _exercise_view(exercise: Exercise) -> ExerciseView:
    return ExerciseView(
        id=exercise.id,
        lesson_id=exercise.lesson_id,
        question_type=_enum_val(exercise.question_type),
        prompt=exercise.prompt,
        options=exercise.options,
    )


def _quiz_state(quiz: QuizSession) -> QuizStateResponse:
    return QuizStateResponse(
        session_id=quiz.id,
        completed=quiz.completed,
        answered_count=len(quiz.answers),
        total_questions=quiz.total_questions,
    )


# Skill tree

@router.get("/skill-tree", response_model=SkillTreeResponse)
async def get_skill_tree(learner_id: LearnerId, service: Service, engine: Engine):
    """Every node with the learner's status, stars and attempts."""
    state = await service.snapshot(learner_id)
    return SkillTreeResponse(nodes=_node_views(engine, state.progress))


@router.get("/skill-tree/progress", response_model=TreeProgress)
async def get_tree_progress(learner_id: LearnerId, service: Service, engine: Engine):
    """Completed node count, percentage and stars across the tree."""
    state = await service.snapshot(learner_id)
    return engine.tree.tree_progress(state.progress)


@router.get("/skill-tree/next", response_model=NextNodesResponse)
async def get_next_nodes(learner_id: LearnerId, service: Service, engine: Engine):
    """Nodes the learner can work on now."""
    state = await service.snapshot(learner_id)
    available = engine.tree.next_available_nodes(state.progress)
    return NextNodesResponse(
        nodes=_node_views(engine, state.progress, [node.id for node in available])
    )


@router.get("/skill-tree/nodes/{node_id}/prerequisites", response_model=PrerequisitesResponse)
async def get_node_prerequisites(
    node_id: str,
    learner_id: LearnerId,
    service: Service,
    engine: Engine,
):
    """Which direct prerequisites are met, plus the transitive chain."""
    state = await service.snapshot(learner_id)
    check = engine.tree.check_prerequisites(state.progress, node_id)
    return PrerequisitesResponse(
        node_id=node_id,
        met=check.met,
        missing=check.missing,
        completed=check.completed,
        chain=engine.tree.prerequisite_chain(node_id),
    )


@router.post("/skill-tree/nodes/{node_id}/complete", response_model=NodeCompletion)
async def complete_node(
    node_id: str,
    data: CompleteNodeRequest,
    learner_id: LearnerId,
    service: Service,
):
    """Record an attempt on a node; returns stars and newly unlocked nodes."""
    return await service.run(
        learner_id,
        "complete_node",
        lambda learner: learner.complete_node(node_id, data.score),
        operation_id=data.operation_id,
    )


# Learner

@router.get("/hearts", response_model=HeartStatus)
async def get_hearts(learner_id: LearnerId, service: Service):
    """Current hearts; an expired refill timer is applied and saved."""
    return await service.run(learner_id, "hearts", lambda learner: learner.hearts())


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(learner_id: LearnerId, service: Service, engine: Engine):
    """XP, level, streak, daily goal, achievements and topic mastery."""
    profile = (await service.snapshot(learner_id)).profile
    daily_xp = profile.daily_xp_on(engine.now())
    return ProfileResponse(
        learner_id=learner_id,
        xp=profile.xp,
        level=profile.level,
        xp_in_level=profile.xp_in_level,
        xp_for_next_level=profile.xp_for_next_level,
        streak=profile.streak,
        best_streak=profile.best_streak,
        mastery_per_topic=profile.mastery_per_topic,
        last_completed_at=profile.last_completed_at,
        achievements=profile.achievements,
        daily_xp=daily_xp,
        daily_goal_xp=engine.rules.daily_goal_xp,
        daily_goal_met=daily_xp >= engine.rules.daily_goal_xp,
    )


@router.get("/achievements", response_model=AchievementsResponse)
async def get_achievements(learner_id: LearnerId, service: Service, engine: Engine):
    """Every catalog achievement, flagged when the learner has unlocked it."""
    unlocked = set((await service.snapshot(learner_id)).profile.achievements)
    return AchievementsResponse(
        items=[
            AchievementView(
                id=achievement.id,
                title=achievement.title,
                description=achievement.description,
                condition=_enum_val(achievement.condition),
                threshold=achievement.threshold,
                xp_reward=achievement.xp_reward,
                unlocked=achievement.id in unlocked,
            )
            for achievement in engine.achievements.achievements
        ]
    )


@router.get("/activity", response_model=ActivityResponse)
async def get_activity(
    learner_id: LearnerId,
    service: Service,
    limit: int = Query(50, ge=1, le=200),
):
    """The learner's most recent events, newest first."""
    events = await service.recent_activity(learner_id, limit=limit)
    return ActivityResponse(
        items=[
            ActivityItem(
                event_type=_enum_val(e.event_type),
                entity_type=e.entity_type,
                entity_id=e.entity_id,
                operation_id=e.operation_id,
                payload=e.payload or {},
                created_at=e.created_at,
            )
            for e in events
        ]
    )


# Lessons

@router.post("/lessons/{lesson_id}/start", response_model=LessonStartResponse)
async def start_lesson(
    lesson_id: str,
    learner_id: LearnerId,
    service: Service,
    attempts: LessonAttempts,
):
    """Start a fresh attempt and serve its first exercise."""
    started = await service.run(
        learner_id,
        "start_lesson",
        lambda learner: learner.start_lesson(lesson_id),
    )
    attempts.put(learner_id, started.attempt)
    return LessonStartResponse(
        attempt_id=started.attempt.id,
        lesson_id=lesson_id,
        node_id=started.attempt.node_id,
        exercise=_exercise_view(started.exercise),
        hearts=started.hearts,
    )


@router.post("/lessons/{lesson_id}/exercises/replace", response_model=ExerciseView)
async def replace_exercise(
    lesson_id: str,
    learner_id: LearnerId,
    service: Service,
    attempts: LessonAttempts,
):
    """Serve an exercise of this lesson the attempt has not seen yet."""
    working = attempts.get(learner_id, lesson_id).model_copy(deep=True)
    exercise = await service.run(
        learner_id,
        "replace_exercise",
        lambda learner: learner.replace_exercise(working),
    )
    attempts.put(learner_id, working)
    return _exercise_view(exercise)


@router.post(
    "/lessons/{lesson_id}/exercises/{exercise_id}/answer",
    response_model=ExerciseResult,
)
async def answer_exercise(
    lesson_id: str,
    exercise_id: str,
    data: AnswerRequest,
    learner_id: LearnerId,
    service: Service,
    attempts: LessonAttempts,
):
    """Grade an answer. A wrong answer costs a heart; 403 while out of hearts."""
    working = attempts.get(learner_id, lesson_id).model_copy(deep=True)
    result = await service.run(
        learner_id,
        "answer_exercise",
        lambda learner: learner.answer_exercise(working, exercise_id, data.answer),
        operation_id=data.operation_id,
    )
    attempts.put(learner_id, working)
    return result


@router.post("/lessons/{lesson_id}/finish", response_model=LessonResult)
async def finish_lesson(
    lesson_id: str,
    learner_id: LearnerId,
    service: Service,
    attempts: LessonAttempts,
    data: Optional[FinishRequest] = None,
):
    """Score the attempt and record it on the lesson's skill tree node."""
    operation_id = data.operation_id if data else None
    # A retry after success finds the attempt already discarded
    replayed = await service.replay(learner_id, "finish_lesson", operation_id)
    if replayed is not None:
        return replayed
    attempt = attempts.get(learner_id, lesson_id)
    result = await service.run(
        learner_id,
        "finish_lesson",
        lambda learner: learner.finish_lesson(attempt),
        operation_id=operation_id,
    )
    attempts.discard(learner_id, lesson_id)
    return result


# Quizzes

@router.post("/quizzes", response_model=QuizStartResponse)
async def start_quiz(
    data: StartQuizRequest,
    learner_id: LearnerId,
    service: Service,
    quizzes: QuizSessions,
):
    """Draw questions and start a quiz; 404 when the topic has no questions."""
    quiz = await service.run(
        learner_id,
        "start_quiz",
        lambda learner: learner.start_quiz(
            purpose=data.purpose,
            topic_id=data.topic_id,
            node_id=data.node_id,
        ),
    )
    quizzes.put(learner_id, quiz)
    return QuizStartResponse(
        session_id=quiz.id,
        topic_id=quiz.topic_id,
        purpose=quiz.purpose,
        node_id=quiz.node_id,
        questions=[
            QuestionView(
                index=index,
                id=question.id,
                question_type=_enum_val(question.question_type),
                text=question.text,
                options=question.options,
            )
            for index, question in enumerate(quiz.questions)
        ],
    )


@router.post("/quizzes/{session_id}/answers", response_model=QuizAnswerResponse)
async def submit_quiz_answer(
    session_id: str,
    data: QuizAnswerRequest,
    learner_id: LearnerId,
    service: Service,
    quizzes: QuizSessions,
):
    """Answer one question; answering the last one completes the quiz."""
    working = copy.deepcopy(quizzes.get(learner_id, session_id))
    answer = await service.run(
        learner_id,
        "submit_quiz_answer",
        lambda learner: learner.submit_quiz_answer(working, data.index, data.answer),
    )
    quizzes.put(learner_id, working)
    return QuizAnswerResponse(
        index=data.index,
        correct=answer.correct,
        completed=working.completed,
        answered_count=len(working.answers),
        total_questions=working.total_questions,
    )


@router.post("/quizzes/{session_id}/end", response_model=QuizStateResponse)
async def end_quiz(
    session_id: str,
    learner_id: LearnerId,
    service: Service,
    quizzes: QuizSessions,
):
    """Stop early; unanswered questions count as wrong."""
    working = copy.deepcopy(quizzes.get(learner_id, session_id))
    await service.run(learner_id, "end_quiz", lambda learner: learner.end_quiz(working))
    quizzes.put(learner_id, working)
    return _quiz_state(working)


@router.post("/quizzes/{session_id}/finish", response_model=QuizOutcome)
async def finish_quiz(
    session_id: str,
    learner_id: LearnerId,
    service: Service,
    quizzes: QuizSessions,
    data: Optional[FinishRequest] = None,
):
    """Score a completed quiz and apply it to hearts or the skill tree."""
    operation_id = data.operation_id if data else None
    replayed = await service.replay(learner_id, "finish_quiz", operation_id)
    if replayed is not None:
        return replayed
    quiz = quizzes.get(learner_id, session_id)
    outcome = await service.run(
        learner_id,
        "finish_quiz",
        lambda learner: learner.finish_quiz(quiz),
        operation_id=operation_id,
    )
    quizzes.discard(learner_id, session_id)
    return outcome
