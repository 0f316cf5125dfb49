"""
Learning Progression Engine

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from learnpath.api.middleware.request_context import RequestContextMiddleware
from learnpath.api.v1 import router as api_v1_router
from learnpath.config import get_settings
from learnpath.database import close_db, init_db
from learnpath.engines.progression.catalog import load_catalog
from learnpath.engines.progression.engine import EngineRules, LearningProgressionEngine
from learnpath.engines.progression.errors import (
    CollaboratorUnavailable,
    InvalidScore,
    InvalidTransition,
    NoExerciseAvailable,
    NoQuestionsAvailable,
    OutOfLives,
    PrerequisitesNotMet,
    ProgressionError,
    UnknownLesson,
    UnknownNode,
    UnknownQuizSession,
)
from learnpath.engines.progression.exercise_rotation import LessonAttemptRegistry
from learnpath.engines.progression.quiz_session import QuizSessionRegistry
from learnpath.logging_config import configure_logging, get_logger
from learnpath.schemas.common import ErrorResponse, HealthResponse

settings = get_settings()
logger = get_logger(__name__)

# Most specific first: subclasses of InvalidTransition map to their own codes
_ERROR_STATUS = [
    (UnknownNode, status.HTTP_404_NOT_FOUND),
    (UnknownLesson, status.HTTP_404_NOT_FOUND),
    (UnknownQuizSession, status.HTTP_404_NOT_FOUND),
    (InvalidScore, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (PrerequisitesNotMet, status.HTTP_409_CONFLICT),
    (OutOfLives, status.HTTP_403_FORBIDDEN),
    (NoQuestionsAvailable, status.HTTP_404_NOT_FOUND),
    (NoExerciseAvailable, status.HTTP_404_NOT_FOUND),
    (CollaboratorUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for_error(exc: ProgressionError) -> int:
    for error_class, status_code in _ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def build_engine() -> LearningProgressionEngine:
    return LearningProgressionEngine.from_catalog(
        load_catalog(settings.catalog_path),
        rules=EngineRules.from_settings(settings),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Builds the engine and the in-memory session registries, initializes the
    database, and tears everything down on shutdown.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    app.state.engine = build_engine()
    app.state.quiz_sessions = QuizSessionRegistry()
    app.state.lesson_attempts = LessonAttemptRegistry()
    await init_db()
    logger.info(
        "Database initialized",
        extra={"catalog_nodes": len(app.state.engine.tree)},
    )

    yield

    logger.info("Shutting down...")
    app.state.quiz_sessions.clear()
    app.state.lesson_attempts.clear()
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Learning Progression Engine

    Server-authoritative progression state for an adaptive-learning platform.

    ## Features

    - **Skill Tree**: prerequisite graph, stars, unlock cascade
    - **Hearts**: lives lost on wrong answers, timed refill, recovery quiz
    - **Lessons**: non-repeating exercise rotation, lesson scoring
    - **Quizzes**: drawn question sets feeding hearts and the skill tree
    - **Rewards**: XP, levels, daily streak, topic mastery
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

_cors_origins = [
    "http://localhost:3000",
    "http://localhost:5173",  # Vite default
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

# Last added = outermost
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _request_headers(request: Request) -> dict:
    req_id = getattr(request.state, "request_id", None)
    return {"X-Request-ID": req_id} if req_id else {}


@app.exception_handler(ProgressionError)
async def progression_exception_handler(request: Request, exc: ProgressionError):
    """Engine errors are recoverable: report what happened and why."""
    status_code = status_for_error(exc)
    body = ErrorResponse(
        detail=str(exc),
        code=exc.code,
        missing=getattr(exc, "missing", None),
        refill_at=getattr(exc, "refill_at", None),
        request_id=getattr(request.state, "request_id", None),
    )
    log = logger.warning if status_code >= 500 else logger.info
    log(
        "Progression error",
        extra={"code": exc.code, "status_code": status_code, "path": request.url.path},
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=_request_headers(request),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=_request_headers(request),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation error", "errors": errors},
        headers=_request_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    req_id = getattr(request.state, "request_id", None)
    if settings.debug:
        content = {"detail": str(exc), "type": type(exc).__name__, "request_id": req_id}
    else:
        content = {"detail": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_request_headers(request),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Check application health."""
    engine = getattr(request.app.state, "engine", None)
    return HealthResponse(
        status="ok",
        version=settings.version,
        database="connected",
        catalog_nodes=len(engine.tree) if engine is not None else 0,
    )


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "learnpath.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
