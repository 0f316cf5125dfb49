"""
Progression Service - runs engine operations against stored learner state.

One call = load state, run the operation on a LearnerSession, save the new
state, log the emitted events and commit. Operations that carry an
operation_id are applied once; replays return the stored result.
"""

import uuid
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.engines.progression.engine import (
    LearnerSession,
    LearnerState,
    LearningProgressionEngine,
)
from learnpath.engines.progression.errors import CollaboratorUnavailable, InvalidTransition
from learnpath.engines.progression.progress_store import ProgressStore
from learnpath.kernel.events.event_store import EventStore
from learnpath.kernel.models.event_log import EventLog
from learnpath.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ProgressionService:
    """
    Usage:
        service = ProgressionService(db, engine)
        completion = await service.run(
            learner_id,
            "complete_node",
            lambda learner: learner.complete_node("place-value", 92),
            operation_id="client-op-1",
        )
    """

    def __init__(self, session: AsyncSession, engine: LearningProgressionEngine):
        self.session = session
        self.engine = engine
        self.store = ProgressStore(session)
        self.event_store = EventStore(session)

    async def open_learner(self, learner_id: uuid.UUID) -> LearnerSession:
        state = await self.store.load(learner_id, max_hearts=self.engine.rules.max_hearts)
        return self.engine.open_session(learner_id, state)

    async def snapshot(self, learner_id: uuid.UUID) -> LearnerState:
        """Current state without running an operation or saving."""
        learner = await self.open_learner(learner_id)
        state = learner.state
        learner.close()
        return state

    async def replay(
        self,
        learner_id: uuid.UUID,
        kind: str,
        operation_id: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        """
        Stored result of an already applied operation, or None.

        Raises InvalidTransition if the id was used by another learner or
        another kind of operation.
        """
        if not operation_id:
            return None
        applied = await self.store.get_operation(operation_id)
        if applied is None:
            return None
        if applied.learner_id != learner_id or applied.kind != kind:
            raise InvalidTransition(
                f"Operation id {operation_id} was already used for another request"
            )
        logger.info(
            "Replaying applied operation",
            extra={"operation_id": operation_id, "kind": kind},
        )
        return applied.result

    async def run(
        self,
        learner_id: uuid.UUID,
        kind: str,
        action: Callable[[LearnerSession], T],
        operation_id: Optional[str] = None,
    ) -> Union[T, Dict[str, Any]]:
        """
        Apply one operation and persist its effects in a single transaction.

        Engine errors propagate before anything is written.
        """
        replayed = await self.replay(learner_id, kind, operation_id)
        if replayed is not None:
            return replayed

        learner = await self.open_learner(learner_id)
        result = action(learner)
        events = learner.close()

        await self.store.save(learner.state)
        for event in events:
            await self.event_store.log_from_model(learner_id, event, operation_id=operation_id)
        if operation_id and isinstance(result, BaseModel):
            await self.store.record_operation(
                operation_id,
                learner_id,
                kind,
                result.model_dump(mode="json"),
            )
        await self._commit()

        logger.debug(
            "Operation applied",
            extra={"kind": kind, "events": [e.event_type.value for e in events]},
        )
        return result

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            logger.error("Commit failed", extra={"error": str(exc)})
            raise CollaboratorUnavailable("database", exc.__class__.__name__) from exc

    async def recent_activity(self, learner_id: uuid.UUID, limit: int = 50) -> List[EventLog]:
        try:
            return await self.event_store.get_learner_activity(learner_id, limit=limit)
        except SQLAlchemyError as exc:
            raise CollaboratorUnavailable("database", exc.__class__.__name__) from exc
