"""
Progress Store - loads and saves learner state (DB-backed).

Nothing here commits: the request-scoped session commits the saved state and
the event log rows together, or rolls both back.
"""

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.engines.progression.engine import LearnerState
from learnpath.engines.progression.errors import CollaboratorUnavailable
from learnpath.engines.progression.heart_economy import HeartState
from learnpath.engines.progression.rewards import LearnerProfile
from learnpath.engines.progression.skill_tree import NodeStatus, UserNodeProgress
from learnpath.kernel.models.progression import (
    AppliedOperation,
    LearnerHeartState,
    LearnerNodeProgress,
    LearnerProfile as LearnerProfileRow,
)
from learnpath.logging_config import get_logger

logger = get_logger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ProgressStore:
    """Persistence for LearnerState and applied operation results."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @contextmanager
    def _database(self) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error("Database operation failed", extra={"error": str(exc)})
            raise CollaboratorUnavailable("database", exc.__class__.__name__) from exc

    def _row_to_progress(self, row: LearnerNodeProgress) -> UserNodeProgress:
        return UserNodeProgress(
            node_id=row.node_id,
            status=NodeStatus(row.status),
            stars=row.stars,
            attempts=row.attempts,
            best_score=row.best_score,
            completed_at=_aware(row.completed_at),
        )

    def _row_to_profile(self, row: Optional[LearnerProfileRow]) -> LearnerProfile:
        if row is None:
            return LearnerProfile()
        return LearnerProfile(
            xp=row.xp,
            level=row.level,
            xp_in_level=row.xp_in_level,
            streak=row.streak,
            best_streak=row.best_streak,
            mastery_per_topic=dict(row.mastery_per_topic or {}),
            last_completed_at=_aware(row.last_completed_at),
            achievements=list(row.achievements or []),
            daily_xp=row.daily_xp,
            daily_xp_date=row.daily_xp_date,
        )

    async def _progress_rows(self, learner_id: uuid.UUID) -> List[LearnerNodeProgress]:
        q = select(LearnerNodeProgress).where(LearnerNodeProgress.learner_id == learner_id)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def load(self, learner_id: uuid.UUID, max_hearts: int = 5) -> Optional[LearnerState]:
        """Stored state for a learner, or None for a learner never seen before."""
        with self._database():
            progress_rows = await self._progress_rows(learner_id)
            heart_row = await self.session.get(LearnerHeartState, learner_id)
            profile_row = await self.session.get(LearnerProfileRow, learner_id)

        if not progress_rows and heart_row is None and profile_row is None:
            return None

        hearts = (
            HeartState(
                current=heart_row.current,
                max_hearts=heart_row.max_hearts,
                refill_at=_aware(heart_row.refill_at),
            )
            if heart_row is not None
            else HeartState.full(max_hearts)
        )
        return LearnerState(
            learner_id=learner_id,
            progress={row.node_id: self._row_to_progress(row) for row in progress_rows},
            hearts=hearts,
            profile=self._row_to_profile(profile_row),
        )

    async def save(self, state: LearnerState) -> None:
        """Upsert every part of a learner's state."""
        with self._database():
            rows = {row.node_id: row for row in await self._progress_rows(state.learner_id)}
            for node_id, record in state.progress.items():
                row = rows.get(node_id)
                if row is None:
                    row = LearnerNodeProgress(learner_id=state.learner_id, node_id=node_id)
                    self.session.add(row)
                row.status = record.status.value
                row.stars = record.stars
                row.attempts = record.attempts
                row.best_score = record.best_score
                row.completed_at = record.completed_at

            heart_row = await self.session.get(LearnerHeartState, state.learner_id)
            if heart_row is None:
                heart_row = LearnerHeartState(learner_id=state.learner_id)
                self.session.add(heart_row)
            heart_row.current = state.hearts.current
            heart_row.max_hearts = state.hearts.max_hearts
            heart_row.refill_at = state.hearts.refill_at

            profile = state.profile
            profile_row = await self.session.get(LearnerProfileRow, state.learner_id)
            if profile_row is None:
                profile_row = LearnerProfileRow(learner_id=state.learner_id)
                self.session.add(profile_row)
            profile_row.xp = profile.xp
            profile_row.level = profile.level
            profile_row.xp_in_level = profile.xp_in_level
            profile_row.streak = profile.streak
            profile_row.best_streak = profile.best_streak
            profile_row.mastery_per_topic = dict(profile.mastery_per_topic)
            profile_row.last_completed_at = profile.last_completed_at
            profile_row.achievements = list(profile.achievements)
            profile_row.daily_xp = profile.daily_xp
            profile_row.daily_xp_date = profile.daily_xp_date

            await self.session.flush()

    async def get_operation(self, operation_id: str) -> Optional[AppliedOperation]:
        with self._database():
            return await self.session.get(AppliedOperation, operation_id)

    async def record_operation(
        self,
        operation_id: str,
        learner_id: uuid.UUID,
        kind: str,
        result: Dict[str, Any],
    ) -> AppliedOperation:
        """Remember the result of a mutating request for replays."""
        with self._database():
            row = AppliedOperation(
                operation_id=operation_id,
                learner_id=learner_id,
                kind=kind,
                result=result,
            )
            self.session.add(row)
            await self.session.flush()
            return row
