"""
Heart Economy - bounded life counter with a timed refill and a recovery quiz.

States:
- Full/Partial: current > 0, no refill pending
- Depleted: current == 0, refill_at set

The refill deadline is stored as an absolute timestamp and evaluated lazily:
every read or mutation calls refresh(now) first, so no timer has to run and
state survives restarts.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import BaseModel, Field, model_validator

from learnpath.engines.progression.errors import OutOfLives
from learnpath.kernel.events.event_types import (
    BaseEvent,
    HeartsDepletedEvent,
    HeartsRefilledEvent,
)
from learnpath.logging_config import get_logger

logger = get_logger(__name__)

EventSink = Callable[[BaseEvent], None]


class HeartState(BaseModel):
    """A learner's hearts."""

    current: int = Field(ge=0)
    max_hearts: int = Field(default=5, ge=1)
    refill_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "HeartState":
        if self.current > self.max_hearts:
            raise ValueError("current hearts cannot exceed max_hearts")
        if self.refill_at is not None and self.current != 0:
            raise ValueError("refill_at is only set while hearts are depleted")
        return self

    @property
    def depleted(self) -> bool:
        return self.current == 0

    @classmethod
    def full(cls, max_hearts: int = 5) -> "HeartState":
        return cls(current=max_hearts, max_hearts=max_hearts)


class HeartEconomy:
    """
    Heart rules. Stateless: every method takes a HeartState and returns a new one.

    Events go to `sink` as they happen; the engine buffers them per operation.
    """

    def __init__(
        self,
        max_hearts: int = 5,
        refill_after: timedelta = timedelta(minutes=20),
        recovery_pass_score: int = 50,
        sink: Optional[EventSink] = None,
    ):
        self.max_hearts = max_hearts
        self.refill_after = refill_after
        self.recovery_pass_score = recovery_pass_score
        self._sink = sink

    def _emit(self, event: BaseEvent) -> None:
        if self._sink is not None:
            self._sink(event)

    def initial_state(self) -> HeartState:
        return HeartState.full(self.max_hearts)

    def _refilled(self, reason: str, now: datetime) -> HeartState:
        state = HeartState.full(self.max_hearts)
        self._emit(HeartsRefilledEvent(reason=reason, hearts=state.current, timestamp=now))
        return state

    def refresh(self, state: HeartState, now: datetime) -> HeartState:
        """Apply timer expiry if the refill deadline has passed."""
        if state.depleted and state.refill_at is not None and now >= state.refill_at:
            logger.info("Hearts refilled by timer", extra={"refill_at": state.refill_at.isoformat()})
            return self._refilled("timer", now)
        if state.depleted and state.refill_at is None:
            # Depleted without a deadline can only come from hand-edited state
            return state.model_copy(update={"refill_at": now + self.refill_after})
        return state

    def ensure_can_answer(self, state: HeartState, now: datetime) -> HeartState:
        """Refresh, then raise OutOfLives if still depleted."""
        state = self.refresh(state, now)
        if state.depleted:
            raise OutOfLives(refill_at=state.refill_at)
        return state

    def record_wrong_answer(self, state: HeartState, now: datetime) -> HeartState:
        """Lose one heart; losing the last one schedules the refill."""
        state = self.refresh(state, now)
        if state.depleted:
            return state
        current = state.current - 1
        if current > 0:
            return state.model_copy(update={"current": current})

        refill_at = now + self.refill_after
        logger.info("Hearts depleted", extra={"refill_at": refill_at.isoformat()})
        self._emit(HeartsDepletedEvent(refill_at=refill_at, timestamp=now))
        return state.model_copy(update={"current": 0, "refill_at": refill_at})

    def apply_recovery_quiz(self, state: HeartState, score: int, now: datetime) -> HeartState:
        """A passing recovery quiz refills hearts at once; a failing one changes nothing."""
        state = self.refresh(state, now)
        if score < self.recovery_pass_score:
            logger.info("Recovery quiz failed", extra={"score": score})
            return state
        if state.current == state.max_hearts:
            return state
        logger.info("Hearts refilled by recovery quiz", extra={"score": score})
        return self._refilled("recovery", now)

    def remaining(self, state: HeartState, now: datetime) -> Optional[timedelta]:
        """Time left until the timed refill, or None when not depleted."""
        if not state.depleted or state.refill_at is None:
            return None
        return max(state.refill_at - now, timedelta(0))
