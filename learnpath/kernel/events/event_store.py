"""
Event Store service for append-only learner event logging.

Engine notifications are logged here in the same transaction as the
progression state they describe, before commit.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.kernel.events.event_types import BaseEvent
from learnpath.kernel.models.event_log import EventLog, EventType


class EventStore:
    """
    Service for managing the immutable learner event log.

    Usage:
        event_store = EventStore(session)
        await event_store.log(
            event_type=EventType.NODE_COMPLETED,
            entity_type="node",
            entity_id="algebra-1",
            learner_id=learner_id,
            payload={"score": 92, "stars": 3},
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: str,
        learner_id: uuid.UUID,
        payload: Optional[Dict[str, Any]] = None,
        operation_id: Optional[str] = None,
    ) -> EventLog:
        """
        Log an event to the immutable event log.

        Args:
            event_type: The type of event
            entity_type: The type of entity (learner, node, quiz_session)
            entity_id: The ID of the entity
            learner_id: The learner the event belongs to
            payload: Additional event data
            operation_id: Client operation id that produced the event

        Returns:
            The created EventLog record
        """
        if payload:
            payload = self._serialize_payload(payload)

        event = EventLog(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=str(entity_id),
            learner_id=learner_id,
            operation_id=operation_id,
            payload=payload or {},
        )

        self.session.add(event)
        # Caller flushes/commits after all operations
        return event

    async def log_from_model(
        self,
        learner_id: uuid.UUID,
        payload_model: BaseModel,
        event_type: Optional[EventType] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        operation_id: Optional[str] = None,
    ) -> EventLog:
        """
        Log an event using a Pydantic model as payload.

        Event type and entity are taken from the model when it is a BaseEvent
        and not given explicitly. Learner-scoped events use the learner id as
        their entity id.
        """
        if isinstance(payload_model, BaseEvent):
            event_type = event_type or payload_model.event_type
            entity_type = entity_type or payload_model.entity_type
            entity_id = entity_id or payload_model.entity_id()
        if event_type is None or entity_type is None:
            raise ValueError("event_type and entity_type are required for plain payload models")

        payload = payload_model.model_dump(mode="json")
        return await self.log(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id or str(learner_id),
            learner_id=learner_id,
            payload=payload,
            operation_id=operation_id,
        )

    async def get_learner_activity(
        self,
        learner_id: uuid.UUID,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """
        Get all events for a learner.

        Args:
            learner_id: The learner ID
            since: Start datetime filter
            until: End datetime filter
            event_types: Optional filter for specific event types
            limit: Maximum number of events

        Returns:
            List of EventLog records, newest first
        """
        query = select(EventLog).where(EventLog.learner_id == learner_id)

        if since:
            query = query.where(EventLog.created_at >= since)
        if until:
            query = query.where(EventLog.created_at <= until)
        if event_types:
            query = query.where(EventLog.event_type.in_(event_types))

        query = query.order_by(desc(EventLog.created_at)).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        result = {}
        for key, value in payload.items():
            if isinstance(value, uuid.UUID):
                result[key] = str(value)
            elif isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, dict):
                result[key] = self._serialize_payload(value)
            elif isinstance(value, list):
                result[key] = [
                    self._serialize_payload(v) if isinstance(v, dict)
                    else str(v) if isinstance(v, uuid.UUID)
                    else v.isoformat() if isinstance(v, datetime)
                    else v
                    for v in value
                ]
            else:
                result[key] = value
        return result
