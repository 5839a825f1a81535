"""Assignment History - append-only audit trail of supervisor changes.

Rows are only ever inserted. Writes happen inside the same unit of work
as the status change that caused them, so the per-request lock taken by
the workflow already serializes them.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from demolition_supervision.domain.enums import AssignmentEventType
from demolition_supervision.domain.models import AssignmentEvent, DemolitionRequest

logger = logging.getLogger(__name__)


async def _next_sequence(db: AsyncSession, request_id: int) -> int:
    result = await db.execute(
        select(func.max(AssignmentEvent.sequence)).where(
            AssignmentEvent.request_id == request_id
        )
    )
    current = result.scalar_one_or_none()
    return (current or 0) + 1


async def record_event(
    db: AsyncSession,
    request: DemolitionRequest,
    event_type: AssignmentEventType,
    supervisor_id: Optional[int] = None,
    supervisor_name: Optional[str] = None,
    reason: Optional[str] = None,
    caller=None,
) -> AssignmentEvent:
    """Append one event for *request* and flush it."""
    event = AssignmentEvent(
        id=str(uuid.uuid4()),
        request_id=request.id,
        sequence=await _next_sequence(db, request.id),
        event_type=event_type.value,
        supervisor_id=supervisor_id,
        supervisor_name=supervisor_name,
        reason=reason,
        actor_role=caller.role.value if caller else None,
        actor_id=caller.user_id if caller else None,
        created_at=datetime.now(timezone.utc),
    )
    db.add(event)
    await db.flush()

    logger.info(
        "Demolition request %s: assignment %s (supervisor=%s, seq=%d)",
        request.id,
        event_type.value,
        supervisor_id,
        event.sequence,
    )
    return event


async def record_mirror_change(
    db: AsyncSession,
    request: DemolitionRequest,
    previous_id: Optional[int],
    previous_name: Optional[str],
    caller=None,
    reason: Optional[str] = None,
) -> list[AssignmentEvent]:
    """Record RELEASED/SELECTED when the mirrored top candidate changed."""
    if previous_id == request.supervisor_id:
        return []

    events = []
    if previous_id is not None:
        events.append(await record_event(
            db, request, AssignmentEventType.RELEASED,
            previous_id, previous_name,
            reason=reason or "no longer the top-ranked candidate",
            caller=caller,
        ))
    if request.supervisor_id is not None:
        events.append(await record_event(
            db, request, AssignmentEventType.SELECTED,
            request.supervisor_id, request.supervisor_name,
            caller=caller,
        ))
    return events


async def list_events(db: AsyncSession, request_id: int) -> list[AssignmentEvent]:
    """Return all events for a request in the order they were written."""
    result = await db.execute(
        select(AssignmentEvent)
        .where(AssignmentEvent.request_id == request_id)
        .order_by(AssignmentEvent.sequence.asc())
    )
    return list(result.scalars().all())
