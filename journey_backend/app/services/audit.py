"""
Audit logging service for journey lifecycle events and network refreshes.

Entries are added to the caller's session and flushed; the caller commits
them together with the change they describe.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from journey_backend.app.models.audit_log import AuditLog
from journey_backend.app.models.journey_enums import JourneyEvent, JourneyStatus


class AuditAction:
    """Standardized audit action constants."""
    JOURNEY_PLANNED = "JOURNEY_PLANNED"
    JOURNEY_STARTED = "JOURNEY_STARTED"
    JOURNEY_COMPLETED = "JOURNEY_COMPLETED"
    JOURNEY_CANCELLED = "JOURNEY_CANCELLED"
    JOURNEY_RATED = "JOURNEY_RATED"
    JOURNEY_WAITING_CORRECTED = "JOURNEY_WAITING_CORRECTED"

    NETWORK_REFRESHED = "NETWORK_REFRESHED"


# Lifecycle event -> audit action
EVENT_ACTIONS = {
    JourneyEvent.START: AuditAction.JOURNEY_STARTED,
    JourneyEvent.COMPLETE: AuditAction.JOURNEY_COMPLETED,
    JourneyEvent.CANCEL: AuditAction.JOURNEY_CANCELLED,
    JourneyEvent.RATE: AuditAction.JOURNEY_RATED,
}


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[str] = None,
    journey_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record an audit event in the current transaction.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: Opaque id of the caller, None for system actions
        journey_id: External id of the journey, if any
        metadata: Additional context as JSON

    Returns:
        Pending AuditLog instance (flushed, not committed)
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        journey_id=journey_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def log_journey_transition(
    db: AsyncSession,
    journey,
    event: JourneyEvent,
    previous_status: JourneyStatus,
    actor_id: Optional[str] = None
) -> AuditLog:
    """Log a lifecycle event applied to a journey."""
    metadata = {
        "from": JourneyStatus(previous_status).value,
        "to": JourneyStatus(journey.status).value,
    }
    if event == JourneyEvent.CANCEL:
        metadata["reason"] = journey.cancellation_reason
    if event == JourneyEvent.RATE:
        metadata["rating"] = journey.rating

    return await log_event(
        db=db,
        action=EVENT_ACTIONS[JourneyEvent(event)],
        actor_id=actor_id if actor_id is not None else journey.user_id,
        journey_id=journey.journey_id,
        metadata=metadata
    )


async def get_journey_audit_trail(
    db: AsyncSession,
    journey_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if journey_id:
        query = query.where(AuditLog.journey_id == journey_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
