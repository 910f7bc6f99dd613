"""
Audit logging service for trip lifecycle events.

Every mutation a driver makes to a trip is recorded so the pay shown on a
finished trip can be traced back to the actions that produced it.
"""

import logging
from typing import Optional, Dict, Any, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select, desc
from driverpay.app.models.audit_log import AuditLog

logger = logging.getLogger("driverpay.audit")


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Trips
    TRIP_CREATED = "TRIP_CREATED"
    TRIP_FINISHED = "TRIP_FINISHED"
    TRIP_DELETED = "TRIP_DELETED"
    MILEAGE_UPDATED = "MILEAGE_UPDATED"
    PAY_RECONCILED = "PAY_RECONCILED"

    # Loads and stops
    LOAD_ADDED = "LOAD_ADDED"
    LOAD_EDITED = "LOAD_EDITED"
    LOAD_DELETED = "LOAD_DELETED"
    STOP_DELETED = "STOP_DELETED"
    LOAD_BEGUN = "LOAD_BEGUN"

    # Live tracking
    SEGMENT_STARTED = "SEGMENT_STARTED"
    STOP_ARRIVED = "STOP_ARRIVED"
    DEPOT_ARRIVED = "DEPOT_ARRIVED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[str] = None,
    trip_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[AuditLog]:
    """
    Log a trip event to the audit log.

    The trip change has already been committed when this runs, so a failed
    audit write is logged and does not fail the request.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        trip_id: Trip the action touched
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance, or None if it could not be written
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        trip_id=trip_id,
        meta_data=metadata,
    )

    try:
        db.add(audit_log)
        await db.commit()
        await db.refresh(audit_log)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Failed to write audit event %s for trip %s: %s", action, trip_id, exc)
        return None

    return audit_log


async def get_trip_audit_trail(
    db: AsyncSession,
    trip_id: int,
    action: Optional[str] = None,
    limit: int = 100
) -> List[AuditLog]:
    """
    Retrieve a trip's audit trail, newest first.

    Args:
        db: Database session
        trip_id: Trip to read events for
        action: Filter by action type
        limit: Maximum number of records to return
    """
    query = select(AuditLog).where(AuditLog.trip_id == trip_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
