"""
Audit Log Database Model.

Tracks trip lifecycle events so a driver's pay can be explained after the fact.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from driverpay.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for trip events.

    Events logged:
    - TRIP_CREATED / TRIP_FINISHED / TRIP_DELETED
    - LOAD_ADDED / LOAD_EDITED / LOAD_DELETED / STOP_DELETED / LOAD_BEGUN
    - SEGMENT_STARTED / STOP_ARRIVED / DEPOT_ARRIVED
    - MILEAGE_UPDATED / PAY_RECONCILED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(String(128), index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which trip it touched
    trip_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, trip={self.trip_id})>"
