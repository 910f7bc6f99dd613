"""
Trip database model.

A trip is one driving shift: odometer readings, the loads hauled and the
live-tracking state of the leg currently being driven.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, JSON
from sqlalchemy.sql import func
from driverpay.app.db.session import Base


class Trip(Base):
    """
    Trip model.

    Loads and their stops are stored as one JSON document on the row, in
    creation order; stop order inside a load is the visit order.
    ``total_pay`` is derived and written alongside every change to
    mileage, loads or stops.
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    user_id = Column(String(128), nullable=False, index=True)

    # Odometer
    start_mileage = Column(Float, nullable=False)
    current_mileage = Column(Float, nullable=False)
    end_mileage = Column(Float, nullable=True)
    night_miles = Column(Float, default=0.0, nullable=False)

    # Loads (list of load documents with nested stops)
    loads = Column(JSON, default=list, nullable=False)

    # Pay (derived)
    total_pay = Column(Float, default=0.0, nullable=False)

    # Lifecycle
    is_finished = Column(Boolean, default=False, nullable=False, index=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    # Live tracking (active segment)
    tracking_active = Column(Boolean, default=False, nullable=False)
    tracking_load_id = Column(String(64), nullable=True)
    tracking_stop_id = Column(String(64), nullable=True)  # "dc" while returning to depot
    tracking_miles_buffer = Column(Float, default=0.0, nullable=False)
    tracking_night_miles_buffer = Column(Float, default=0.0, nullable=False)
    tracking_last_location = Column(JSON, nullable=True)  # {"lat": .., "lng": ..}
    tracking_updated_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Trip(id={self.id}, user_id='{self.user_id}', finished={self.is_finished}, pay={self.total_pay})>"
