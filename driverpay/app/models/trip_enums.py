"""
Trip-related enumerations.
"""

import enum


class LoadType(str, enum.Enum):
    """Load type enumeration."""
    WET = "wet"
    DRY = "dry"


class StopStatus(str, enum.Enum):
    """Stop status enumeration."""
    PENDING = "PENDING"  # Not yet visited
    ARRIVED = "ARRIVED"  # Terminal


class LoadStatus(str, enum.Enum):
    """Load status enumeration (derived, never stored)."""
    NOT_BEGUN = "NOT_BEGUN"  # No start location yet
    IN_PROGRESS = "IN_PROGRESS"  # Begun, at least one pending stop
    ALL_STOPS_ARRIVED = "ALL_STOPS_ARRIVED"  # Waiting for the depot return
    FINISHED = "FINISHED"  # Back at the depot


class TrackingState(str, enum.Enum):
    """Segment tracker state."""
    IDLE = "IDLE"
    TRACKING = "TRACKING"


# Persisted stop id marking a depot-return segment
DEPOT_STOP_ID = "dc"
