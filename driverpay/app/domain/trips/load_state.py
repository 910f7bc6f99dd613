"""
Load and stop lifecycle rules.

Stops are visited in order: only the first pending stop of a load may be
departed to, and the depot return opens once every stop has arrived.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Sequence

from driverpay.app.core.exceptions import ResourceNotFoundError
from driverpay.app.models.trip_enums import LoadStatus, LoadType
from driverpay.app.schemas.trip import Load, Stop


def new_id() -> str:
    return uuid.uuid4().hex


def fresh_stops(count: int) -> List[Stop]:
    return [Stop(id=new_id()) for _ in range(count)]


def new_load(stop_count: int, load_type: LoadType, created_at: datetime) -> Load:
    return Load(id=new_id(), stops=fresh_stops(stop_count), load_type=load_type, created_at=created_at)


def find_load(loads: Sequence[Load], load_id: str) -> Load:
    for load in loads:
        if load.id == load_id:
            return load
    raise ResourceNotFoundError("Load", load_id)


def find_stop(load: Load, stop_id: str) -> Stop:
    for stop in load.stops:
        if stop.id == stop_id:
            return stop
    raise ResourceNotFoundError("Stop", stop_id)


def first_pending_stop(load: Load) -> Optional[Stop]:
    """The only stop currently eligible for departure, if any."""
    for stop in load.stops:
        if stop.is_pending:
            return stop
    return None


def load_status(load: Load) -> LoadStatus:
    if load.finished_at is not None:
        return LoadStatus.FINISHED
    if first_pending_stop(load) is None:
        return LoadStatus.ALL_STOPS_ARRIVED
    if load.start_location is not None:
        return LoadStatus.IN_PROGRESS
    return LoadStatus.NOT_BEGUN


def can_depart_to_stop(load: Load, stop_id: str) -> bool:
    pending = first_pending_stop(load)
    return load.finished_at is None and pending is not None and pending.id == stop_id


def can_depart_to_depot(load: Load) -> bool:
    return load.finished_at is None and all(not stop.is_pending for stop in load.stops)


def replace_load(loads: Sequence[Load], updated: Load) -> List[Load]:
    """Copy of ``loads`` with the load of the same id swapped for ``updated``."""
    return [updated if load.id == updated.id else load for load in loads]
