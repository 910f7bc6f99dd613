"""
Trip record store.

Get/create/update/delete access to trip records. Every write that
touches mileage, loads or stops must carry the recomputed ``total_pay``
in the same update so the stored pay is never stale.
"""

import logging
from typing import Any, List, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from driverpay.app.core.exceptions import PersistenceError
from driverpay.app.models.trip import Trip
from driverpay.app.schemas.trip import TripRecord

logger = logging.getLogger("driverpay.store")

# Fields whose change invalidates total_pay
PAY_DEPENDENT_FIELDS = frozenset({"current_mileage", "night_miles", "loads"})

# Fields a caller may write through ``update``
UPDATABLE_FIELDS = frozenset({
    "current_mileage", "end_mileage", "night_miles", "loads", "total_pay",
    "is_finished", "finished_at",
    "tracking_active", "tracking_load_id", "tracking_stop_id",
    "tracking_miles_buffer", "tracking_night_miles_buffer",
    "tracking_last_location", "tracking_updated_at",
})


def _to_column_value(value: Any) -> Any:
    """Convert pydantic values into JSON-column friendly data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_to_column_value(item) for item in value]
    return value


class TripStore:
    """Async SQLAlchemy-backed trip store."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fetch(self, trip_id: int) -> Optional[Trip]:
        # Other requests may have committed since this session loaded the row
        result = await self.db.execute(
            select(Trip).where(Trip.id == trip_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, trip_id: int) -> Optional[TripRecord]:
        try:
            trip = await self._fetch(trip_id)
        except SQLAlchemyError as exc:
            logger.error("Failed to read trip %s: %s", trip_id, exc)
            raise PersistenceError("Could not load trip") from exc
        return TripRecord.model_validate(trip) if trip else None

    async def create(self, user_id: str, start_mileage: float) -> int:
        """
        Create an empty trip.

        Returns:
            New trip id
        """
        trip = Trip(
            user_id=user_id,
            start_mileage=start_mileage,
            current_mileage=start_mileage,
            night_miles=0.0,
            loads=[],
            total_pay=0.0,
            is_finished=False,
        )
        try:
            self.db.add(trip)
            await self.db.commit()
            await self.db.refresh(trip)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Failed to create trip for user %s: %s", user_id, exc)
            raise PersistenceError("Could not create trip") from exc
        return trip.id

    async def update(self, trip_id: int, **fields: Any) -> TripRecord:
        """
        Apply a partial update in one commit.

        Raises:
            ValueError: unknown field, or a pay-dependent field written
                without ``total_pay``
            PersistenceError: trip missing or the write failed
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown trip fields: {sorted(unknown)}")
        if PAY_DEPENDENT_FIELDS & set(fields) and "total_pay" not in fields:
            raise ValueError("total_pay must be written together with mileage, loads or stops")

        try:
            trip = await self._fetch(trip_id)
            if trip is None:
                raise PersistenceError(f"Trip {trip_id} no longer exists")
            for name, value in fields.items():
                setattr(trip, name, _to_column_value(value))
            await self.db.commit()
            await self.db.refresh(trip)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Failed to update trip %s: %s", trip_id, exc)
            raise PersistenceError("Could not save trip") from exc
        return TripRecord.model_validate(trip)

    async def delete(self, trip_id: int) -> bool:
        try:
            trip = await self._fetch(trip_id)
            if trip is None:
                return False
            await self.db.delete(trip)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Failed to delete trip %s: %s", trip_id, exc)
            raise PersistenceError("Could not delete trip") from exc
        return True

    async def list_by_user(self, user_id: str) -> List[TripRecord]:
        """All trips of a user, newest first."""
        try:
            result = await self.db.execute(
                select(Trip).where(Trip.user_id == user_id).order_by(Trip.created_at.desc(), Trip.id.desc())
            )
        except SQLAlchemyError as exc:
            logger.error("Failed to list trips for user %s: %s", user_id, exc)
            raise PersistenceError("Could not list trips") from exc
        return [TripRecord.model_validate(trip) for trip in result.scalars().all()]

