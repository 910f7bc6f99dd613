"""
Location sources.

The segment tracker never talks to GPS hardware directly. It asks a
``LocationSource`` for one-shot boundary fixes and subscribes to its
stream of fixes while a segment is open.
"""

import asyncio
import itertools
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Tuple

from driverpay.app.core.exceptions import LocationPermissionError
from driverpay.app.schemas.tracking import BoundaryFixRequest
from driverpay.app.schemas.trip import GeoPoint

logger = logging.getLogger("driverpay.location")

FixCallback = Callable[[GeoPoint, Optional[datetime]], Awaitable[None]]
ErrorCallback = Callable[[Exception], Awaitable[None]]


class LocationSource:
    """Interface of a device location provider."""

    async def get_current_fix(self) -> GeoPoint:
        """One-shot fix. Raises ``LocationPermissionError`` when denied or unavailable."""
        raise NotImplementedError

    def watch(self, on_fix: FixCallback, on_error: ErrorCallback) -> int:
        """Subscribe to continuous fixes. Returns a subscription handle."""
        raise NotImplementedError

    def cancel(self, handle: int) -> None:
        """Drop a subscription. Unknown handles are ignored."""
        raise NotImplementedError

    async def push(self, fix: GeoPoint, recorded_at: Optional[datetime] = None) -> None:
        """Deliver a fix the device reported to every subscriber."""
        raise NotImplementedError

    async def push_error(self, error: Exception) -> None:
        """Deliver a stream error the device reported to every subscriber."""
        raise NotImplementedError


class ReportedLocationSource(LocationSource):
    """
    Location source fed by fixes the driver's device reports over HTTP.

    The boundary fix comes with the begin/depart/arrive request (or the
    device's error code when it could not get one). Streamed fixes are
    delivered to subscribers through ``push``, one at a time and in order.
    """

    _handles = itertools.count(1)

    def __init__(self, fix: Optional[GeoPoint] = None, error: Optional[str] = None):
        self._fix = fix
        self._error = error
        self._subscribers: Dict[int, Tuple[FixCallback, ErrorCallback]] = {}

    async def get_current_fix(self) -> GeoPoint:
        if self._fix is None:
            reason = self._error or "NO_FIX"
            raise LocationPermissionError(
                message="Location is required for this action. Enable location access and try again.",
                reason=reason,
            )
        return self._fix

    @classmethod
    def from_request(cls, body: Optional[BoundaryFixRequest]) -> "ReportedLocationSource":
        if body is None:
            return cls()
        fix = body.location.to_point() if body.location is not None else None
        return cls(fix=fix, error=body.location_error)

    def watch(self, on_fix: FixCallback, on_error: ErrorCallback) -> int:
        handle = next(self._handles)
        self._subscribers[handle] = (on_fix, on_error)
        return handle

    def cancel(self, handle: int) -> None:
        self._subscribers.pop(handle, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def push(self, fix: GeoPoint, recorded_at: Optional[datetime] = None) -> None:
        for on_fix, _ in list(self._subscribers.values()):
            await on_fix(fix, recorded_at)

    async def push_error(self, error: Exception) -> None:
        logger.warning("Location stream error: %s", error)
        for _, on_error in list(self._subscribers.values()):
            await on_error(error)


async def acquire_fix(source: LocationSource, timeout_seconds: float) -> GeoPoint:
    """
    One-shot boundary fix with a bounded wait.

    Raises:
        LocationPermissionError: denied, unavailable or timed out
    """
    try:
        return await asyncio.wait_for(source.get_current_fix(), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise LocationPermissionError(
            message="Timed out waiting for a location fix",
            reason="TIMEOUT",
        ) from exc
