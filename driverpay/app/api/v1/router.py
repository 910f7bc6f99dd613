"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from driverpay.app.api.v1.endpoints import settings, trips, loads, live_tracking

router = APIRouter()

# Pay settings
router.include_router(settings.router)

# Trips, odometer and earnings
router.include_router(trips.router)

# Loads and stops
router.include_router(loads.router)

# Live segment tracking
router.include_router(live_tracking.router)
