"""
Pay Settings API Endpoints.

Each driver keeps one set of rate rules used to price every trip.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from driverpay.app.db.session import get_db
from driverpay.app.core.dependencies import get_current_user
from driverpay.app.schemas.pay import PaySettingsResponse, PaySettingsSchema
from driverpay.app.services.settings_store import SettingsStore

router = APIRouter(prefix="/settings", tags=["Driver - Pay Settings"])


@router.get("", response_model=PaySettingsResponse)
async def get_settings(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get the current driver's pay settings.

    Drivers who never saved settings get zero rates with night pay off.
    """
    user_id = current_user["user_id"]
    stored = await SettingsStore(db).get(user_id)
    if stored is None:
        return PaySettingsResponse(user_id=user_id, **PaySettingsSchema().model_dump())
    return stored


@router.put("", response_model=PaySettingsResponse)
async def update_settings(
    payload: PaySettingsSchema,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Replace the current driver's pay settings.

    Open trips are repriced the next time they are opened; stored pay
    of finished trips is not recomputed.
    """
    return await SettingsStore(db).set(current_user["user_id"], payload)
