"""
Pay settings store.

One settings record per driver, read by every trip session to price
mileage, loads and stops.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from driverpay.app.core.exceptions import PersistenceError
from driverpay.app.models.pay_settings import PaySettings
from driverpay.app.schemas.pay import PaySettingsResponse, PaySettingsSchema

logger = logging.getLogger("driverpay.store")


class SettingsStore:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> Optional[PaySettingsResponse]:
        try:
            row = await self.db.get(PaySettings, user_id)
        except SQLAlchemyError as exc:
            logger.error("Failed to read settings for user %s: %s", user_id, exc)
            raise PersistenceError("Could not load pay settings") from exc
        return PaySettingsResponse.model_validate(row) if row else None

    async def set(self, user_id: str, values: PaySettingsSchema) -> PaySettingsResponse:
        """Create or replace the user's settings."""
        try:
            row = await self.db.get(PaySettings, user_id)
            if row is None:
                row = PaySettings(user_id=user_id)
                self.db.add(row)
            for name, value in values.model_dump().items():
                setattr(row, name, value)
            await self.db.commit()
            await self.db.refresh(row)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Failed to save settings for user %s: %s", user_id, exc)
            raise PersistenceError("Could not save pay settings") from exc
        return PaySettingsResponse.model_validate(row)

    async def get_or_default(self, user_id: str) -> PaySettingsSchema:
        """Stored settings, or zero rates with night pay off when none exist."""
        stored = await self.get(user_id)
        return stored if stored is not None else PaySettingsSchema()
