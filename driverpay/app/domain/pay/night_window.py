"""
Night window classifier.

Decides whether a wall-clock instant falls inside the driver's configured
night window. The window is given in minutes since midnight and may wrap
past midnight (e.g. 19:00 -> 03:00).
"""

from datetime import datetime, time
from typing import Union
from zoneinfo import ZoneInfo

from driverpay.app.schemas.pay import PaySettingsSchema

MINUTES_PER_DAY = 24 * 60


def is_night(now: Union[datetime, time], settings: PaySettingsSchema) -> bool:
    """
    Return True if ``now`` is inside the night window.

    - Night pay disabled: always False.
    - start == end: the window covers the whole day.
    - start < end: night iff start <= now < end.
    - start > end (wraps midnight): night iff now >= start or now < end.

    ``now`` is read as wall-clock time; callers convert to the driver's
    zone first.
    """
    if not settings.night_pay_enabled:
        return False

    now_minutes = now.hour * 60 + now.minute
    start = settings.night_start_minutes % MINUTES_PER_DAY
    end = settings.night_end_minutes % MINUTES_PER_DAY

    if start == end:
        return True
    if start < end:
        return start <= now_minutes < end
    return now_minutes >= start or now_minutes < end


def driver_clock(instant: datetime, settings: PaySettingsSchema) -> datetime:
    """
    Wall-clock reading of ``instant`` for the driver.

    Aware instants are converted into the driver's zone. Naive instants
    are taken to be device wall-clock readings already.
    """
    if instant.tzinfo is None:
        return instant
    return instant.astimezone(ZoneInfo(settings.timezone))
