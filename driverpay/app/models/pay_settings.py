"""
Pay Settings database model.

One row per driver holding the rate rules used to compute trip pay.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime
from sqlalchemy.sql import func
from driverpay.app.db.session import Base


class PaySettings(Base):
    """
    Pay settings model.

    Night window bounds are minutes since midnight; the window wraps past
    midnight when ``night_start_minutes`` > ``night_end_minutes``.
    """
    __tablename__ = "pay_settings"

    user_id = Column(String(128), primary_key=True)

    # Base rates
    cpm = Column(Float, default=0.0, nullable=False)  # dollars per mile
    pay_per_load = Column(Float, default=0.0, nullable=False)
    pay_per_stop = Column(Float, default=0.0, nullable=False)

    # Night pay
    night_pay_enabled = Column(Boolean, default=False, nullable=False)
    night_start_minutes = Column(Integer, default=1140, nullable=False)  # 19:00
    night_end_minutes = Column(Integer, default=180, nullable=False)  # 03:00
    night_extra_cpm = Column(Float, default=0.0, nullable=False)

    # Driver's wall clock
    timezone = Column(String(64), default="UTC", nullable=False)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<PaySettings(user_id='{self.user_id}', cpm={self.cpm}, night={self.night_pay_enabled})>"
