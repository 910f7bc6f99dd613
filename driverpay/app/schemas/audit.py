"""
Audit trail schemas.
"""

from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime


class AuditLogResponse(BaseModel):
    """Schema for one trip audit entry."""
    id: int
    actor_id: Optional[str]
    action: str
    trip_id: Optional[int]
    meta_data: Optional[dict]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    """Schema for a trip's audit trail."""
    logs: List[AuditLogResponse]
    total: int
