"""MiVilla - Grant Schemas"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from mivilla.database.grant_models import GrantKind
from mivilla.utils.time import as_utc


class GrantRecord(BaseModel):
    """授权记录（住户/家属/访客）"""
    id: str
    tenant_id: str
    name: str
    unit: str
    kind: GrantKind = GrantKind.RESIDENT
    license_plate: Optional[str] = None
    expiration_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    def is_expired(self, now: datetime) -> bool:
        """到期时刻及之后视为过期；没有过期时间的授权永不过期"""
        if self.expiration_date is None:
            return False
        return as_utc(self.expiration_date) <= as_utc(now)
