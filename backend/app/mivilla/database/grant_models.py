"""MiVilla - Grant Models

住户/家属/访客授权记录，可选的绝对过期时间
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String

from mivilla.database.config import Base


class GrantKind(str, enum.Enum):
    """授权类型"""
    RESIDENT = "Resident"
    FAMILY = "Family"
    VISITOR = "Visitor"
    DELIVERY = "Delivery"


class Grant(Base):
    """授权记录

    expiration_date 为空表示永久有效；到期后由清理任务删除。
    """
    __tablename__ = "grants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    unit = Column(String(20), nullable=False)
    kind = Column(String(16), nullable=False, default=GrantKind.RESIDENT.value)
    license_plate = Column(String(20), nullable=True)
    expiration_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_grants_expiration_date", "expiration_date"),
    )

    def __repr__(self):
        return f"<Grant(tenant='{self.tenant_id}', name='{self.name}', unit='{self.unit}')>"
