"""Audit Log Models

访问审计日志 ORM 模型，记录二维码签发、校验与授权过期事件。
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, String, Text

from mivilla.database.config import Base


class AccessEventType(str, enum.Enum):
    """审计事件类型"""
    TOKEN_ISSUED = "token_issued"
    TOKEN_CONSUMED = "token_consumed"
    TOKEN_REJECTED = "token_rejected"
    GRANT_EXPIRED = "grant_expired"


class AccessAuditLog(Base):
    """审计日志表"""

    __tablename__ = "access_audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), nullable=False, index=True)
    ts = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    event_type = Column(Enum(AccessEventType), nullable=False, index=True)
    actor = Column(String(100), nullable=True)

    token_id = Column(String(36), nullable=True, index=True)
    grant_id = Column(String(36), nullable=True)
    reason_code = Column(String(32), nullable=True)

    # 扩展信息
    details = Column(Text, nullable=True)  # JSON 字符串

    def __repr__(self) -> str:
        return f"<AccessAuditLog {self.id} {self.event_type.value} tenant={self.tenant_id}>"
