"""MiVilla - Access Token Models

访问二维码存储模型
- 按租户分区：主键为 (tenant_id, id)
- 耗尽后不删除，保留作为审计记录
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Index, String

from mivilla.database.config import Base


class TokenStatus(str, enum.Enum):
    """二维码状态"""
    ACTIVE = "active"        # 可用
    DEPLETED = "depleted"    # 次数已用完（写入存储）
    EXPIRED = "expired"      # 已过期（仅读取时计算，不写入）


class AccessToken(Base):
    """访问二维码记录

    由签发服务创建，仅由校验服务修改（current_uses / status）。
    """
    __tablename__ = "access_tokens"

    tenant_id = Column(String(64), primary_key=True)
    id = Column(String(36), primary_key=True)

    # 被访问的住户/单元（冗余存储）
    subject_id = Column(String(64), nullable=False)
    subject_name = Column(String(100), nullable=False)
    subject_unit = Column(String(20), nullable=False)
    visitor_name = Column(String(100), nullable=False, default="Invitado")

    # 签发人
    issued_by_id = Column(String(64), nullable=False)
    issued_by_name = Column(String(100), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False)

    # 配额
    max_uses = Column(BigInteger, nullable=False)
    current_uses = Column(BigInteger, nullable=False, default=0)
    status = Column(String(16), nullable=False, default=TokenStatus.ACTIVE.value)

    __table_args__ = (
        CheckConstraint("max_uses >= 1", name="ck_access_tokens_max_uses"),
        CheckConstraint(
            "current_uses >= 0 AND current_uses <= max_uses",
            name="ck_access_tokens_current_uses",
        ),
        Index("ix_access_tokens_tenant_created", "tenant_id", "created_at"),
    )

    def __repr__(self):
        return f"<AccessToken(tenant='{self.tenant_id}', id='{self.id}', uses={self.current_uses}/{self.max_uses})>"
