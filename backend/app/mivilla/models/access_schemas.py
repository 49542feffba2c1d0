"""MiVilla - Access Schemas

访问二维码 Pydantic 模型
- Principal / Subject：签发与校验的参与方
- TokenPayload：二维码中携带的轻量引用
- TokenRecord：存储中的完整记录
"""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from mivilla.database.access_token_models import TokenStatus
from mivilla.database.audit_log_models import AccessEventType
from mivilla.utils.time import as_utc


# max_uses / current_uses 为有符号 64 位整数列
MAX_USES = 2**63 - 1


class Role(str, enum.Enum):
    """用户角色"""
    ADMIN = "X"        # 管理员：全部权限
    RECEPTION = "A"    # 前台/门卫：只校验
    RESIDENT = "B"     # 住户：为本单元签发


class Principal(BaseModel):
    """操作人（绑定租户的身份）"""
    user_id: str
    tenant_id: str
    name: str
    role: Role
    unit: Optional[str] = None


class Subject(BaseModel):
    """二维码授权访问的住户/单元"""
    id: str
    tenant_id: str
    name: str
    unit: str


class TokenPayload(BaseModel):
    """二维码载荷：只是指针，不包含配额/过期信息"""
    id: str
    tenant_id: str
    version: int = 1


class TokenRecord(BaseModel):
    """二维码完整记录"""
    id: str
    tenant_id: str
    subject_id: str
    subject_name: str
    subject_unit: str
    visitor_name: str = "Invitado"
    issued_by_id: str
    issued_by_name: str
    created_at: datetime
    expires_at: datetime
    max_uses: int
    current_uses: int
    status: TokenStatus

    model_config = ConfigDict(from_attributes=True)

    def is_expired(self, now: datetime) -> bool:
        """在 expires_at 当刻及之后不可用"""
        return as_utc(now) >= as_utc(self.expires_at)

    def view_status(self, now: datetime) -> TokenStatus:
        """读取时的状态视图

        depleted 以存储为准；expired 只在读取时计算。
        """
        if self.status == TokenStatus.DEPLETED:
            return TokenStatus.DEPLETED
        if self.is_expired(now):
            return TokenStatus.EXPIRED
        return TokenStatus.ACTIVE

    @property
    def remaining_uses(self) -> int:
        return self.max_uses - self.current_uses


# ========== API 请求/响应 ==========

class IssueTokenRequest(BaseModel):
    """签发二维码"""
    subject_id: str = Field(..., min_length=1, max_length=64)
    subject_name: str = Field(..., min_length=1, max_length=100)
    subject_unit: str = Field(..., min_length=1, max_length=20)
    max_uses: int = Field(1, ge=1, le=MAX_USES)
    expires_at: Optional[datetime] = None
    visitor_name: Optional[str] = Field(None, max_length=100)


class IssueTokenResponse(BaseModel):
    """签发结果：payload 交给外部渲染器生成二维码图片"""
    payload: str
    token_id: str
    expires_at: datetime
    max_uses: int


class ValidateTokenRequest(BaseModel):
    """校验二维码（扫码器解出的原始字符串）"""
    payload: str


class TokenRecordResponse(BaseModel):
    """二维码记录响应（含读取时状态）"""
    id: str
    tenant_id: str
    subject_id: str
    subject_name: str
    subject_unit: str
    visitor_name: str
    issued_by_id: str
    issued_by_name: str
    created_at: datetime
    expires_at: datetime
    max_uses: int
    current_uses: int
    remaining_uses: int
    status: TokenStatus

    @classmethod
    def from_record(cls, record: TokenRecord, now: datetime) -> "TokenRecordResponse":
        return cls(
            **record.model_dump(exclude={"status"}),
            remaining_uses=record.remaining_uses,
            status=record.view_status(now),
        )


class ValidateTokenResponse(BaseModel):
    """校验结果"""
    valid: bool
    code: str
    message: str
    remaining_uses: Optional[int] = None
    record: Optional[TokenRecordResponse] = None


class TokenListResponse(BaseModel):
    """二维码列表响应"""
    items: list[TokenRecordResponse]
    total: int


class SweepResponse(BaseModel):
    """授权清理结果"""
    deleted_count: int


class AccessEventResponse(BaseModel):
    """审计事件"""
    id: str
    tenant_id: str
    ts: datetime
    event_type: AccessEventType
    actor: Optional[str] = None
    token_id: Optional[str] = None
    grant_id: Optional[str] = None
    reason_code: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
