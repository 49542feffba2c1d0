"""Access Error Codes

访问二维码错误分类。每种失败都有稳定的 code 和可读的提示，
校验失败不会自动重试。
"""

from __future__ import annotations


# ==================== 错误码 ====================

MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
CROSS_TENANT = "CROSS_TENANT"
UNKNOWN_TOKEN = "UNKNOWN_TOKEN"
EXPIRED = "EXPIRED"
QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"
INVALID_SUBJECT = "INVALID_SUBJECT"
INVALID_QUOTA = "INVALID_QUOTA"
STORE_UNAVAILABLE = "STORE_UNAVAILABLE"

OK = "OK"


class AccessError(Exception):
    """访问二维码错误基类"""

    code: str = "ACCESS_ERROR"
    default_message: str = "访问被拒绝"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ==================== 校验路径 ====================

class MalformedPayload(AccessError):
    code = MALFORMED_PAYLOAD
    default_message = "二维码无法识别或格式无效"


class CrossTenant(AccessError):
    """载荷属于其他租户（提示中包含对方租户ID，便于排查）"""
    code = CROSS_TENANT

    def __init__(self, foreign_tenant_id: str):
        self.foreign_tenant_id = foreign_tenant_id
        super().__init__(f"二维码属于其他社区（{foreign_tenant_id}）")


class UnknownToken(AccessError):
    code = UNKNOWN_TOKEN
    default_message = "系统中不存在该二维码"


class Expired(AccessError):
    code = EXPIRED
    default_message = "二维码已过期"


class QuotaExhausted(AccessError):
    code = QUOTA_EXHAUSTED
    default_message = "二维码使用次数已用完"


# ==================== 签发路径 ====================

class InvalidSubject(AccessError):
    code = INVALID_SUBJECT
    default_message = "住户不属于当前租户"


class InvalidQuota(AccessError):
    code = INVALID_QUOTA
    default_message = "使用次数必须为正整数且不超过存储上限"


# ==================== 存储 ====================

class StoreUnavailable(AccessError):
    """存储层 I/O 失败，原样抛给调用方，不在本层重试"""
    code = STORE_UNAVAILABLE
    default_message = "存储暂不可用"


VALIDATION_ERRORS = (MalformedPayload, CrossTenant, UnknownToken, Expired, QuotaExhausted)
