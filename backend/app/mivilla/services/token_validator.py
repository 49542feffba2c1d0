"""Access token validator.

校验扫码得到的载荷并原子地消费一次使用额度。

校验顺序（任一步失败立即返回）：
1. 解析载荷               -> MALFORMED_PAYLOAD
2. 租户一致               -> CROSS_TENANT
3. 在本租户分区中查找     -> UNKNOWN_TOKEN
4. 未过期                 -> EXPIRED
5. 仍有剩余次数           -> QUOTA_EXHAUSTED
6. 原子消费（比较并递增）
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from mivilla.models.access_schemas import Principal, TokenRecord
from mivilla.services import errors
from mivilla.services.errors import (
    AccessError,
    CrossTenant,
    Expired,
    QuotaExhausted,
    UnknownToken,
    VALIDATION_ERRORS,
)
from mivilla.services.payload_codec import decode_payload
from mivilla.services.token_store import ConsumeOutcome, TokenStore
from mivilla.utils.time import utc_now

logger = logging.getLogger(__name__)

ACCESS_GRANTED_MESSAGE = "允许通行"


@dataclass
class ValidationResult:
    """校验结果"""
    valid: bool
    code: str
    message: str
    record: Optional[TokenRecord] = None
    remaining_uses: Optional[int] = None
    tenant_id: Optional[str] = None
    token_id: Optional[str] = None

    @staticmethod
    def granted(record: TokenRecord) -> "ValidationResult":
        return ValidationResult(
            valid=True,
            code=errors.OK,
            message=ACCESS_GRANTED_MESSAGE,
            record=record,
            remaining_uses=record.max_uses - record.current_uses,
            tenant_id=record.tenant_id,
            token_id=record.id,
        )

    @staticmethod
    def denied(error: AccessError, token_id: Optional[str] = None) -> "ValidationResult":
        return ValidationResult(valid=False, code=error.code, message=error.message, token_id=token_id)


_OUTCOME_ERRORS = {
    ConsumeOutcome.NOT_FOUND: UnknownToken,
    ConsumeOutcome.EXPIRED: Expired,
    ConsumeOutcome.EXHAUSTED: QuotaExhausted,
}


class TokenValidator:
    """二维码校验服务

    每次调用相互独立；除存储中的计数外不保存状态。
    """

    def __init__(self, store: TokenStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self._clock = clock

    def validate(self, raw_payload: str, validator: Principal) -> ValidationResult:
        """校验并消费一次

        Args:
            raw_payload: 扫码器解出的原始字符串
            validator: 校验人（决定可访问的租户分区）

        Returns:
            ValidationResult；五类校验失败都以 valid=False 返回

        Raises:
            StoreUnavailable: 存储失败，不在本层重试
        """
        token_id = None
        try:
            payload = decode_payload(raw_payload)
            token_id = payload.id
            record = self._consume(payload.id, payload.tenant_id, validator)
        except VALIDATION_ERRORS as e:
            logger.warning(
                f"Access denied: code={e.code} tenant={validator.tenant_id} "
                f"token={token_id} validator={validator.user_id}"
            )
            return ValidationResult.denied(e, token_id=token_id)

        logger.info(
            f"Access granted: tenant={record.tenant_id} token={record.id} "
            f"uses={record.current_uses}/{record.max_uses}"
        )
        return ValidationResult.granted(record)

    def _consume(self, token_id: str, payload_tenant_id: str, validator: Principal) -> TokenRecord:
        if payload_tenant_id != validator.tenant_id:
            raise CrossTenant(payload_tenant_id)

        partition = self.store.partition(validator.tenant_id)
        record = partition.get(token_id)
        if record is None:
            raise UnknownToken()

        now = self._clock()
        if record.is_expired(now):
            raise Expired()
        if record.current_uses >= record.max_uses:
            raise QuotaExhausted()

        # 上面的检查只是快速失败；并发下以原子消费的结果为准
        result = partition.try_consume(token_id, now)
        if not result.consumed:
            raise _OUTCOME_ERRORS[result.outcome]()
        return result.record
