"""Access token issuer.

签发访问二维码：写入完整记录，只把轻量载荷交给调用方。
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from mivilla.core.config import settings
from mivilla.database.access_token_models import TokenStatus
from mivilla.models.access_schemas import MAX_USES, Principal, Subject, TokenPayload, TokenRecord
from mivilla.services.errors import InvalidQuota, InvalidSubject
from mivilla.services.payload_codec import encode_payload
from mivilla.services.token_store import DuplicateTokenId, TokenStore
from mivilla.utils.time import as_utc, utc_now

logger = logging.getLogger(__name__)

# uuid4 冲突几乎不可能，重试只是兜底
MAX_ID_ATTEMPTS = 3


def default_expiry(now: datetime | None = None) -> datetime:
    """调用层的默认过期时间：当前时间 + QR_DEFAULT_TTL_HOURS（默认 24 小时）"""
    return (now or utc_now()) + timedelta(hours=settings.QR_DEFAULT_TTL_HOURS)


class TokenIssuer:
    """二维码签发服务"""

    def __init__(
        self,
        store: TokenStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.store = store
        self._clock = clock
        self._id_factory = id_factory

    def issue(
        self,
        principal: Principal,
        subject: Subject,
        max_uses: int,
        expires_at: datetime,
        visitor_name: Optional[str] = None,
    ) -> TokenPayload:
        """签发二维码

        Args:
            principal: 签发人（决定租户分区）
            subject: 被访问的住户/单元，必须与签发人同租户
            max_uses: 使用次数上限，1 <= max_uses <= MAX_USES（存储列的范围）
            expires_at: 绝对过期时间
            visitor_name: 访客名称（可选）

        Returns:
            TokenPayload，仅包含 id / tenant_id / version

        Raises:
            InvalidQuota: max_uses 不是正整数或超出存储范围
            InvalidSubject: subject 属于其他租户
            StoreUnavailable: 存储失败
        """
        if isinstance(max_uses, bool) or not isinstance(max_uses, int) or not 1 <= max_uses <= MAX_USES:
            raise InvalidQuota()
        if subject.tenant_id != principal.tenant_id:
            raise InvalidSubject()

        partition = self.store.partition(principal.tenant_id)
        now = self._clock()

        for _ in range(MAX_ID_ATTEMPTS):
            record = TokenRecord(
                id=self._id_factory(),
                tenant_id=principal.tenant_id,
                subject_id=subject.id,
                subject_name=subject.name,
                subject_unit=subject.unit,
                visitor_name=visitor_name or "Invitado",
                issued_by_id=principal.user_id,
                issued_by_name=principal.name,
                created_at=as_utc(now),
                expires_at=as_utc(expires_at),
                max_uses=max_uses,
                current_uses=0,
                status=TokenStatus.ACTIVE,
            )
            try:
                partition.insert(record)
                break
            except DuplicateTokenId:
                logger.warning(f"Token id collision in tenant {principal.tenant_id}, regenerating")
        else:
            raise RuntimeError("could not allocate a unique token id")

        logger.info(
            f"Token issued: tenant={record.tenant_id} id={record.id} "
            f"unit={record.subject_unit} max_uses={max_uses}"
        )
        return TokenPayload(
            id=record.id,
            tenant_id=record.tenant_id,
            version=settings.QR_PROTOCOL_VERSION,
        )

    def issue_encoded(self, *args, **kwargs) -> str:
        """签发并序列化为二维码字符串（交给外部渲染器）"""
        return encode_payload(self.issue(*args, **kwargs))
