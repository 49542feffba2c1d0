"""Token store adapters.

按租户分区的二维码存储：
- TokenStore 本身不对外提供带 tenant_id 参数的读写方法
- 调用方只能通过 partition(tenant_id) 拿到某个租户的分区再操作
- 消费一次（consume）是原子的"比较并递增"，不同二维码之间互不阻塞

实现：
- SqlTokenStore：SQLAlchemy 条件 UPDATE（current_uses < max_uses）
- InMemoryTokenStore：按二维码 ID 加锁的内存实现（嵌入式/测试用）
"""

from __future__ import annotations

import enum
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, ContextManager, Optional

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mivilla.database.access_token_models import AccessToken, TokenStatus
from mivilla.database.config import SessionLocal
from mivilla.models.access_schemas import TokenRecord
from mivilla.services.errors import StoreUnavailable
from mivilla.utils.time import as_utc

logger = logging.getLogger(__name__)


class DuplicateTokenId(Exception):
    """同一租户下二维码 ID 已存在"""


class ConsumeOutcome(str, enum.Enum):
    """原子消费结果"""
    CONSUMED = "consumed"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class ConsumeResult:
    outcome: ConsumeOutcome
    record: Optional[TokenRecord] = None

    @property
    def consumed(self) -> bool:
        return self.outcome == ConsumeOutcome.CONSUMED


def classify_unconsumed(record: Optional[TokenRecord], now: datetime) -> ConsumeResult:
    """未能消费时判定原因：过期优先于次数用完"""
    if record is None:
        return ConsumeResult(ConsumeOutcome.NOT_FOUND)
    if record.is_expired(now):
        return ConsumeResult(ConsumeOutcome.EXPIRED, record)
    return ConsumeResult(ConsumeOutcome.EXHAUSTED, record)


class TenantPartition:
    """单个租户的存储视图

    所有操作都隐式限定在 tenant_id 内，无法跨租户读取。
    """

    def __init__(self, store: "TokenStore", tenant_id: str) -> None:
        self._store = store
        self.tenant_id = tenant_id

    def get(self, token_id: str) -> Optional[TokenRecord]:
        return self._store._get(self.tenant_id, token_id)

    def insert(self, record: TokenRecord) -> None:
        self._check_owner(record)
        self._store._insert(record)

    def upsert(self, record: TokenRecord) -> None:
        self._check_owner(record)
        self._store._upsert(record)

    def try_consume(self, token_id: str, now: datetime) -> ConsumeResult:
        return self._store._consume(self.tenant_id, token_id, now)

    def list(self) -> list[TokenRecord]:
        return self._store._list(self.tenant_id)

    def _check_owner(self, record: TokenRecord) -> None:
        if record.tenant_id != self.tenant_id:
            raise ValueError(
                f"record tenant {record.tenant_id!r} does not match partition {self.tenant_id!r}"
            )


class TokenStore(ABC):
    """二维码存储抽象"""

    def partition(self, tenant_id: str) -> TenantPartition:
        if not tenant_id:
            raise ValueError("tenant_id is required")
        return TenantPartition(self, tenant_id)

    @abstractmethod
    def _get(self, tenant_id: str, token_id: str) -> Optional[TokenRecord]:
        """按 ID 读取记录"""

    @abstractmethod
    def _insert(self, record: TokenRecord) -> None:
        """插入新记录，ID 冲突时抛 DuplicateTokenId"""

    @abstractmethod
    def _upsert(self, record: TokenRecord) -> None:
        """插入或覆盖记录"""

    @abstractmethod
    def _consume(self, tenant_id: str, token_id: str, now: datetime) -> ConsumeResult:
        """原子地：未过期且 current_uses < max_uses 时递增一次"""

    @abstractmethod
    def _list(self, tenant_id: str) -> list[TokenRecord]:
        """列出租户全部记录（新的在前）"""


class InMemoryTokenStore(TokenStore):
    """内存存储，按 (tenant_id, token_id) 粒度加锁"""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], TokenRecord] = {}
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: tuple[str, str]) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _get(self, tenant_id: str, token_id: str) -> Optional[TokenRecord]:
        record = self._records.get((tenant_id, token_id))
        return record.model_copy() if record else None

    def _insert(self, record: TokenRecord) -> None:
        key = (record.tenant_id, record.id)
        with self._lock_for(key):
            if key in self._records:
                raise DuplicateTokenId(record.id)
            self._records[key] = record.model_copy()

    def _upsert(self, record: TokenRecord) -> None:
        key = (record.tenant_id, record.id)
        with self._lock_for(key):
            self._records[key] = record.model_copy()

    def _consume(self, tenant_id: str, token_id: str, now: datetime) -> ConsumeResult:
        key = (tenant_id, token_id)
        with self._lock_for(key):
            record = self._records.get(key)
            if record is None or record.is_expired(now) or record.current_uses >= record.max_uses:
                return classify_unconsumed(record.model_copy() if record else None, now)

            uses = record.current_uses + 1
            updated = record.model_copy(update={
                "current_uses": uses,
                "status": TokenStatus.DEPLETED if uses >= record.max_uses else record.status,
            })
            self._records[key] = updated
            return ConsumeResult(ConsumeOutcome.CONSUMED, updated.model_copy())

    def _list(self, tenant_id: str) -> list[TokenRecord]:
        records = [r.model_copy() for (t, _), r in list(self._records.items()) if t == tenant_id]
        return sorted(records, key=lambda r: as_utc(r.created_at), reverse=True)


SessionFactory = Callable[[], ContextManager[Session]]


def _to_record(row: AccessToken) -> TokenRecord:
    record = TokenRecord.model_validate(row)
    return record.model_copy(update={
        "created_at": as_utc(record.created_at),
        "expires_at": as_utc(record.expires_at),
    })


class SqlTokenStore(TokenStore):
    """SQLAlchemy 存储

    每次操作使用独立会话（由 session_factory 提供），
    多个接待台线程可共享同一个实例。
    """

    def __init__(self, session_factory: SessionFactory = SessionLocal) -> None:
        self._session_factory = session_factory

    @classmethod
    def bound_to(cls, db: Session) -> "SqlTokenStore":
        """绑定到已有会话（单个请求内使用），不负责关闭会话"""
        return cls(lambda: nullcontext(db))

    def _get(self, tenant_id: str, token_id: str) -> Optional[TokenRecord]:
        with self._session_factory() as db:
            try:
                row = self._query_row(db, tenant_id, token_id)
                return _to_record(row) if row else None
            except SQLAlchemyError as e:
                self._fail(db, "get", e)

    def _insert(self, record: TokenRecord) -> None:
        with self._session_factory() as db:
            try:
                db.add(self._to_row(record))
                db.commit()
            except IntegrityError:
                db.rollback()
                raise DuplicateTokenId(record.id)
            except SQLAlchemyError as e:
                self._fail(db, "insert", e)

    def _upsert(self, record: TokenRecord) -> None:
        with self._session_factory() as db:
            try:
                db.merge(self._to_row(record))
                db.commit()
            except SQLAlchemyError as e:
                self._fail(db, "upsert", e)

    def _consume(self, tenant_id: str, token_id: str, now: datetime) -> ConsumeResult:
        now = as_utc(now)
        stmt = (
            update(AccessToken)
            .where(
                AccessToken.tenant_id == tenant_id,
                AccessToken.id == token_id,
                AccessToken.current_uses < AccessToken.max_uses,
                AccessToken.expires_at > now,
            )
            .values(
                current_uses=AccessToken.current_uses + 1,
                status=case(
                    (AccessToken.current_uses + 1 >= AccessToken.max_uses, TokenStatus.DEPLETED.value),
                    else_=AccessToken.status,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as db:
            try:
                consumed = db.execute(stmt).rowcount == 1
                # 同一事务内回读：行锁仍由本事务持有
                db.expire_all()
                row = self._query_row(db, tenant_id, token_id)
                record = _to_record(row) if row else None
                db.commit()
            except SQLAlchemyError as e:
                self._fail(db, "consume", e)

        if consumed:
            return ConsumeResult(ConsumeOutcome.CONSUMED, record)
        return classify_unconsumed(record, now)

    def _list(self, tenant_id: str) -> list[TokenRecord]:
        with self._session_factory() as db:
            try:
                rows = (
                    db.query(AccessToken)
                    .filter(AccessToken.tenant_id == tenant_id)
                    .order_by(AccessToken.created_at.desc())
                    .all()
                )
                return [_to_record(r) for r in rows]
            except SQLAlchemyError as e:
                self._fail(db, "list", e)

    @staticmethod
    def _query_row(db: Session, tenant_id: str, token_id: str) -> Optional[AccessToken]:
        return db.query(AccessToken).filter(
            AccessToken.tenant_id == tenant_id,
            AccessToken.id == token_id,
        ).first()

    @staticmethod
    def _to_row(record: TokenRecord) -> AccessToken:
        data = record.model_dump()
        data["status"] = record.status.value
        data["created_at"] = as_utc(record.created_at)
        data["expires_at"] = as_utc(record.expires_at)
        return AccessToken(**data)

    @staticmethod
    def _fail(db: Session, op: str, error: SQLAlchemyError):
        logger.exception(f"Token store {op} failed: {error}")
        db.rollback()
        raise StoreUnavailable(f"存储暂不可用（{op}）") from error
