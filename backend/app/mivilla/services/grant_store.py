"""Grant store adapters.

授权集合的存储边界，仅供过期清理使用。
没有过期记录时不做任何写入。
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import nullcontext
from datetime import datetime
from typing import Callable, ContextManager

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mivilla.database.config import SessionLocal
from mivilla.database.grant_models import Grant
from mivilla.models.grant_schemas import GrantRecord
from mivilla.services.errors import StoreUnavailable
from mivilla.utils.time import as_utc

logger = logging.getLogger(__name__)


class GrantStore(ABC):
    """授权集合抽象"""

    @abstractmethod
    def list(self) -> list[GrantRecord]:
        """当前全部授权"""

    @abstractmethod
    def save(self, grant: GrantRecord) -> None:
        """新增或覆盖（后写者生效）"""

    @abstractmethod
    def remove_expired(self, now: datetime) -> list[GrantRecord]:
        """删除 expiration_date <= now 的授权，返回被删除的记录"""


class InMemoryGrantCollection(GrantStore):
    """内存授权集合

    清理时整体替换列表引用（有删除时才替换），
    读取方拿到的总是一个完整快照，无需加锁。
    """

    def __init__(self, grants: list[GrantRecord] | None = None) -> None:
        self.grants: list[GrantRecord] = list(grants or [])
        self._write_lock = threading.Lock()

    def list(self) -> list[GrantRecord]:
        return list(self.grants)

    def save(self, grant: GrantRecord) -> None:
        with self._write_lock:
            others = [g for g in self.grants if g.id != grant.id]
            self.grants = others + [grant]

    def remove_expired(self, now: datetime) -> list[GrantRecord]:
        with self._write_lock:
            expired = [g for g in self.grants if g.is_expired(now)]
            if not expired:
                return []
            self.grants = [g for g in self.grants if not g.is_expired(now)]
            return expired


SessionFactory = Callable[[], ContextManager[Session]]


class SqlGrantStore(GrantStore):
    """SQLAlchemy 授权存储"""

    def __init__(self, session_factory: SessionFactory = SessionLocal) -> None:
        self._session_factory = session_factory

    @classmethod
    def bound_to(cls, db: Session) -> "SqlGrantStore":
        """绑定到已有会话（单个请求内使用），不负责关闭会话"""
        return cls(lambda: nullcontext(db))

    def list(self) -> list[GrantRecord]:
        with self._session_factory() as db:
            try:
                rows = db.query(Grant).order_by(Grant.created_at).all()
                return [GrantRecord.model_validate(r) for r in rows]
            except SQLAlchemyError as e:
                self._fail(db, "list", e)

    def save(self, grant: GrantRecord) -> None:
        data = grant.model_dump(exclude={"created_at"} if grant.created_at is None else None)
        data["kind"] = grant.kind.value
        if grant.expiration_date is not None:
            data["expiration_date"] = as_utc(grant.expiration_date)
        with self._session_factory() as db:
            try:
                db.merge(Grant(**data))
                db.commit()
            except SQLAlchemyError as e:
                self._fail(db, "save", e)

    def remove_expired(self, now: datetime) -> list[GrantRecord]:
        now = as_utc(now)
        with self._session_factory() as db:
            try:
                rows = (
                    db.query(Grant)
                    .filter(Grant.expiration_date.is_not(None), Grant.expiration_date <= now)
                    .all()
                )
                if not rows:
                    return []

                expired = [GrantRecord.model_validate(r) for r in rows]
                ids = [g.id for g in expired]
                # 查询与删除之间可能有并发 save 延长了有效期，删除时再次判断
                deleted = db.execute(
                    delete(Grant)
                    .where(
                        Grant.id.in_(ids),
                        Grant.expiration_date.is_not(None),
                        Grant.expiration_date <= now,
                    )
                    .execution_options(synchronize_session=False)
                ).rowcount
                if deleted != len(ids):
                    kept = set(db.scalars(select(Grant.id).where(Grant.id.in_(ids))).all())
                    expired = [g for g in expired if g.id not in kept]
                    logger.info(f"Grant sweep skipped {len(kept)} grant(s) extended during sweep")
                db.commit()
                return expired
            except SQLAlchemyError as e:
                self._fail(db, "remove_expired", e)

    @staticmethod
    def _fail(db: Session, op: str, error: SQLAlchemyError):
        logger.exception(f"Grant store {op} failed: {error}")
        db.rollback()
        raise StoreUnavailable(f"存储暂不可用（{op}）") from error
