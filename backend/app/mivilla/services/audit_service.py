"""Access Audit Service

访问审计日志写入与查询服务。
审计写入失败只记录日志，不影响签发/校验主流程。
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from mivilla.core.config import settings
from mivilla.database.audit_log_models import AccessAuditLog, AccessEventType
from mivilla.database.config import SessionLocal
from mivilla.models.grant_schemas import GrantRecord

logger = logging.getLogger(__name__)


def is_audit_enabled() -> bool:
    """检查审计日志是否启用"""
    return settings.AUDIT_LOG_ENABLED


def write_access_event(
    db: Session,
    *,
    tenant_id: str,
    event_type: AccessEventType,
    actor: str | None = None,
    token_id: str | None = None,
    grant_id: str | None = None,
    reason_code: str | None = None,
    details: dict[str, Any] | None = None,
) -> AccessAuditLog | None:
    """
    写入审计事件。

    Args:
        db: 数据库会话
        tenant_id: 租户ID
        event_type: 事件类型
        actor: 操作人（可选）
        token_id: 二维码ID（可选）
        grant_id: 授权ID（可选）
        reason_code: 拒绝原因错误码（可选）
        details: 扩展信息（可选）

    Returns:
        创建的 AccessAuditLog 记录，或 None（审计已禁用或写入失败）
    """
    if not is_audit_enabled():
        logger.debug("Audit logging disabled, skipping event")
        return None

    try:
        log_entry = AccessAuditLog(
            tenant_id=tenant_id,
            ts=datetime.now(timezone.utc),
            event_type=event_type,
            actor=actor,
            token_id=token_id,
            grant_id=grant_id,
            reason_code=reason_code,
            details=json.dumps(details, ensure_ascii=False) if details else None,
        )

        db.add(log_entry)
        db.commit()
        db.refresh(log_entry)

        logger.info(f"Audit event logged: {event_type.value} tenant={tenant_id}")
        return log_entry

    except Exception as e:
        logger.exception(f"Failed to write audit event: {e}")
        db.rollback()
        return None


def list_access_events(
    db: Session,
    tenant_id: str,
    *,
    token_id: Optional[str] = None,
    event_type: Optional[AccessEventType] = None,
    limit: int = 100,
) -> list[AccessAuditLog]:
    """按租户查询审计事件（新的在前）"""
    query = db.query(AccessAuditLog).filter(AccessAuditLog.tenant_id == tenant_id)
    if token_id:
        query = query.filter(AccessAuditLog.token_id == token_id)
    if event_type:
        query = query.filter(AccessAuditLog.event_type == event_type)
    return query.order_by(AccessAuditLog.ts.desc()).limit(limit).all()


def audit_expired_grants(grants: list[GrantRecord], session_factory=SessionLocal) -> None:
    """为清理掉的授权写入 GRANT_EXPIRED 事件（供过期清理器回调）"""
    with session_factory() as db:
        for grant in grants:
            write_access_event(
                db,
                tenant_id=grant.tenant_id,
                event_type=AccessEventType.GRANT_EXPIRED,
                actor="grant-sweeper",
                grant_id=grant.id,
                details={"name": grant.name, "unit": grant.unit, "kind": grant.kind.value},
            )
