"""MiVilla - Maintenance Routes

手动触发授权过期清理（仅管理员）
"""
import logging
from contextlib import nullcontext

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mivilla.api.deps.auth_deps import RequireAdmin
from mivilla.database.config import get_db
from mivilla.models.access_schemas import Principal, SweepResponse
from mivilla.services.audit_service import audit_expired_grants
from mivilla.services.expiry_sweeper import ExpirySweeper
from mivilla.services.grant_store import SqlGrantStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/sweep-grants", response_model=SweepResponse)
def sweep_grants(
    db: Session = Depends(get_db),
    principal: Principal = Depends(RequireAdmin),
):
    """立即执行一次授权过期清理"""
    logger.info(f"Manual grant sweep requested by {principal.user_id} (tenant={principal.tenant_id})")
    sweeper = ExpirySweeper(
        SqlGrantStore.bound_to(db),
        on_expired=lambda grants: audit_expired_grants(grants, lambda: nullcontext(db)),
    )
    return SweepResponse(deleted_count=sweeper.sweep_once())
