from fastapi import APIRouter

from mivilla.api.v1.routes_access import router as access_router
from mivilla.api.v1.routes_maintenance import router as maintenance_router

# v1 统一入口：所有 v1 API 都从 /api/v1 开始
router = APIRouter(prefix="/api/v1")

router.include_router(access_router)
router.include_router(maintenance_router)
