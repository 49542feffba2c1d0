from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mivilla.api.v1.routes import router as v1_router
from mivilla.core.config import settings
from mivilla.database.config import init_db
from mivilla.logging_config import setup_logging
from mivilla.services.audit_service import audit_expired_grants
from mivilla.services.errors import StoreUnavailable
from mivilla.services.expiry_sweeper import ExpirySweeper
from mivilla.services.grant_store import SqlGrantStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_db()
    sweeper = None
    if settings.GRANT_SWEEP_ENABLED:
        sweeper = ExpirySweeper(SqlGrantStore(), on_expired=audit_expired_grants)
        sweeper.start()
    yield
    if sweeper is not None:
        sweeper.stop()


app = FastAPI(title="MiVilla Access", lifespan=lifespan)
app.include_router(v1_router)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    return JSONResponse(status_code=503, content={"detail": exc.message, "code": exc.code})


@app.get("/healthz", include_in_schema=False)
def healthz():
    return {"ok": True}
