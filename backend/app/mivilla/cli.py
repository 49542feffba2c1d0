from __future__ import annotations

from typing import NoReturn, Optional

import typer
from rich import print

from mivilla.core.config import settings
from mivilla.database.config import init_db as create_tables
from mivilla.logging_config import setup_logging
from mivilla.models.access_schemas import Principal, Role
from mivilla.services.audit_service import audit_expired_grants
from mivilla.services.auth_service import AuthService
from mivilla.services.errors import StoreUnavailable
from mivilla.services.expiry_sweeper import ExpirySweeper
from mivilla.services.grant_store import SqlGrantStore

app = typer.Typer(add_completion=False, help="MiVilla access CLI")


# ============================================================
# 小工具：输出
# ============================================================
def _info(msg: str) -> None:
    print(f"[cyan][MV][/cyan] {msg}")


def _ok(msg: str) -> None:
    print(f"[green][MV][OK][/green] {msg}")


def _fail(msg: str, code: int = 1) -> NoReturn:
    print(f"[red][MV][FAIL][/red] {msg}")
    raise typer.Exit(code)


# ============================================================
# 命令
# ============================================================
@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Run FastAPI server."""
    import uvicorn

    uvicorn.run("mivilla.main:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_db():
    """Create database tables."""
    setup_logging()
    create_tables()
    _ok(f"Tables ready ({settings.DB_URL})")


@app.command()
def sweep():
    """Run one grant expiry sweep against the configured database."""
    setup_logging()
    create_tables()
    sweeper = ExpirySweeper(SqlGrantStore(), on_expired=audit_expired_grants)
    try:
        deleted = sweeper.sweep_once()
    except StoreUnavailable as e:
        _fail(e.message)
    _ok(f"Removed {deleted} expired grant(s)")


@app.command("principal-token")
def principal_token(
    tenant_id: str = typer.Option(..., "--tenant", help="Tenant id"),
    user_id: str = typer.Option(..., "--user", help="User id"),
    role: Role = typer.Option(Role.ADMIN, "--role", help="X=admin, A=reception, B=resident"),
    name: Optional[str] = typer.Option(None, "--name", help="Display name"),
    unit: Optional[str] = typer.Option(None, "--unit", help="Resident unit (role B)"),
    expire_hours: Optional[int] = typer.Option(None, "--expire-hours", help="Token lifetime"),
):
    """Mint a principal JWT for an operator."""
    principal = Principal(
        user_id=user_id,
        tenant_id=tenant_id,
        name=name or user_id,
        role=role,
        unit=unit,
    )
    _info(f"tenant={tenant_id} user={user_id} role={role.value}")
    typer.echo(AuthService.create_principal_token(principal, expire_hours=expire_hours))


if __name__ == "__main__":
    app()
