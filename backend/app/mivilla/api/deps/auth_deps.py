"""MiVilla - 认证依赖

提供 get_current_principal 和角色检查依赖
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from mivilla.database.config import get_db
from mivilla.models.access_schemas import Principal, Role
from mivilla.services.auth_service import AuthService
from mivilla.services.token_store import SqlTokenStore, TokenStore


async def get_current_principal(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Principal:
    """从 Authorization header 解析当前操作人

    Raises:
        HTTPException: 401 如果认证失败
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="未提供认证信息",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization.removeprefix("Bearer ").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证信息",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = AuthService.decode_principal_token(token)
    if not principal:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效或过期的认证信息",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return principal


class RoleRequired:
    """角色检查依赖（内部依赖 get_current_principal）

    用法：
        @router.post("/access-tokens/validate")
        def validate(principal: Principal = Depends(RequireValidator)):
            ...
    """

    def __init__(self, *roles: Role):
        self.roles = roles

    async def __call__(
        self,
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if principal.role not in self.roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"权限不足，需要以下角色之一: {[r.value for r in self.roles]}",
            )
        return principal


def get_token_store(db: Session = Depends(get_db)) -> TokenStore:
    """请求内使用的二维码存储（共享请求会话）"""
    return SqlTokenStore.bound_to(db)


# 预定义角色检查器
RequireIssuer = RoleRequired(Role.ADMIN, Role.RESIDENT)
RequireValidator = RoleRequired(Role.ADMIN, Role.RECEPTION)
RequireAdmin = RoleRequired(Role.ADMIN)
