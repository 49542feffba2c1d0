"""MiVilla - Auth Service

操作人员身份令牌（JWT）
"""
import uuid as uuid_module
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import jwt
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError

from mivilla.core.config import settings
from mivilla.models.access_schemas import Principal


class AuthService:
    """认证服务"""

    @staticmethod
    def create_principal_token(principal: Principal, expire_hours: Optional[int] = None) -> str:
        """为操作人签发 JWT 令牌

        Args:
            principal: 操作人（含租户与角色）
            expire_hours: 有效期（小时），默认 JWT_EXPIRE_HOURS

        Returns:
            JWT 令牌字符串
        """
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(hours=expire_hours or settings.JWT_EXPIRE_HOURS)

        payload: Dict[str, Any] = {
            "sub": principal.user_id,
            "tenant_id": principal.tenant_id,
            "name": principal.name,
            "role": principal.role.value,
            "exp": expires_at,
            "iat": now,
            "jti": str(uuid_module.uuid4()),
        }
        if principal.unit:
            payload["unit"] = principal.unit

        return jwt.encode(
            payload,
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
        )

    @staticmethod
    def decode_jwt_token(token: str) -> Optional[Dict[str, Any]]:
        """解码并验证 JWT 令牌，失败返回 None"""
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
            )
        except InvalidTokenError:
            return None

    @staticmethod
    def decode_principal_token(token: str) -> Optional[Principal]:
        """从 JWT 令牌还原操作人

        缺少 sub / tenant_id 或角色无效时返回 None。
        """
        payload = AuthService.decode_jwt_token(token)
        if not payload:
            return None

        if not payload.get("sub") or not payload.get("tenant_id"):
            return None

        try:
            return Principal(
                user_id=payload["sub"],
                tenant_id=payload["tenant_id"],
                name=payload.get("name") or payload["sub"],
                role=payload.get("role"),
                unit=payload.get("unit"),
            )
        except ValidationError:
            return None
