"""Token payload codec.

二维码内的载荷是紧凑 JSON：{"id": ..., "tenantId": ..., "v": 1}
"""

from __future__ import annotations

import json

from pydantic import ValidationError

from mivilla.models.access_schemas import TokenPayload
from mivilla.services.errors import MalformedPayload

# 低密度二维码的容量远小于此值，超长输入直接拒绝
MAX_PAYLOAD_LENGTH = 4096


def encode_payload(payload: TokenPayload) -> str:
    """序列化为二维码字符串"""
    return json.dumps(
        {"id": payload.id, "tenantId": payload.tenant_id, "v": payload.version},
        separators=(",", ":"),
    )


def _is_identifier(value) -> bool:
    """非空且可编码为 UTF-8（JSON 允许孤立代理项 \\ud800，存储层无法处理）"""
    if not isinstance(value, str) or not value:
        return False
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def decode_payload(raw: str) -> TokenPayload:
    """解析扫码得到的原始字符串

    Raises:
        MalformedPayload: 非 JSON、超长、嵌套过深、不是对象或缺少 id / tenantId
    """
    if not isinstance(raw, (str, bytes, bytearray)) or len(raw) > MAX_PAYLOAD_LENGTH:
        raise MalformedPayload()

    try:
        data = json.loads(raw)
    except (TypeError, ValueError, RecursionError):
        raise MalformedPayload()

    if not isinstance(data, dict):
        raise MalformedPayload()

    token_id = data.get("id")
    tenant_id = data.get("tenantId")
    if not _is_identifier(token_id) or not _is_identifier(tenant_id):
        raise MalformedPayload()

    try:
        return TokenPayload(id=token_id, tenant_id=tenant_id, version=data.get("v", 1))
    except ValidationError:
        raise MalformedPayload()
