"""MiVilla - Access Token Routes

访问二维码 API 路由：签发、校验、查询
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from mivilla.api.deps.auth_deps import (
    RequireIssuer,
    RequireValidator,
    get_current_principal,
    get_token_store,
)
from mivilla.database.audit_log_models import AccessEventType
from mivilla.database.config import get_db
from mivilla.models.access_schemas import (
    AccessEventResponse,
    IssueTokenRequest,
    IssueTokenResponse,
    Principal,
    Role,
    Subject,
    TokenListResponse,
    TokenRecordResponse,
    ValidateTokenRequest,
    ValidateTokenResponse,
)
from mivilla.services.audit_service import list_access_events, write_access_event
from mivilla.services.errors import InvalidQuota, InvalidSubject
from mivilla.services.payload_codec import encode_payload
from mivilla.services.token_issuer import TokenIssuer, default_expiry
from mivilla.services.token_store import TokenStore
from mivilla.services.token_validator import TokenValidator
from mivilla.utils.time import as_utc, utc_now

router = APIRouter(prefix="/access-tokens", tags=["access-tokens"])


@router.post("", response_model=IssueTokenResponse, status_code=201)
def issue_access_token(
    data: IssueTokenRequest,
    db: Session = Depends(get_db),
    store: TokenStore = Depends(get_token_store),
    principal: Principal = Depends(RequireIssuer),
):
    """签发访问二维码

    未指定 expires_at 时默认 24 小时后过期。
    住户只能为本单元签发。
    """
    if principal.role == Role.RESIDENT and principal.unit and data.subject_unit != principal.unit:
        raise HTTPException(status_code=403, detail="住户只能为本单元签发二维码")

    subject = Subject(
        id=data.subject_id,
        tenant_id=principal.tenant_id,
        name=data.subject_name,
        unit=data.subject_unit,
    )
    expires_at = as_utc(data.expires_at) if data.expires_at else default_expiry()

    try:
        payload = TokenIssuer(store).issue(
            principal,
            subject,
            data.max_uses,
            expires_at,
            visitor_name=data.visitor_name,
        )
    except (InvalidQuota, InvalidSubject) as e:
        raise HTTPException(status_code=400, detail=e.message)

    write_access_event(
        db,
        tenant_id=principal.tenant_id,
        event_type=AccessEventType.TOKEN_ISSUED,
        actor=principal.user_id,
        token_id=payload.id,
        details={"unit": subject.unit, "max_uses": data.max_uses},
    )

    return IssueTokenResponse(
        payload=encode_payload(payload),
        token_id=payload.id,
        expires_at=expires_at,
        max_uses=data.max_uses,
    )


@router.post("/validate", response_model=ValidateTokenResponse)
def validate_access_token(
    data: ValidateTokenRequest,
    db: Session = Depends(get_db),
    store: TokenStore = Depends(get_token_store),
    principal: Principal = Depends(RequireValidator),
):
    """校验二维码并消费一次

    校验失败同样返回 200，由 valid / code / message 说明原因。
    """
    result = TokenValidator(store).validate(data.payload, principal)

    write_access_event(
        db,
        tenant_id=principal.tenant_id,
        event_type=AccessEventType.TOKEN_CONSUMED if result.valid else AccessEventType.TOKEN_REJECTED,
        actor=principal.user_id,
        token_id=result.token_id,
        reason_code=None if result.valid else result.code,
    )

    record = None
    if result.record is not None:
        record = TokenRecordResponse.from_record(result.record, utc_now())

    return ValidateTokenResponse(
        valid=result.valid,
        code=result.code,
        message=result.message,
        remaining_uses=result.remaining_uses,
        record=record,
    )


@router.get("", response_model=TokenListResponse)
def list_access_tokens(
    store: TokenStore = Depends(get_token_store),
    principal: Principal = Depends(get_current_principal),
):
    """列出本租户的二维码（新的在前）"""
    now = utc_now()
    records = store.partition(principal.tenant_id).list()
    items = [TokenRecordResponse.from_record(r, now) for r in records]
    return TokenListResponse(items=items, total=len(items))


@router.get("/{token_id}", response_model=TokenRecordResponse)
def get_access_token(
    token_id: str,
    store: TokenStore = Depends(get_token_store),
    principal: Principal = Depends(get_current_principal),
):
    """获取二维码详情（仅限本租户）"""
    record = store.partition(principal.tenant_id).get(token_id)
    if not record:
        raise HTTPException(status_code=404, detail="二维码不存在")
    return TokenRecordResponse.from_record(record, utc_now())


@router.get("/{token_id}/events", response_model=list[AccessEventResponse])
def list_access_token_events(
    token_id: str,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """二维码的审计事件（仅限本租户）"""
    return list_access_events(db, principal.tenant_id, token_id=token_id, limit=limit)
