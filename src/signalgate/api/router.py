"""Operator REST API router."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from signalgate import __version__
from signalgate.api.deps import (
    get_broker,
    get_db_session,
    get_org_id,
    verify_api_key,
)
from signalgate.api.schemas import (
    AuditEventResponse,
    AuditLogResponse,
    ConsentRequest,
    CreateSessionRequest,
    CreateSessionResponse,
    IssueCredentialRequest,
    IssueCredentialResponse,
    PolicyResponse,
    PolicyUpdateRequest,
    QualityMetricsSchema,
    RevokeCredentialRequest,
    SessionListResponse,
    SessionResponse,
    SuccessResponse,
    TokenResponse,
    UpdateStatusRequest,
)
from signalgate.auth.credentials import issue_agent_credential, revoke_agent_credential
from signalgate.config import settings
from signalgate.engine import (
    InvalidTransition,
    RemoteControlDisabled,
    SessionAlreadyOpen,
    SessionNotFound,
)
from signalgate.engine.broker import SessionBroker
from signalgate.models import PolicyUpdate, QualityMetrics, RemoteSession, SessionStatus
from signalgate.observability.metrics import metrics

router = APIRouter(prefix="/v1", dependencies=[Depends(verify_api_key)])
health_router = APIRouter(prefix="/v1")


def _session_response(rc_session: RemoteSession) -> SessionResponse:
    return SessionResponse.model_validate(rc_session.to_summary())


# ============================================================================
# Health & Metrics
# ============================================================================


@health_router.get("/health")
async def health_check():
    """Health check endpoint (unauthenticated)."""
    return {"status": "healthy", "version": __version__}


@router.get("/metrics")
async def get_metrics():
    """In-process counters and latency histograms."""
    return metrics.snapshot()


# ============================================================================
# Sessions
# ============================================================================


@router.post("/sessions", response_model=CreateSessionResponse, status_code=201)
async def create_session(
    request: CreateSessionRequest,
    http_request: Request,
    org_id: str = Depends(get_org_id),
    broker: SessionBroker = Depends(get_broker),
):
    """Open a pending session; the agent picks it up on its next poll."""
    try:
        rc_session, token = await broker.create_session(
            org_id=org_id,
            asset_id=request.asset_id,
            operator_user_id=request.operator_user_id,
            operator_name=request.operator_name,
            operator_role=request.operator_role,
            ip_address=http_request.client.host if http_request.client else None,
            user_agent=http_request.headers.get("user-agent"),
        )
    except RemoteControlDisabled as e:
        raise HTTPException(status_code=403, detail=e.message)
    except SessionAlreadyOpen as e:
        raise HTTPException(status_code=409, detail=e.message)

    return CreateSessionResponse(
        session=_session_response(rc_session),
        token=token,
        ice_servers=broker.get_ice_servers(request.operator_user_id),
    )


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    org_id: str = Depends(get_org_id),
    asset_id: Optional[str] = Query(None, alias="assetId"),
    operator_user_id: Optional[str] = Query(None, alias="operatorUserId"),
    status: Optional[SessionStatus] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    broker: SessionBroker = Depends(get_broker),
):
    """List sessions newest first."""
    limit = min(limit or settings.default_list_limit, settings.max_list_limit)
    sessions = await broker.list_sessions(
        org_id=org_id,
        asset_id=asset_id,
        operator_user_id=operator_user_id,
        status=status,
        limit=limit,
    )
    return SessionListResponse(sessions=[_session_response(s) for s in sessions])


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    org_id: str = Depends(get_org_id),
    broker: SessionBroker = Depends(get_broker),
):
    try:
        rc_session = await broker.get_session(org_id, session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    return _session_response(rc_session)


@router.post("/sessions/{session_id}/status", response_model=SessionResponse)
async def update_session_status(
    session_id: str,
    request: UpdateStatusRequest,
    org_id: str = Depends(get_org_id),
    broker: SessionBroker = Depends(get_broker),
):
    """Move a session forward. Ending it also clears its signalling queue."""
    try:
        rc_session = await broker.transition(
            org_id=org_id,
            session_id=session_id,
            new_status=request.status,
            actor_id=request.actor_id,
            reason=request.reason,
        )
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=e.message)

    await broker.commit()
    return _session_response(rc_session)


@router.post("/sessions/{session_id}/consent/grant", response_model=SessionResponse)
async def grant_session_consent(
    session_id: str,
    request: ConsentRequest,
    org_id: str = Depends(get_org_id),
    broker: SessionBroker = Depends(get_broker),
):
    """The device user accepted; a pending session becomes active."""
    try:
        rc_session = await broker.grant_consent(org_id, session_id, granted_by=request.actor_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=e.message)
    return _session_response(rc_session)


@router.post("/sessions/{session_id}/consent/deny", response_model=SessionResponse)
async def deny_session_consent(
    session_id: str,
    request: ConsentRequest,
    org_id: str = Depends(get_org_id),
    broker: SessionBroker = Depends(get_broker),
):
    """The device user refused; a pending session ends."""
    try:
        rc_session = await broker.deny_consent(org_id, session_id, denied_by=request.actor_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=e.message)

    await broker.commit()
    return _session_response(rc_session)


@router.put("/sessions/{session_id}/metrics", response_model=SessionResponse)
async def update_session_metrics(
    session_id: str,
    request: QualityMetricsSchema,
    org_id: str = Depends(get_org_id),
    broker: SessionBroker = Depends(get_broker),
):
    """Replace the connection quality reported for a session."""
    try:
        rc_session = await broker.update_quality_metrics(
            org_id, session_id, QualityMetrics.model_validate(request.model_dump())
        )
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    return _session_response(rc_session)


@router.post("/sessions/{session_id}/token", response_model=TokenResponse)
async def reissue_operator_token(
    session_id: str,
    org_id: str = Depends(get_org_id),
    broker: SessionBroker = Depends(get_broker),
):
    """Fresh operator token for a session that has not ended."""
    try:
        rc_session, token = await broker.issue_operator_token(org_id, session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=e.message)

    return TokenResponse(
        session_id=rc_session.session_id,
        token=token,
        ice_servers=broker.get_ice_servers(rc_session.operator_user_id),
    )


@router.get("/sessions/{session_id}/audit", response_model=AuditLogResponse)
async def get_session_audit(
    session_id: str,
    org_id: str = Depends(get_org_id),
    broker: SessionBroker = Depends(get_broker),
):
    try:
        events = await broker.get_audit_log(org_id, session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)

    return AuditLogResponse(
        events=[AuditEventResponse.model_validate(e.model_dump(mode="json")) for e in events]
    )


# ============================================================================
# Policy
# ============================================================================


@router.get("/policy", response_model=PolicyResponse)
async def get_policy(
    org_id: str = Depends(get_org_id),
    updated_by: str = Query("system", alias="userId"),
    broker: SessionBroker = Depends(get_broker),
):
    policy = await broker.get_or_create_policy(org_id, updated_by)
    return PolicyResponse.model_validate(policy.model_dump(mode="json"))


@router.put("/policy", response_model=PolicyResponse)
async def update_policy(
    request: PolicyUpdateRequest,
    org_id: str = Depends(get_org_id),
    broker: SessionBroker = Depends(get_broker),
):
    """Partial update. Sessions already created keep the terms they started with."""
    updates = PolicyUpdate.model_validate(request.model_dump(exclude={"updated_by"}))
    policy = await broker.update_policy(
        org_id,
        updates.model_dump(exclude_none=True),
        request.updated_by,
    )
    return PolicyResponse.model_validate(policy.model_dump(mode="json"))


# ============================================================================
# Agent credentials
# ============================================================================


@router.post("/agent-credentials", response_model=IssueCredentialResponse, status_code=201)
async def create_agent_credential(
    request: IssueCredentialRequest,
    org_id: str = Depends(get_org_id),
    session: AsyncSession = Depends(get_db_session),
):
    """Enroll an agent. The credential is only returned in this response."""
    full_key, record = await issue_agent_credential(
        session,
        org_id=org_id,
        asset_id=request.asset_id,
        agent_id=request.agent_id,
    )
    return IssueCredentialResponse(
        credential_id=record.id,
        credential=full_key,
        key_prefix=record.key_prefix,
        asset_id=record.asset_id,
        agent_id=record.agent_id,
    )


@router.post("/agent-credentials/{credential_id}/revoke", response_model=SuccessResponse)
async def revoke_credential(
    credential_id: str,
    request: RevokeCredentialRequest,
    org_id: str = Depends(get_org_id),
    session: AsyncSession = Depends(get_db_session),
):
    revoked = await revoke_agent_credential(
        session,
        org_id=org_id,
        credential_id=credential_id,
        revoked_by=request.revoked_by,
    )
    if not revoked:
        raise HTTPException(status_code=404, detail=f"Credential not found: {credential_id}")
    return SuccessResponse(message="Credential revoked")
