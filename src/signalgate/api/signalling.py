"""Signalling and agent poll endpoints.

These routes are reached by the two peers of a session, not by the portal:
signalling is authorised by a session token alone, the agent poll by the
agent's enrolled credential.
"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from signalgate.api.deps import get_broker, get_db_session, get_relay_dependency
from signalgate.api.schemas import (
    AgentPollResponse,
    AgentSessionSchema,
    SignalMessageSchema,
    SignalPollResponse,
    SignalPostRequest,
    SignalPostResponse,
    SuccessResponse,
)
from signalgate.auth.context import SessionClaims
from signalgate.auth.credentials import CredentialVerifier, extract_bearer
from signalgate.auth.tokens import verify_session_token
from signalgate.config import settings
from signalgate.engine import InvalidToken, SessionNotFound
from signalgate.engine.broker import SessionBroker
from signalgate.middleware.rate_limit import rate_limit_dependency
from signalgate.models import SignalRole
from signalgate.observability.metrics import metrics
from signalgate.relay import SignalRelay

logger = logging.getLogger("signalgate.api")

router = APIRouter(prefix="/v1", dependencies=[Depends(rate_limit_dependency)])

INVALID_TOKEN_DETAIL = "Invalid or expired session token"


def _authorize(
    token: Optional[str],
    session_id: str,
    role: Optional[SignalRole] = None,
) -> SessionClaims:
    """
    Verify a session token for session_id and, when given, the caller's role.

    Every failure answers with the same 401 so callers learn nothing about
    which check failed.
    """
    try:
        claims = verify_session_token(token, session_id=session_id)
    except InvalidToken as e:
        logger.info(f"Rejected session token for {session_id}: {e.reason}")
        raise HTTPException(status_code=401, detail=INVALID_TOKEN_DETAIL)

    if role is not None and claims.role != role:
        logger.info(
            f"Rejected session token for {session_id}: role {claims.role.value} "
            f"used as {role.value}"
        )
        raise HTTPException(status_code=401, detail=INVALID_TOKEN_DETAIL)
    return claims


def _payload_size(data: Any) -> int:
    return len(json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


def _require_query(session_id: Optional[str], token: Optional[str]) -> None:
    if not session_id or not token:
        raise HTTPException(status_code=400, detail="Missing sessionId or token")


# ============================================================================
# Signalling
# ============================================================================


@router.post("/rc/signalling", response_model=SignalPostResponse)
async def post_signal(
    request: SignalPostRequest,
    relay: SignalRelay = Depends(get_relay_dependency),
):
    """Queue an offer, answer or ICE candidate for the other peer."""
    _authorize(request.token, request.session_id, role=request.sender)

    if _payload_size(request.data) > settings.relay_max_payload_bytes:
        raise HTTPException(status_code=413, detail="Signal payload too large")

    with metrics.timer("relay.post_ms"):
        message = await relay.post(
            request.session_id,
            request.type,
            request.data,
            request.sender,
        )
    return SignalPostResponse(timestamp=message.timestamp)


@router.get("/rc/signalling", response_model=SignalPollResponse)
async def poll_signals(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    token: Optional[str] = Query(None),
    since: int = Query(0, ge=0),
    role: Optional[str] = Query(None),
    relay: SignalRelay = Depends(get_relay_dependency),
):
    """Messages from the other peer newer than since."""
    _require_query(session_id, token)

    try:
        caller_role = SignalRole(role) if role else None
    except ValueError:
        caller_role = None
    if caller_role is None:
        raise HTTPException(
            status_code=400,
            detail='Missing or invalid role parameter (must be "operator" or "agent")',
        )

    _authorize(token, session_id, role=caller_role)

    messages = await relay.poll(session_id, since, caller_role)
    return SignalPollResponse(
        data=[SignalMessageSchema.model_validate(m.model_dump()) for m in messages]
    )


@router.delete("/rc/signalling", response_model=SuccessResponse)
async def clear_signals(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    token: Optional[str] = Query(None),
    relay: SignalRelay = Depends(get_relay_dependency),
):
    """Drop the session's queue. Safe to repeat."""
    _require_query(session_id, token)
    _authorize(token, session_id)

    await relay.clear(session_id)
    return SuccessResponse(message="Signals cleared")


# ============================================================================
# Agent poll
# ============================================================================


@router.get(
    "/agent/rc/poll",
    response_model=AgentPollResponse,
    responses={204: {"description": "No session awaiting hand-off"}},
)
async def agent_poll(
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_db_session),
    broker: SessionBroker = Depends(get_broker),
):
    """
    Hand the agent's asset its open session, once.

    Org and asset come from the verified credential only.
    """
    metrics.inc_counter("agent.polls")

    verification = await CredentialVerifier(session).verify(extract_bearer(authorization))
    if not verification.valid:
        raise HTTPException(status_code=401, detail="Invalid agent credential")
    if not verification.is_active:
        raise HTTPException(status_code=403, detail="Agent credential is deactivated")

    binding = verification.binding
    try:
        with metrics.timer("agent.poll_ms"):
            rc_session = await broker.activate_for_agent(
                binding.org_id, binding.asset_id, agent_id=binding.agent_id
            )
            if rc_session is None:
                return Response(status_code=204)

            token = await broker.issue_agent_token(rc_session, binding.agent_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except Exception:
        logger.exception(f"Agent poll failed for asset {binding.asset_id}")
        raise HTTPException(status_code=500, detail="Failed to poll for sessions")

    metrics.inc_counter("agent.handoffs")
    logger.info(
        f"Session {rc_session.session_id} handed to agent {binding.agent_id} "
        f"(asset {binding.asset_id})"
    )
    return AgentPollResponse(
        session=AgentSessionSchema(
            session_id=rc_session.session_id,
            token=token,
            asset_id=rc_session.asset_id,
            org_id=rc_session.org_id,
            status=rc_session.status,
            operator_name=rc_session.operator_name,
            started_at=rc_session.started_at,
            policy_snapshot=rc_session.policy_snapshot.model_dump(),
            ice_servers=broker.get_ice_servers(binding.agent_id),
        )
    )
