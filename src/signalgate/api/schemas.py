"""API request/response schemas.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from signalgate.models import SessionStatus, SignalRole, SignalType


class WireModel(BaseModel):
    """Base for camelCase wire schemas that still accept snake_case input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Shared schemas
# ============================================================================


class IceServerSchema(WireModel):
    """ICE server entry handed to a peer."""

    urls: list[str]
    username: Optional[str] = None
    credential: Optional[str] = None


class PolicySnapshotSchema(WireModel):
    idle_timeout_minutes: int
    require_consent: bool
    allow_clipboard: bool
    allow_file_transfer: bool


class QualityMetricsSchema(WireModel):
    """Connection quality as reported by the operator console."""

    avg_fps: Optional[float] = Field(None, ge=0)
    avg_latency: Optional[float] = Field(None, ge=0)
    packets_lost: Optional[int] = Field(None, ge=0)
    bandwidth: Optional[float] = Field(None, ge=0)


class SessionResponse(WireModel):
    """Session as seen by operators."""

    session_id: str
    org_id: str
    asset_id: str
    operator_user_id: str
    operator_name: str
    status: SessionStatus
    started_at: datetime
    activated_at: Optional[datetime] = None
    agent_delivered_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    end_reason: Optional[str] = None
    consent_granted_by: Optional[str] = None
    consent_granted_at: Optional[datetime] = None
    quality_metrics: Optional[QualityMetricsSchema] = None
    policy_snapshot: PolicySnapshotSchema


# ============================================================================
# Signalling schemas
# ============================================================================


class SignalPostRequest(WireModel):
    """Message posted by either peer."""

    session_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    type: SignalType
    data: Any = None
    sender: SignalRole


class SignalPostResponse(WireModel):
    success: bool = True
    message: str = "Signal sent successfully"
    timestamp: int


class SignalMessageSchema(WireModel):
    type: SignalType
    data: Any = None
    timestamp: int
    sender: SignalRole


class SignalPollResponse(WireModel):
    success: bool = True
    data: list[SignalMessageSchema]


class SuccessResponse(WireModel):
    success: bool = True
    message: str


# ============================================================================
# Agent schemas
# ============================================================================


class AgentSessionSchema(WireModel):
    """Session handed to the agent on poll."""

    session_id: str
    token: str
    asset_id: str
    org_id: str
    status: SessionStatus
    operator_name: str
    started_at: datetime
    policy_snapshot: PolicySnapshotSchema
    ice_servers: list[IceServerSchema]


class AgentPollResponse(WireModel):
    success: bool = True
    session: AgentSessionSchema


# ============================================================================
# Operator schemas
# ============================================================================


class CreateSessionRequest(WireModel):
    """Open a session against an asset."""

    asset_id: str = Field(..., min_length=1, max_length=64)
    operator_user_id: str = Field(..., min_length=1, max_length=255)
    operator_name: str = Field(..., min_length=1, max_length=255)
    operator_role: str = Field(default="technician", description="Checked against allowedRoles")


class CreateSessionResponse(WireModel):
    session: SessionResponse
    token: str
    ice_servers: list[IceServerSchema]


class SessionListResponse(WireModel):
    sessions: list[SessionResponse]


class UpdateStatusRequest(WireModel):
    status: SessionStatus
    reason: Optional[str] = Field(None, max_length=255)
    actor_id: Optional[str] = None


class ConsentRequest(WireModel):
    """Consent decision relayed from the device user."""

    actor_id: str = Field(..., min_length=1, max_length=255)


class TokenResponse(WireModel):
    session_id: str
    token: str
    ice_servers: list[IceServerSchema]


class AuditEventResponse(WireModel):
    event_id: str
    session_id: str
    asset_id: str
    actor_id: Optional[str] = None
    action: str
    details: dict[str, Any]
    ip_address: Optional[str] = None
    created_at: datetime


class AuditLogResponse(WireModel):
    events: list[AuditEventResponse]


class PolicyResponse(WireModel):
    org_id: str
    enabled: bool
    require_consent: bool
    idle_timeout_minutes: int
    allow_clipboard: bool
    allow_file_transfer: bool
    allowed_roles: list[str]
    consent_message: Optional[str] = None
    updated_at: datetime
    updated_by: str


class PolicyUpdateRequest(WireModel):
    enabled: Optional[bool] = None
    require_consent: Optional[bool] = None
    idle_timeout_minutes: Optional[int] = Field(None, ge=1, le=1440)
    allow_clipboard: Optional[bool] = None
    allow_file_transfer: Optional[bool] = None
    allowed_roles: Optional[list[str]] = None
    consent_message: Optional[str] = Field(None, max_length=1024)
    updated_by: str = Field(..., min_length=1)


class IssueCredentialRequest(WireModel):
    asset_id: str = Field(..., min_length=1, max_length=64)
    agent_id: str = Field(..., min_length=1, max_length=255)


class IssueCredentialResponse(WireModel):
    """The credential string is only ever returned here."""

    credential_id: str
    credential: str
    key_prefix: str
    asset_id: str
    agent_id: str


class RevokeCredentialRequest(WireModel):
    revoked_by: str = Field(..., min_length=1)
