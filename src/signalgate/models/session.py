"""Remote control session model."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from signalgate.models.enums import SessionStatus


class PolicySnapshot(BaseModel):
    """Policy terms frozen onto a session when it is created."""

    idle_timeout_minutes: int = 30
    require_consent: bool = False
    allow_clipboard: bool = False
    allow_file_transfer: bool = False

    def permissions(self) -> list[str]:
        """Operator permissions granted under this snapshot."""
        perms = ["view", "input"]
        if self.allow_clipboard:
            perms.append("clipboard")
        if self.allow_file_transfer:
            perms.append("file_transfer")
        return perms


class QualityMetrics(BaseModel):
    """Connection quality reported for a session by its operator console."""

    avg_fps: Optional[float] = Field(None, ge=0)
    avg_latency: Optional[float] = Field(None, ge=0)
    packets_lost: Optional[int] = Field(None, ge=0)
    bandwidth: Optional[float] = Field(None, ge=0)


class RemoteSession(BaseModel):
    """One remote-control attempt against one asset."""

    # Identity
    session_id: str
    org_id: str
    asset_id: str

    # Initiating operator
    operator_user_id: str
    operator_name: str

    # Lifecycle
    status: SessionStatus = SessionStatus.PENDING
    started_at: datetime
    activated_at: Optional[datetime] = None
    agent_delivered_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    end_reason: Optional[str] = None

    # Consent, when the policy requires it
    consent_granted_by: Optional[str] = None
    consent_granted_at: Optional[datetime] = None

    quality_metrics: Optional[QualityMetrics] = None

    # Immutable after creation
    policy_snapshot: PolicySnapshot = Field(default_factory=PolicySnapshot)

    # Request origin
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    updated_at: datetime

    def is_terminal(self) -> bool:
        """Check if session has ended."""
        return self.status.is_terminal()

    def can_transition_to(self, new_status: SessionStatus) -> bool:
        """Check if transition to new status is valid per state machine."""
        return self.status in new_status.allowed_sources()

    def to_summary(self) -> dict[str, Any]:
        """Serializable view used by the operator API."""
        return self.model_dump(mode="json")
