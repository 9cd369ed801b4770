"""Authentication context helpers."""

from dataclasses import dataclass, field
from typing import Literal, Optional

from signalgate.models.enums import SignalRole


@dataclass(frozen=True)
class AuthContext:
    """Authentication context for an operator API request."""

    auth_type: Literal["api_key", "insecure_dev"]


@dataclass(frozen=True)
class AgentBinding:
    """Org/asset/agent a verified credential is scoped to."""

    org_id: str
    asset_id: str
    agent_id: str
    is_active: bool


@dataclass(frozen=True)
class CredentialVerification:
    """Outcome of verifying an agent bearer credential."""

    valid: bool
    binding: Optional[AgentBinding] = None

    @property
    def is_active(self) -> bool:
        return self.valid and self.binding is not None and self.binding.is_active


@dataclass(frozen=True)
class SessionClaims:
    """Claims carried by a session token."""

    session_id: str
    asset_id: str
    org_id: str
    user_id: str
    role: SignalRole
    permissions: tuple[str, ...] = field(default_factory=tuple)
    expires_at: int = 0
    token_id: str = ""
