"""Per-organization remote control policy."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from signalgate.models.session import PolicySnapshot


DEFAULT_ALLOWED_ROLES = ["admin", "technician"]


class RemoteControlPolicy(BaseModel):
    """Permission and consent policy that applies to new sessions of an org."""

    org_id: str
    enabled: bool = True
    require_consent: bool = False
    idle_timeout_minutes: int = 30
    allow_clipboard: bool = False
    allow_file_transfer: bool = False
    allowed_roles: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ROLES))
    consent_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    updated_by: str

    def snapshot(self) -> PolicySnapshot:
        """Freeze the terms a new session is authorized under."""
        return PolicySnapshot(
            idle_timeout_minutes=self.idle_timeout_minutes,
            require_consent=self.require_consent,
            allow_clipboard=self.allow_clipboard,
            allow_file_transfer=self.allow_file_transfer,
        )

    def allows_role(self, role: str) -> bool:
        return self.enabled and role in self.allowed_roles


class PolicyUpdate(BaseModel):
    """Partial policy update."""

    enabled: Optional[bool] = None
    require_consent: Optional[bool] = None
    idle_timeout_minutes: Optional[int] = Field(None, ge=1, le=1440)
    allow_clipboard: Optional[bool] = None
    allow_file_transfer: Optional[bool] = None
    allowed_roles: Optional[list[str]] = None
    consent_message: Optional[str] = None
