"""Audit event model."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from signalgate.models.enums import AuditAction


class AuditEvent(BaseModel):
    """Audit trail entry for session lifecycle events."""

    event_id: str
    org_id: str
    session_id: str
    asset_id: str
    actor_id: Optional[str] = None
    action: AuditAction
    details: dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    created_at: datetime
