"""SQLAlchemy table definitions."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from signalgate.db.base import Base, JSONType
from signalgate.models.enums import AuditAction, SessionStatus


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class RemoteSessionTable(Base):
    """Remote control sessions - one row per attempt."""

    __tablename__ = "remote_sessions"

    # Primary key with org partitioning
    org_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    asset_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Initiating operator
    operator_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    operator_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Status
    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, name="sessionstatus", values_callable=_enum_values),
        nullable=False,
        default=SessionStatus.PENDING,
    )

    # Timestamps
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    agent_delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Consent and reported quality
    consent_granted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    consent_granted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    quality_metrics: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    # Policy frozen at creation (immutable)
    policy_snapshot: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Request origin
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    __table_args__ = (
        # Index for the agent poll lookup
        Index(
            "idx_sessions_asset_status",
            "org_id",
            "asset_id",
            "status",
            "started_at",
        ),
        # At most one non-terminal session per asset
        Index(
            "uq_sessions_open_asset",
            "org_id",
            "asset_id",
            unique=True,
            postgresql_where=text("status <> 'ended'"),
            sqlite_where=text("status <> 'ended'"),
        ),
        # Index for operator listings
        Index("idx_sessions_operator", "org_id", "operator_user_id", "started_at"),
    )


class RemotePolicyTable(Base):
    """Remote control policy - one row per org."""

    __tablename__ = "remote_policies"

    org_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    require_consent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    idle_timeout_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    allow_clipboard: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allow_file_transfer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    allowed_roles: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    consent_message: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_by: Mapped[str] = mapped_column(String(255), nullable=False)


class AuditEventTable(Base):
    """Audit events table - session lifecycle tracking."""

    __tablename__ = "audit_events"

    org_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    asset_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, name="auditaction", values_callable=_enum_values),
        nullable=False,
    )
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_audit_session", "org_id", "session_id", "created_at"),
        Index("idx_audit_action", "org_id", "action", "created_at"),
    )
