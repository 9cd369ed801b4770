"""Initial SignalGate schema."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create session, policy, credential and audit tables."""
    bind = op.get_bind()

    sessionstatus = sa.Enum("pending", "active", "ended", name="sessionstatus")
    auditaction = sa.Enum(
        "session_start",
        "session_end",
        "agent_connected",
        "token_issued",
        name="auditaction",
    )

    sessionstatus.create(bind, checkfirst=True)
    auditaction.create(bind, checkfirst=True)

    op.create_table(
        "remote_sessions",
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("asset_id", sa.String(length=64), nullable=False),
        sa.Column("operator_user_id", sa.String(length=255), nullable=False),
        sa.Column("operator_name", sa.String(length=255), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(name="sessionstatus", create_type=False),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("agent_delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("end_reason", sa.String(length=255), nullable=True),
        sa.Column("consent_granted_by", sa.String(length=255), nullable=True),
        sa.Column("consent_granted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("quality_metrics", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "policy_snapshot",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.PrimaryKeyConstraint("org_id", "session_id"),
    )
    op.create_index(
        "idx_sessions_asset_status",
        "remote_sessions",
        ["org_id", "asset_id", "status", "started_at"],
    )
    op.create_index(
        "uq_sessions_open_asset",
        "remote_sessions",
        ["org_id", "asset_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'ended'"),
    )
    op.create_index(
        "idx_sessions_operator",
        "remote_sessions",
        ["org_id", "operator_user_id", "started_at"],
    )

    op.create_table(
        "remote_policies",
        sa.Column("org_id", sa.String(length=64), primary_key=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("require_consent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("idle_timeout_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("allow_clipboard", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("allow_file_transfer", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "allowed_roles",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[\"admin\", \"technician\"]'::jsonb"),
        ),
        sa.Column("consent_message", sa.String(length=1024), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_by", sa.String(length=255), nullable=False),
    )

    op.create_table(
        "agent_credentials",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("asset_id", sa.String(length=64), nullable=False),
        sa.Column("agent_id", sa.String(length=255), nullable=False),
        sa.Column("key_prefix", sa.String(), nullable=False),
        sa.Column("key_hash", sa.String(), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", sa.String(length=255), nullable=True),
    )
    op.create_index("ix_agent_credentials_key_prefix", "agent_credentials", ["key_prefix"])
    op.create_index("idx_agent_credentials_asset", "agent_credentials", ["org_id", "asset_id"])

    op.create_table(
        "audit_events",
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("event_id", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("asset_id", sa.String(length=64), nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=True),
        sa.Column(
            "action",
            postgresql.ENUM(name="auditaction", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("org_id", "event_id"),
    )
    op.create_index("idx_audit_session", "audit_events", ["org_id", "session_id", "created_at"])
    op.create_index("idx_audit_action", "audit_events", ["org_id", "action", "created_at"])


def downgrade() -> None:
    """Drop all tables and enums."""
    op.drop_index("idx_audit_action", table_name="audit_events")
    op.drop_index("idx_audit_session", table_name="audit_events")
    op.drop_table("audit_events")

    op.drop_index("idx_agent_credentials_asset", table_name="agent_credentials")
    op.drop_index("ix_agent_credentials_key_prefix", table_name="agent_credentials")
    op.drop_table("agent_credentials")

    op.drop_table("remote_policies")

    op.drop_index("idx_sessions_operator", table_name="remote_sessions")
    op.drop_index("uq_sessions_open_asset", table_name="remote_sessions")
    op.drop_index("idx_sessions_asset_status", table_name="remote_sessions")
    op.drop_table("remote_sessions")

    bind = op.get_bind()
    sa.Enum(name="auditaction").drop(bind, checkfirst=True)
    sa.Enum(name="sessionstatus").drop(bind, checkfirst=True)
