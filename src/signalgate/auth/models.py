"""
Authentication Models for SignalGate

Long-lived agent credentials, bound to exactly one org/asset/agent.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Index
import uuid

from signalgate.db.base import Base
from signalgate.utils.time import utc_now


def _new_credential_id() -> str:
    return uuid.uuid4().hex


class AgentCredential(Base):
    """Bearer credential issued to an enrolled agent process"""
    __tablename__ = "agent_credentials"

    id = Column(String(64), primary_key=True, default=_new_credential_id)

    # Binding - the only source of truth for who the agent is
    org_id = Column(String(64), nullable=False)
    asset_id = Column(String(64), nullable=False)
    agent_id = Column(String(255), nullable=False)

    # Key components
    key_prefix = Column(String, nullable=False, index=True)  # First 12 chars (sgk_ + 8) for lookup
    key_hash = Column(String, nullable=False, unique=True)   # bcrypt hash of full key

    # Status
    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    enrolled_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_by = Column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_agent_credentials_asset", "org_id", "asset_id"),
    )

    def __repr__(self):
        return f"<AgentCredential {self.key_prefix} asset={self.asset_id}>"

    def touch(self, now: datetime | None = None):
        """Track credential usage"""
        self.last_seen_at = now or utc_now()

    def revoke(self, revoked_by: str):
        self.is_active = False
        self.revoked_at = utc_now()
        self.revoked_by = revoked_by
