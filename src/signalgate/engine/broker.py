"""SignalGate session broker - canonical session operations."""

import logging
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from signalgate.auth.context import SessionClaims
from signalgate.auth.tokens import issue_session_token, verify_session_token
from signalgate.db.repositories import (
    AuditRepository,
    PolicyRepository,
    SessionRepository,
)
from signalgate.engine.errors import (
    InvalidTransition,
    RemoteControlDisabled,
    SessionAlreadyOpen,
    SessionNotFound,
)
from signalgate.engine.ice import build_ice_servers
from signalgate.models import (
    AuditAction,
    AuditEvent,
    QualityMetrics,
    RemoteControlPolicy,
    RemoteSession,
    SessionStatus,
    SignalRole,
)
from signalgate.observability.metrics import metrics
from signalgate.relay.base import SignalRelay
from signalgate.utils.time import utc_now

logger = logging.getLogger(__name__)

AGENT_PERMISSIONS = ("signal",)
CONSENT_DENIED_REASON = "consent_denied"


class SessionBroker:
    """Owns session records: creation, lookup, state transitions and tokens."""

    def __init__(self, session: AsyncSession, relay: Optional[SignalRelay] = None):
        self.session = session
        self.sessions = SessionRepository(session)
        self.policies = PolicyRepository(session)
        self.audit = AuditRepository(session)
        self.relay = relay
        self._ended_sessions: list[str] = []

    # =========================================================================
    # Operator operations
    # =========================================================================

    async def create_session(
        self,
        org_id: str,
        asset_id: str,
        operator_user_id: str,
        operator_name: str,
        operator_role: str = "technician",
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> tuple[RemoteSession, str]:
        """
        Open a pending session against an asset.

        Returns the session and a fresh operator token. The org policy is
        snapshotted onto the session and never re-read for it.
        """
        policy = await self.policies.get_or_create(org_id, operator_user_id)
        if not policy.allows_role(operator_role):
            raise RemoteControlDisabled(org_id)

        existing = await self.sessions.find_open_for_asset(org_id, asset_id)
        if existing:
            raise SessionAlreadyOpen(asset_id, existing.session_id)

        snapshot = policy.snapshot()
        rc_session = await self.sessions.create(
            org_id=org_id,
            asset_id=asset_id,
            operator_user_id=operator_user_id,
            operator_name=operator_name,
            policy_snapshot=snapshot,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        await self.audit.record(
            org_id=org_id,
            session_id=rc_session.session_id,
            asset_id=asset_id,
            action=AuditAction.SESSION_START,
            actor_id=operator_user_id,
            details={"operator_name": operator_name, "policy": snapshot.model_dump()},
            ip_address=ip_address,
        )

        token = self._operator_token(rc_session)
        metrics.inc_counter("sessions.created")
        logger.info(
            f"Session {rc_session.session_id} created for asset {asset_id} "
            f"by {operator_user_id} (org {org_id})"
        )
        return rc_session, token

    async def get_session(self, org_id: str, session_id: str) -> RemoteSession:
        rc_session = await self.sessions.get(org_id, session_id)
        if not rc_session:
            raise SessionNotFound(session_id)
        return rc_session

    async def list_sessions(
        self,
        org_id: str,
        asset_id: Optional[str] = None,
        operator_user_id: Optional[str] = None,
        status: Optional[SessionStatus] = None,
        limit: int = 50,
    ) -> list[RemoteSession]:
        return await self.sessions.list(
            org_id=org_id,
            asset_id=asset_id,
            operator_user_id=operator_user_id,
            status=status,
            limit=limit,
        )

    async def find_active_or_pending_session(
        self, org_id: str, asset_id: str
    ) -> Optional[RemoteSession]:
        """Most recently started non-terminal session for the asset, if any."""
        return await self.sessions.find_open_for_asset(org_id, asset_id)

    async def issue_operator_token(
        self,
        org_id: str,
        session_id: str,
        actor_id: Optional[str] = None,
    ) -> tuple[RemoteSession, str]:
        """Reissue an operator token for a session that has not ended."""
        rc_session = await self.get_session(org_id, session_id)
        if rc_session.is_terminal():
            raise InvalidTransition(rc_session.status.value, AuditAction.TOKEN_ISSUED.value)

        token = self._operator_token(rc_session)
        await self.audit.record(
            org_id=org_id,
            session_id=session_id,
            asset_id=rc_session.asset_id,
            action=AuditAction.TOKEN_ISSUED,
            actor_id=actor_id or rc_session.operator_user_id,
            details={"role": SignalRole.OPERATOR.value},
        )
        return rc_session, token

    # =========================================================================
    # State machine
    # =========================================================================

    async def transition(
        self,
        org_id: str,
        session_id: str,
        new_status: SessionStatus,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        expected: Optional[Iterable[SessionStatus]] = None,
    ) -> RemoteSession:
        """
        Move a session forward through pending -> active -> ended.

        The guarded UPDATE runs first so that of several concurrent callers
        exactly one wins; losers see InvalidTransition and emit nothing.
        expected narrows the states the move is accepted from.

        Ending a session schedules its signalling queue to be cleared once
        the caller commits through commit().
        """
        new_status = SessionStatus(new_status)
        now = utc_now()

        sources = new_status.allowed_sources()
        if expected is not None:
            sources = sources & set(expected)

        values: dict[str, Any] = {}
        if new_status == SessionStatus.ACTIVE:
            values["activated_at"] = now
        elif new_status == SessionStatus.ENDED:
            values["ended_at"] = now
            values["end_reason"] = reason

        won = await self.sessions.compare_and_set_status(
            org_id=org_id,
            session_id=session_id,
            expected=sources,
            new_status=new_status,
            values=values,
        )

        rc_session = await self.sessions.get(org_id, session_id)
        if not rc_session:
            raise SessionNotFound(session_id)
        if not won:
            raise InvalidTransition(rc_session.status.value, new_status.value)

        if new_status == SessionStatus.ACTIVE:
            await self.audit.record(
                org_id=org_id,
                session_id=session_id,
                asset_id=rc_session.asset_id,
                action=AuditAction.AGENT_CONNECTED,
                actor_id=actor_id,
            )
            metrics.inc_counter("sessions.activated")

        elif new_status == SessionStatus.ENDED:
            duration = max(0, int((now - rc_session.started_at).total_seconds()))
            await self.sessions.record_duration(org_id, session_id, duration)
            rc_session = rc_session.model_copy(update={"duration_seconds": duration})

            await self.audit.record(
                org_id=org_id,
                session_id=session_id,
                asset_id=rc_session.asset_id,
                action=AuditAction.SESSION_END,
                actor_id=actor_id,
                details={"duration_seconds": duration, "reason": reason},
            )
            self._ended_sessions.append(session_id)
            metrics.inc_counter("sessions.ended")

        logger.info(f"Session {session_id} -> {new_status.value} (actor {actor_id})")
        return rc_session

    async def commit(self) -> None:
        """
        Commit the unit of work, then drop the queues of sessions it ended.

        Queues are only cleared once the end is durable; a failed commit
        leaves them in place.
        """
        await self.session.commit()

        ended, self._ended_sessions = self._ended_sessions, []
        if self.relay is None:
            return
        for session_id in ended:
            await self.relay.clear(session_id)

    async def rollback(self) -> None:
        self._ended_sessions = []
        await self.session.rollback()

    async def grant_consent(
        self,
        org_id: str,
        session_id: str,
        granted_by: str,
    ) -> RemoteSession:
        """Record the device user's consent; the pending session becomes active."""
        now = utc_now()
        won = await self.sessions.compare_and_set_status(
            org_id=org_id,
            session_id=session_id,
            expected=[SessionStatus.PENDING],
            new_status=SessionStatus.ACTIVE,
            values={
                "activated_at": now,
                "consent_granted_by": granted_by,
                "consent_granted_at": now,
            },
        )

        rc_session = await self.sessions.get(org_id, session_id)
        if not rc_session:
            raise SessionNotFound(session_id)
        if not won:
            raise InvalidTransition(rc_session.status.value, SessionStatus.ACTIVE.value)

        await self.audit.record(
            org_id=org_id,
            session_id=session_id,
            asset_id=rc_session.asset_id,
            action=AuditAction.CONSENT_GRANTED,
            actor_id=granted_by,
            details={"granted_by": granted_by},
        )
        metrics.inc_counter("sessions.activated")
        metrics.inc_counter("consent.granted")
        logger.info(f"Consent granted for session {session_id} by {granted_by}")
        return rc_session

    async def deny_consent(
        self,
        org_id: str,
        session_id: str,
        denied_by: str,
    ) -> RemoteSession:
        """Record a refusal; the pending session ends with reason consent_denied."""
        rc_session = await self.transition(
            org_id,
            session_id,
            SessionStatus.ENDED,
            actor_id=denied_by,
            reason=CONSENT_DENIED_REASON,
            expected=[SessionStatus.PENDING],
        )
        await self.audit.record(
            org_id=org_id,
            session_id=session_id,
            asset_id=rc_session.asset_id,
            action=AuditAction.CONSENT_DENIED,
            actor_id=denied_by,
            details={"denied_by": denied_by},
        )
        metrics.inc_counter("consent.denied")
        return rc_session

    async def update_quality_metrics(
        self,
        org_id: str,
        session_id: str,
        quality_metrics: QualityMetrics,
    ) -> RemoteSession:
        """Store the latest connection quality reported for a session."""
        updated = await self.sessions.update_quality_metrics(org_id, session_id, quality_metrics)
        if not updated:
            raise SessionNotFound(session_id)
        return await self.get_session(org_id, session_id)

    async def activate_for_agent(
        self,
        org_id: str,
        asset_id: str,
        agent_id: Optional[str] = None,
    ) -> Optional[RemoteSession]:
        """
        Hand the asset's open session to its agent, at most once.

        A pending session is activated first, unless its policy requires the
        device user's consent; then it is handed over still pending and waits
        for grant_consent or deny_consent.

        Returns None when there is nothing to hand off: no open session, the
        session was already delivered, or a concurrent poll won the race.
        """
        rc_session = await self.sessions.find_open_for_asset(org_id, asset_id)
        if not rc_session:
            return None

        if (
            rc_session.status == SessionStatus.PENDING
            and not rc_session.policy_snapshot.require_consent
        ):
            try:
                rc_session = await self.transition(
                    org_id, rc_session.session_id, SessionStatus.ACTIVE, actor_id=agent_id
                )
            except InvalidTransition:
                logger.debug(f"Session {rc_session.session_id} activated concurrently")
                return None

        if rc_session.agent_delivered_at is not None:
            return None

        claimed = await self.sessions.claim_agent_delivery(
            org_id,
            rc_session.session_id,
            statuses=(SessionStatus.PENDING, SessionStatus.ACTIVE),
        )
        if not claimed:
            return None

        delivered = await self.sessions.get(org_id, rc_session.session_id)
        if not delivered:
            raise SessionNotFound(rc_session.session_id)
        return delivered

    async def issue_agent_token(self, rc_session: RemoteSession, agent_id: str) -> str:
        """Token for the agent side of a session it was just handed."""
        token = self.issue_token(
            SessionClaims(
                session_id=rc_session.session_id,
                asset_id=rc_session.asset_id,
                org_id=rc_session.org_id,
                user_id=agent_id,
                role=SignalRole.AGENT,
                permissions=AGENT_PERMISSIONS,
            )
        )
        await self.audit.record(
            org_id=rc_session.org_id,
            session_id=rc_session.session_id,
            asset_id=rc_session.asset_id,
            action=AuditAction.TOKEN_ISSUED,
            actor_id=agent_id,
            details={"role": SignalRole.AGENT.value},
        )
        return token

    # =========================================================================
    # Tokens, ICE, audit and policy
    # =========================================================================

    def issue_token(self, claims: SessionClaims) -> str:
        """Sign a token for the given claims; expiry always comes from config."""
        metrics.inc_counter("tokens.issued")
        return issue_session_token(
            session_id=claims.session_id,
            asset_id=claims.asset_id,
            org_id=claims.org_id,
            user_id=claims.user_id,
            role=claims.role,
            permissions=claims.permissions,
        )

    def verify_token(self, token: Optional[str], session_id: Optional[str] = None) -> SessionClaims:
        return verify_session_token(token, session_id=session_id)

    def get_ice_servers(self, username: str) -> list[dict[str, Any]]:
        return build_ice_servers(username)

    async def get_audit_log(self, org_id: str, session_id: str) -> list[AuditEvent]:
        await self.get_session(org_id, session_id)
        return await self.audit.list_for_session(org_id, session_id)

    async def get_or_create_policy(self, org_id: str, user_id: str) -> RemoteControlPolicy:
        return await self.policies.get_or_create(org_id, user_id)

    async def update_policy(
        self,
        org_id: str,
        updates: dict[str, Any],
        user_id: str,
    ) -> RemoteControlPolicy:
        policy = await self.policies.update(org_id, updates, user_id)
        logger.info(f"Remote control policy updated for org {org_id} by {user_id}")
        return policy

    def _operator_token(self, rc_session: RemoteSession) -> str:
        return self.issue_token(
            SessionClaims(
                session_id=rc_session.session_id,
                asset_id=rc_session.asset_id,
                org_id=rc_session.org_id,
                user_id=rc_session.operator_user_id,
                role=SignalRole.OPERATOR,
                permissions=tuple(rc_session.policy_snapshot.permissions()),
            )
        )
