"""Database repositories for SignalGate entities."""

from typing import Any, Iterable
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from signalgate.db.tables import (
    AuditEventTable,
    RemotePolicyTable,
    RemoteSessionTable,
)
from signalgate.engine.errors import SessionAlreadyOpen
from signalgate.models import (
    AuditAction,
    AuditEvent,
    PolicySnapshot,
    QualityMetrics,
    RemoteControlPolicy,
    RemoteSession,
    SessionStatus,
)
from signalgate.models.policy import DEFAULT_ALLOWED_ROLES
from signalgate.utils.time import ensure_aware, utc_now


class SessionRepository:
    """Repository for remote session records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        org_id: str,
        asset_id: str,
        operator_user_id: str,
        operator_name: str,
        policy_snapshot: PolicySnapshot,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RemoteSession:
        """
        Create a new pending session.

        The partial unique index on open sessions per asset is the final
        arbiter when two operators race; the loser gets SessionAlreadyOpen.
        """
        now = utc_now()
        row = RemoteSessionTable(
            org_id=org_id,
            session_id=uuid4().hex,
            asset_id=asset_id,
            operator_user_id=operator_user_id,
            operator_name=operator_name,
            status=SessionStatus.PENDING,
            started_at=now,
            updated_at=now,
            policy_snapshot=policy_snapshot.model_dump(),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(row)

        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise SessionAlreadyOpen(asset_id)
        return self._row_to_model(row)

    async def get(self, org_id: str, session_id: str) -> RemoteSession | None:
        """Get a session by ID, always re-reading the stored row."""
        result = await self.session.execute(
            select(RemoteSessionTable)
            .where(
                RemoteSessionTable.org_id == org_id,
                RemoteSessionTable.session_id == session_id,
            )
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def list(
        self,
        org_id: str,
        asset_id: str | None = None,
        operator_user_id: str | None = None,
        status: SessionStatus | None = None,
        limit: int = 50,
    ) -> list[RemoteSession]:
        """List sessions newest first with optional filtering."""
        query = select(RemoteSessionTable).where(RemoteSessionTable.org_id == org_id)

        if asset_id:
            query = query.where(RemoteSessionTable.asset_id == asset_id)
        if operator_user_id:
            query = query.where(RemoteSessionTable.operator_user_id == operator_user_id)
        if status:
            query = query.where(RemoteSessionTable.status == status)

        query = query.order_by(RemoteSessionTable.started_at.desc()).limit(limit)
        result = await self.session.execute(query)
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def find_open_for_asset(self, org_id: str, asset_id: str) -> RemoteSession | None:
        """Most recently started pending or active session for an asset."""
        result = await self.session.execute(
            select(RemoteSessionTable)
            .where(
                RemoteSessionTable.org_id == org_id,
                RemoteSessionTable.asset_id == asset_id,
                RemoteSessionTable.status.in_(
                    [SessionStatus.PENDING, SessionStatus.ACTIVE]
                ),
            )
            .order_by(RemoteSessionTable.started_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = result.scalars().first()
        return self._row_to_model(row) if row else None

    async def compare_and_set_status(
        self,
        org_id: str,
        session_id: str,
        expected: Iterable[SessionStatus],
        new_status: SessionStatus,
        values: dict[str, Any] | None = None,
    ) -> bool:
        """
        Move a session to new_status only if it is currently in one of expected.

        Returns True if this caller performed the transition. A single guarded
        UPDATE, so concurrent callers cannot both win.
        """
        expected = list(expected)
        if not expected:
            return False

        updates: dict[str, Any] = {"status": new_status, "updated_at": utc_now()}
        if values:
            updates.update(values)

        result = await self.session.execute(
            update(RemoteSessionTable)
            .where(
                RemoteSessionTable.org_id == org_id,
                RemoteSessionTable.session_id == session_id,
                RemoteSessionTable.status.in_(expected),
            )
            .values(**updates)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def record_duration(self, org_id: str, session_id: str, duration_seconds: int) -> None:
        await self.session.execute(
            update(RemoteSessionTable)
            .where(
                RemoteSessionTable.org_id == org_id,
                RemoteSessionTable.session_id == session_id,
            )
            .values(duration_seconds=duration_seconds)
            .execution_options(synchronize_session=False)
        )

    async def claim_agent_delivery(
        self,
        org_id: str,
        session_id: str,
        statuses: Iterable[SessionStatus] = (SessionStatus.ACTIVE,),
    ) -> bool:
        """Mark an open session as handed to its agent. True for the first caller only."""
        now = utc_now()
        result = await self.session.execute(
            update(RemoteSessionTable)
            .where(
                RemoteSessionTable.org_id == org_id,
                RemoteSessionTable.session_id == session_id,
                RemoteSessionTable.status.in_(list(statuses)),
                RemoteSessionTable.agent_delivered_at.is_(None),
            )
            .values(agent_delivered_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_quality_metrics(
        self, org_id: str, session_id: str, quality_metrics: QualityMetrics
    ) -> bool:
        """Replace the reported quality metrics. False if the session does not exist."""
        result = await self.session.execute(
            update(RemoteSessionTable)
            .where(
                RemoteSessionTable.org_id == org_id,
                RemoteSessionTable.session_id == session_id,
            )
            .values(
                quality_metrics=quality_metrics.model_dump(exclude_none=True),
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _row_to_model(self, row: RemoteSessionTable) -> RemoteSession:
        """Convert database row to model."""
        return RemoteSession(
            session_id=row.session_id,
            org_id=row.org_id,
            asset_id=row.asset_id,
            operator_user_id=row.operator_user_id,
            operator_name=row.operator_name,
            status=SessionStatus(row.status),
            started_at=ensure_aware(row.started_at),
            activated_at=ensure_aware(row.activated_at),
            agent_delivered_at=ensure_aware(row.agent_delivered_at),
            ended_at=ensure_aware(row.ended_at),
            duration_seconds=row.duration_seconds,
            end_reason=row.end_reason,
            consent_granted_by=row.consent_granted_by,
            consent_granted_at=ensure_aware(row.consent_granted_at),
            quality_metrics=(
                QualityMetrics(**row.quality_metrics) if row.quality_metrics is not None else None
            ),
            policy_snapshot=PolicySnapshot(**(row.policy_snapshot or {})),
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            updated_at=ensure_aware(row.updated_at),
        )


class PolicyRepository:
    """Repository for per-org remote control policy."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, org_id: str) -> RemoteControlPolicy | None:
        result = await self.session.execute(
            select(RemotePolicyTable).where(RemotePolicyTable.org_id == org_id)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def get_or_create(self, org_id: str, user_id: str) -> RemoteControlPolicy:
        """Get the org policy, creating the default one on first use."""
        existing = await self.get(org_id)
        if existing:
            return existing

        now = utc_now()
        row = RemotePolicyTable(
            org_id=org_id,
            enabled=True,
            require_consent=False,
            idle_timeout_minutes=30,
            allow_clipboard=False,
            allow_file_transfer=False,
            allowed_roles=list(DEFAULT_ALLOWED_ROLES),
            created_at=now,
            updated_at=now,
            updated_by=user_id,
        )
        self.session.add(row)

        try:
            await self.session.flush()
        except IntegrityError:
            # Another request created it first
            await self.session.rollback()
            existing = await self.get(org_id)
            if existing:
                return existing
            raise
        return self._row_to_model(row)

    async def update(
        self,
        org_id: str,
        updates: dict[str, Any],
        user_id: str,
    ) -> RemoteControlPolicy:
        """Apply a partial update. Sessions already created keep their snapshot."""
        await self.get_or_create(org_id, user_id)

        values = {k: v for k, v in updates.items() if v is not None}
        values["updated_at"] = utc_now()
        values["updated_by"] = user_id

        await self.session.execute(
            update(RemotePolicyTable)
            .where(RemotePolicyTable.org_id == org_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        result = await self.session.execute(
            select(RemotePolicyTable)
            .where(RemotePolicyTable.org_id == org_id)
            .execution_options(populate_existing=True)
        )
        return self._row_to_model(result.scalar_one())

    def _row_to_model(self, row: RemotePolicyTable) -> RemoteControlPolicy:
        return RemoteControlPolicy(
            org_id=row.org_id,
            enabled=row.enabled,
            require_consent=row.require_consent,
            idle_timeout_minutes=row.idle_timeout_minutes,
            allow_clipboard=row.allow_clipboard,
            allow_file_transfer=row.allow_file_transfer,
            allowed_roles=list(row.allowed_roles or []),
            consent_message=row.consent_message,
            created_at=ensure_aware(row.created_at),
            updated_at=ensure_aware(row.updated_at),
            updated_by=row.updated_by,
        )


class AuditRepository:
    """Repository for the remote control audit trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        org_id: str,
        session_id: str,
        asset_id: str,
        action: AuditAction,
        actor_id: str | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
    ) -> AuditEvent:
        """Append an audit event in the caller's transaction."""
        row = AuditEventTable(
            org_id=org_id,
            event_id=uuid4().hex,
            session_id=session_id,
            asset_id=asset_id,
            actor_id=actor_id,
            action=action,
            details=details or {},
            ip_address=ip_address,
            created_at=utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def list_for_session(
        self,
        org_id: str,
        session_id: str,
        action: AuditAction | None = None,
    ) -> list[AuditEvent]:
        """Audit events for a session, oldest first."""
        query = select(AuditEventTable).where(
            AuditEventTable.org_id == org_id,
            AuditEventTable.session_id == session_id,
        )
        if action:
            query = query.where(AuditEventTable.action == action)

        result = await self.session.execute(query.order_by(AuditEventTable.created_at.asc()))
        return [self._row_to_model(r) for r in result.scalars().all()]

    def _row_to_model(self, row: AuditEventTable) -> AuditEvent:
        return AuditEvent(
            event_id=row.event_id,
            org_id=row.org_id,
            session_id=row.session_id,
            asset_id=row.asset_id,
            actor_id=row.actor_id,
            action=AuditAction(row.action),
            details=dict(row.details or {}),
            ip_address=row.ip_address,
            created_at=ensure_aware(row.created_at),
        )
