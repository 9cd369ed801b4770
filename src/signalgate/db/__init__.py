"""SignalGate database layer."""

from signalgate.db.base import Base, close_db, init_db
from signalgate.db.tables import (
    AuditEventTable,
    RemotePolicyTable,
    RemoteSessionTable,
)

__all__ = [
    "Base",
    "close_db",
    "init_db",
    "AuditEventTable",
    "RemotePolicyTable",
    "RemoteSessionTable",
]
