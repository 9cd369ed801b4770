"""SignalGate data models."""

from signalgate.models.enums import (
    AuditAction,
    SessionStatus,
    SignalRole,
    SignalType,
)
from signalgate.models.session import PolicySnapshot, QualityMetrics, RemoteSession
from signalgate.models.policy import PolicyUpdate, RemoteControlPolicy
from signalgate.models.audit import AuditEvent
from signalgate.models.signal import SignalMessage

__all__ = [
    "AuditAction",
    "AuditEvent",
    "PolicySnapshot",
    "PolicyUpdate",
    "QualityMetrics",
    "RemoteControlPolicy",
    "RemoteSession",
    "SessionStatus",
    "SignalMessage",
    "SignalRole",
    "SignalType",
]
