"""SignalGate enumerations."""

from enum import Enum


class SessionStatus(str, Enum):
    """Remote control session lifecycle status."""

    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"

    def is_terminal(self) -> bool:
        """Check if status is terminal."""
        return self == SessionStatus.ENDED

    def allowed_sources(self) -> set["SessionStatus"]:
        """States from which a session may move into this one."""
        return _ALLOWED_SOURCES[self]


_ALLOWED_SOURCES: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.PENDING: set(),
    SessionStatus.ACTIVE: {SessionStatus.PENDING},
    SessionStatus.ENDED: {SessionStatus.PENDING, SessionStatus.ACTIVE},
}


class SignalType(str, Enum):
    """Signalling payload kinds."""

    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"


class SignalRole(str, Enum):
    """Party on either end of a session."""

    OPERATOR = "operator"
    AGENT = "agent"


class AuditAction(str, Enum):
    """Audit trail actions emitted by the broker."""

    SESSION_START = "session_start"
    SESSION_END = "session_end"
    AGENT_CONNECTED = "agent_connected"
    TOKEN_ISSUED = "token_issued"
    CONSENT_GRANTED = "consent_granted"
    CONSENT_DENIED = "consent_denied"
