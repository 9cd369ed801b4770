"""SignalGate engine - session broker and state machine.

The broker itself lives in ``signalgate.engine.broker``; only errors are
re-exported here so the auth layer can raise them without import cycles.
"""

from signalgate.engine.errors import (
    AuthenticationFailure,
    AuthorizationFailure,
    InvalidToken,
    InvalidTransition,
    RemoteControlDisabled,
    SessionAlreadyOpen,
    SessionNotFound,
    SignalGateError,
)

__all__ = [
    "AuthenticationFailure",
    "AuthorizationFailure",
    "InvalidToken",
    "InvalidTransition",
    "RemoteControlDisabled",
    "SessionAlreadyOpen",
    "SessionNotFound",
    "SignalGateError",
]
