"""SignalGate engine errors."""


class SignalGateError(Exception):
    """Base error for SignalGate operations."""

    status_code = 500

    def __init__(self, message: str, code: str = "SIGNALGATE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class AuthenticationFailure(SignalGateError):
    """Missing or bad credential or token."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", code: str = "UNAUTHENTICATED"):
        super().__init__(message, code)


class InvalidToken(AuthenticationFailure):
    """Session token failed verification."""

    def __init__(self, reason: str = "invalid"):
        # Reason is for logs only; callers always see the generic message
        super().__init__("Invalid or expired session token", "INVALID_TOKEN")
        self.reason = reason


class AuthorizationFailure(SignalGateError):
    """Authenticated, but not allowed."""

    status_code = 403

    def __init__(self, message: str = "Forbidden", code: str = "FORBIDDEN"):
        super().__init__(message, code)


class RemoteControlDisabled(AuthorizationFailure):
    """Org policy does not allow remote control for this operator."""

    def __init__(self, org_id: str):
        super().__init__(
            "Remote control is not permitted by the organization policy",
            "REMOTE_CONTROL_DISABLED",
        )
        self.org_id = org_id


class SessionNotFound(SignalGateError):
    """Session does not exist in this org."""

    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", "SESSION_NOT_FOUND")
        self.session_id = session_id


class InvalidTransition(SignalGateError):
    """Invalid session state transition."""

    status_code = 409

    def __init__(self, current_status: str, requested_status: str):
        super().__init__(
            f"Invalid transition from {current_status} to {requested_status}",
            "INVALID_STATE_TRANSITION",
        )
        self.current_status = current_status
        self.requested_status = requested_status


class SessionAlreadyOpen(SignalGateError):
    """Asset already has a pending or active session."""

    status_code = 409

    def __init__(self, asset_id: str, session_id: str | None = None):
        super().__init__(
            f"Asset {asset_id} already has an open remote control session",
            "SESSION_ALREADY_OPEN",
        )
        self.asset_id = asset_id
        self.session_id = session_id

