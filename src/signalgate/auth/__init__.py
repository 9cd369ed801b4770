"""SignalGate authentication module."""

from signalgate.auth.models import AgentCredential
from signalgate.auth.context import (
    AgentBinding,
    AuthContext,
    CredentialVerification,
    SessionClaims,
)
from signalgate.auth.credentials import (
    CredentialVerifier,
    extract_bearer,
    generate_credential,
    hash_credential,
    issue_agent_credential,
    revoke_agent_credential,
    verify_credential_hash,
)
from signalgate.auth.tokens import issue_session_token, verify_session_token

__all__ = [
    "AgentBinding",
    "AgentCredential",
    "AuthContext",
    "CredentialVerification",
    "CredentialVerifier",
    "SessionClaims",
    "extract_bearer",
    "generate_credential",
    "hash_credential",
    "issue_agent_credential",
    "issue_session_token",
    "revoke_agent_credential",
    "verify_credential_hash",
    "verify_session_token",
]
