"""Session token issue and verification.

Tokens are short-lived HS256 JWTs scoped to exactly one session. They are
reissued on every hand-off, never refreshed in place.
"""

from __future__ import annotations

import secrets
import time
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt

from signalgate.auth.context import SessionClaims
from signalgate.config import settings
from signalgate.engine.errors import InvalidToken
from signalgate.models.enums import SignalRole

_REQUIRED_CLAIMS = ("sid", "aid", "oid", "sub", "role", "exp")


def _looks_like_jwt(token: str) -> bool:
    return token.count(".") == 2


def issue_session_token(
    session_id: str,
    asset_id: str,
    org_id: str,
    user_id: str,
    role: SignalRole,
    permissions: list[str] | tuple[str, ...] = (),
    ttl_seconds: Optional[int] = None,
) -> str:
    """Sign a fresh session-scoped token."""
    now = int(time.time())
    ttl = ttl_seconds or settings.session_token_ttl_seconds
    payload = {
        "sid": session_id,
        "aid": asset_id,
        "oid": org_id,
        "sub": user_id,
        "role": SignalRole(role).value,
        "perms": list(permissions),
        "iat": now,
        "exp": now + ttl,
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        settings.session_token_secret,
        algorithm=settings.session_token_algorithm,
    )


def verify_session_token(token: str | None, session_id: str | None = None) -> SessionClaims:
    """
    Verify a session token and, when given, that it is scoped to session_id.

    Raises InvalidToken for any failure; the reason is kept for logging only.
    """
    if not token:
        raise InvalidToken("missing")
    if not _looks_like_jwt(token):
        raise InvalidToken("malformed")

    try:
        payload = jwt.decode(
            token,
            settings.session_token_secret,
            algorithms=[settings.session_token_algorithm],
            options={"verify_aud": False},
        )
    except ExpiredSignatureError as exc:
        raise InvalidToken("expired") from exc
    except JWTError as exc:
        raise InvalidToken(f"bad signature or encoding: {exc}") from exc

    missing = [claim for claim in _REQUIRED_CLAIMS if not payload.get(claim)]
    if missing:
        raise InvalidToken(f"missing claims: {', '.join(missing)}")

    try:
        role = SignalRole(payload["role"])
    except ValueError as exc:
        raise InvalidToken("unknown role") from exc

    if session_id is not None and payload["sid"] != session_id:
        raise InvalidToken("session mismatch")

    return SessionClaims(
        session_id=payload["sid"],
        asset_id=payload["aid"],
        org_id=payload["oid"],
        user_id=payload["sub"],
        role=role,
        permissions=tuple(payload.get("perms") or ()),
        expires_at=int(payload["exp"]),
        token_id=payload.get("jti", ""),
    )
