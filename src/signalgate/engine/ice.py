"""ICE server configuration handed to both peers."""

import base64
import hashlib
import hmac
import time
from typing import Any

from signalgate.config import settings


def generate_turn_credentials(username: str, secret: str, ttl: int) -> tuple[str, str]:
    """
    Time-limited TURN REST credentials.

    The username is "<expiry>:<username>" and the password is the base64
    HMAC-SHA1 of that username under the shared secret, which coturn's
    use-auth-secret mode recomputes on its side.
    """
    expiry = int(time.time()) + ttl
    turn_username = f"{expiry}:{username}"
    password = base64.b64encode(
        hmac.new(secret.encode("utf-8"), turn_username.encode("utf-8"), hashlib.sha1).digest()
    ).decode("utf-8")
    return turn_username, password


def build_ice_servers(username: str) -> list[dict[str, Any]]:
    """STUN servers, then TURN servers when any are configured."""
    servers: list[dict[str, Any]] = []

    if settings.stun_urls:
        servers.append({"urls": list(settings.stun_urls)})

    if settings.turn_urls:
        if settings.turn_secret:
            turn_username, credential = generate_turn_credentials(
                username, settings.turn_secret, settings.turn_ttl_seconds
            )
            servers.append(
                {
                    "urls": list(settings.turn_urls),
                    "username": turn_username,
                    "credential": credential,
                }
            )
        elif settings.turn_username and settings.turn_credential:
            servers.append(
                {
                    "urls": list(settings.turn_urls),
                    "username": settings.turn_username,
                    "credential": settings.turn_credential,
                }
            )

    return servers
