"""API dependencies."""

import logging
import secrets
from typing import AsyncGenerator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from signalgate.auth.context import AuthContext
from signalgate.config import Environment, settings
from signalgate.db import base as db_base
from signalgate.engine.broker import SessionBroker
from signalgate.relay import SignalRelay, get_relay


logger = logging.getLogger("signalgate.api")

DEV_ORG_ID = "dev-org"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session; commits when the request handler returns."""
    async with db_base.async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_relay_dependency() -> SignalRelay:
    return get_relay()


async def get_broker(
    session: AsyncSession = Depends(get_db_session),
    relay: SignalRelay = Depends(get_relay_dependency),
) -> SessionBroker:
    return SessionBroker(session, relay=relay)


async def get_org_id(
    x_org_id: str | None = Header(None, alias="X-Org-ID"),
) -> str:
    """
    Extract the org ID for operator requests.

    The operator API sits behind the portal, which forwards the caller's org.
    """
    if x_org_id:
        x_org_id = x_org_id.strip()
        if not x_org_id or len(x_org_id) > 64:
            raise HTTPException(status_code=400, detail="Invalid org ID format")
        return x_org_id

    # Default org for development
    if settings.allow_insecure_dev and settings.env == Environment.DEVELOPMENT:
        return DEV_ORG_ID

    raise HTTPException(status_code=401, detail="Missing org ID")


async def verify_api_key(
    authorization: str | None = Header(None),
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> AuthContext:
    """
    Verify the operator API key.

    Returns AuthContext on success. Raises HTTPException on failure.

    Fails closed: if no key is configured and we're not in explicit
    insecure dev mode, all requests are rejected.
    """
    # Insecure dev mode bypass (must be explicitly enabled)
    if settings.allow_insecure_dev and settings.env == Environment.DEVELOPMENT:
        return AuthContext(auth_type="insecure_dev")

    api_key = None
    if authorization and authorization.startswith("Bearer "):
        api_key = authorization[7:]
    elif x_api_key:
        api_key = x_api_key

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing authorization. Use Authorization: Bearer <key> or X-API-Key header",
        )

    if settings.api_key:
        if secrets.compare_digest(api_key, settings.api_key):
            return AuthContext(auth_type="api_key")
        raise HTTPException(status_code=401, detail="Invalid API key")

    logger.error("SECURITY VIOLATION: No operator API key configured. Set SIGNALGATE_API_KEY.")
    raise HTTPException(
        status_code=503,
        detail="Server misconfigured: authentication not properly initialized",
    )


def validate_auth_config() -> None:
    """
    Validate authentication configuration at startup.

    Raises:
        RuntimeError: If configuration is insecure for the current environment
    """
    if settings.allow_insecure_dev and settings.env != Environment.DEVELOPMENT:
        raise RuntimeError(
            f"SECURITY ERROR: allow_insecure_dev=true is only permitted in development. "
            f"Current environment: {settings.env.value}. "
            f"Set SIGNALGATE_ALLOW_INSECURE_DEV=false for {settings.env.value}."
        )

    if settings.allow_insecure_dev:
        logger.warning(
            "=" * 80 + "\n"
            "WARNING: Running in INSECURE DEV MODE\n"
            "  - Operator API authentication is DISABLED\n"
            "  - Agent credentials and session tokens are still verified\n"
            "  - Set SIGNALGATE_ALLOW_INSECURE_DEV=false for any deployment\n"
            + "=" * 80
        )
    elif settings.api_key:
        logger.info(f"Operator API key authentication enabled for {settings.env.value}")
    else:
        logger.warning(
            "No SIGNALGATE_API_KEY configured; operator API requests will be rejected"
        )
