"""
Agent Credential Verification for SignalGate

Agents authenticate with a long-lived bearer credential issued at enrollment.
Only the bcrypt hash is stored; the prefix narrows the lookup.
"""

from typing import Optional
import asyncio
import bcrypt
import logging
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from signalgate.auth.context import AgentBinding, CredentialVerification
from signalgate.auth.models import AgentCredential
from signalgate.config import settings


logger = logging.getLogger("signalgate.auth")

# Credential prefix for SignalGate agents
CREDENTIAL_PREFIX = "sgk_"
CREDENTIAL_PREFIX_LENGTH = 12


def hash_credential(credential: str) -> str:
    """Hash credential with bcrypt"""
    salt = bcrypt.gensalt(rounds=settings.credential_bcrypt_rounds)
    return bcrypt.hashpw(credential.encode(), salt).decode()


def verify_credential_hash(credential: str, key_hash: str) -> bool:
    """Verify credential against hash"""
    return bcrypt.checkpw(credential.encode(), key_hash.encode())


def generate_credential() -> tuple[str, str, str]:
    """Generate agent credential with prefix and hash

    Returns:
        tuple: (full_key, prefix, hash)
    """
    full_key = f"{CREDENTIAL_PREFIX}{secrets.token_urlsafe(32)}"
    prefix = full_key[:CREDENTIAL_PREFIX_LENGTH]
    key_hash = hash_credential(full_key)
    return full_key, prefix, key_hash


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an Authorization: Bearer header."""
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
        return parts[1].strip()
    return None


class CredentialVerifier:
    """Resolves an agent credential to the org/asset/agent it is bound to."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def verify(self, credential: Optional[str]) -> CredentialVerification:
        """
        Verify an agent credential.

        Unknown or malformed credentials are invalid. A credential that matches
        but has been deactivated is valid with an inactive binding so callers
        can answer 403 instead of 401.
        """
        if not credential or not credential.startswith(CREDENTIAL_PREFIX):
            return CredentialVerification(valid=False)

        key_prefix = credential[:CREDENTIAL_PREFIX_LENGTH]
        result = await self.session.execute(
            select(AgentCredential).where(AgentCredential.key_prefix == key_prefix)
        )

        for record in result.scalars().all():
            # bcrypt blocks for the whole hash; run it off the event loop
            matched = await asyncio.to_thread(verify_credential_hash, credential, record.key_hash)
            if not matched:
                continue

            if record.is_active:
                record.touch()
                await self.session.flush()

            return CredentialVerification(
                valid=True,
                binding=AgentBinding(
                    org_id=record.org_id,
                    asset_id=record.asset_id,
                    agent_id=record.agent_id,
                    is_active=bool(record.is_active),
                ),
            )

        return CredentialVerification(valid=False)


async def issue_agent_credential(
    session: AsyncSession,
    org_id: str,
    asset_id: str,
    agent_id: str,
) -> tuple[str, AgentCredential]:
    """Create a new credential for an agent.

    Returns:
        tuple: (full_key_string, credential_object)
        Note: full_key_string is only returned once and must be handed to the agent
    """
    full_key, prefix, key_hash = await asyncio.to_thread(generate_credential)

    credential = AgentCredential(
        org_id=org_id,
        asset_id=asset_id,
        agent_id=agent_id,
        key_prefix=prefix,
        key_hash=key_hash,
        is_active=True,
    )
    session.add(credential)
    await session.flush()

    logger.info(f"Issued agent credential {prefix} for asset {asset_id} (org {org_id})")
    return full_key, credential


async def revoke_agent_credential(
    session: AsyncSession,
    org_id: str,
    credential_id: str,
    revoked_by: str,
) -> bool:
    """Deactivate a credential. Returns False when it does not exist in the org."""
    result = await session.execute(
        select(AgentCredential).where(
            AgentCredential.id == credential_id,
            AgentCredential.org_id == org_id,
        )
    )
    credential = result.scalar_one_or_none()
    if not credential:
        return False

    if credential.is_active:
        credential.revoke(revoked_by)
        await session.flush()
        logger.info(f"Revoked agent credential {credential.key_prefix} by {revoked_by}")
    return True
