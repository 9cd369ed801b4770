"""Signalling relay interface."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from signalgate.models import SignalMessage, SignalRole, SignalType


class SignalRelay(ABC):
    """
    Per-session mailbox for offer/answer/ICE messages.

    The relay knows nothing about sessions beyond their id: callers
    authorize with a session token before touching it.
    """

    @abstractmethod
    async def post(
        self,
        session_id: str,
        type: SignalType,
        data: Any,
        sender: SignalRole,
    ) -> SignalMessage:
        """
        Append a message and trim the queue to the most recent messages.

        Returns the stored message with its relay-assigned timestamp.
        """
        pass

    @abstractmethod
    async def poll(
        self,
        session_id: str,
        since: int,
        role: SignalRole,
    ) -> list[SignalMessage]:
        """
        Messages newer than since and not sent by role, oldest first.

        Stateless: the caller keeps the last timestamp it saw as its cursor.
        """
        pass

    @abstractmethod
    async def clear(self, session_id: str) -> None:
        """Drop a session's queue. Idempotent."""
        pass

    @abstractmethod
    async def sweep(self, max_age_ms: Optional[int] = None) -> int:
        """Remove messages older than max_age_ms. Returns how many were removed."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None
