"""Signalling relay backends."""

import logging
from typing import Optional

from signalgate.config import RelayBackend, settings
from signalgate.relay.base import SignalRelay
from signalgate.relay.memory import InMemorySignalRelay
from signalgate.relay.redis import RedisSignalRelay

logger = logging.getLogger("signalgate.relay")

_relay: Optional[SignalRelay] = None


def create_relay() -> SignalRelay:
    """Build the backend selected by relay_backend."""
    if settings.relay_backend == RelayBackend.REDIS:
        return RedisSignalRelay(settings.redis_url)
    return InMemorySignalRelay()


def get_relay() -> SignalRelay:
    """Get or create the process-wide relay."""
    global _relay
    if _relay is None:
        _relay = create_relay()
    return _relay


def set_relay(relay: Optional[SignalRelay]) -> None:
    """Replace the process-wide relay; None forces re-creation on next use."""
    global _relay
    _relay = relay


async def close_relay() -> None:
    global _relay
    if _relay is not None:
        await _relay.close()
        _relay = None


__all__ = [
    "InMemorySignalRelay",
    "RedisSignalRelay",
    "SignalRelay",
    "close_relay",
    "create_relay",
    "get_relay",
    "set_relay",
]
