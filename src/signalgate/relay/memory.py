"""In-process signalling relay."""

import asyncio
import logging
from typing import Any, Callable, Optional

from signalgate.config import settings
from signalgate.models import SignalMessage, SignalRole, SignalType
from signalgate.observability.metrics import metrics
from signalgate.relay.base import SignalRelay
from signalgate.utils.time import MonotonicMillis

logger = logging.getLogger("signalgate.relay")


class InMemorySignalRelay(SignalRelay):
    """
    Signalling queues held in a dict behind a single asyncio lock.

    Good for development and single-instance deployments. Queues live in
    this process only: with several workers both peers of a session must
    reach the same instance, or use RedisSignalRelay.
    """

    def __init__(
        self,
        max_messages: Optional[int] = None,
        message_ttl_ms: Optional[int] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.max_messages = max_messages or settings.relay_max_messages
        self.message_ttl_ms = message_ttl_ms or settings.relay_message_ttl_seconds * 1000
        self._clock = clock or MonotonicMillis()
        self._queues: dict[str, list[SignalMessage]] = {}
        self._last_timestamp = 0
        self._lock = asyncio.Lock()

    def _next_timestamp(self) -> int:
        # Strictly increasing so a since cursor never skips a same-millisecond post
        timestamp = max(self._clock(), self._last_timestamp + 1)
        self._last_timestamp = timestamp
        return timestamp

    async def post(
        self,
        session_id: str,
        type: SignalType,
        data: Any,
        sender: SignalRole,
    ) -> SignalMessage:
        async with self._lock:
            message = SignalMessage(
                type=type,
                data=data,
                timestamp=self._next_timestamp(),
                sender=sender,
            )
            queue = self._queues.setdefault(session_id, [])
            queue.append(message)
            if len(queue) > self.max_messages:
                del queue[: len(queue) - self.max_messages]

        metrics.inc_counter("relay.posts")
        return message

    async def poll(
        self,
        session_id: str,
        since: int,
        role: SignalRole,
    ) -> list[SignalMessage]:
        async with self._lock:
            queue = self._queues.get(session_id, [])
            messages = [m for m in queue if m.visible_to(role, since)]

        metrics.inc_counter("relay.polls")
        return messages

    async def clear(self, session_id: str) -> None:
        async with self._lock:
            self._queues.pop(session_id, None)

    async def sweep(self, max_age_ms: Optional[int] = None) -> int:
        max_age = self.message_ttl_ms if max_age_ms is None else max_age_ms
        removed = 0

        async with self._lock:
            cutoff = self._clock() - max_age
            for session_id in list(self._queues):
                queue = self._queues[session_id]
                kept = [m for m in queue if m.timestamp >= cutoff]
                removed += len(queue) - len(kept)
                if kept:
                    self._queues[session_id] = kept
                else:
                    del self._queues[session_id]
            metrics.set_gauge("relay.sessions", len(self._queues))

        metrics.inc_counter("relay.swept", removed)
        return removed

    async def session_count(self) -> int:
        async with self._lock:
            return len(self._queues)
