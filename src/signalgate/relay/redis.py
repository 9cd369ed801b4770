"""Redis-backed signalling relay for multi-instance deployments."""

import json
import logging
from typing import Any, Callable, Optional

import redis.asyncio as aioredis

from signalgate.config import settings
from signalgate.models import SignalMessage, SignalRole, SignalType
from signalgate.observability.metrics import metrics
from signalgate.relay.base import SignalRelay
from signalgate.utils.time import MonotonicMillis

logger = logging.getLogger("signalgate.relay")

KEY_PREFIX = "signalgate:relay"

# KEYS: queue, seq. ARGV: now_ms, payload, max_messages, ttl_ms.
# Timestamp is max(now, last + 1) per session so cursors never skip.
_POST_SCRIPT = """
local last = tonumber(redis.call('GET', KEYS[2]) or '0')
local ts = tonumber(ARGV[1])
if ts <= last then
    ts = last + 1
end
redis.call('SET', KEYS[2], ts, 'PX', ARGV[4])
redis.call('ZADD', KEYS[1], ts, ts .. ':' .. ARGV[2])
local size = redis.call('ZCARD', KEYS[1])
local keep = tonumber(ARGV[3])
if size > keep then
    redis.call('ZREMRANGEBYRANK', KEYS[1], 0, size - keep - 1)
end
redis.call('PEXPIRE', KEYS[1], ARGV[4])
return ts
"""


def _queue_key(session_id: str) -> str:
    return f"{KEY_PREFIX}:{session_id}:queue"


def _seq_key(session_id: str) -> str:
    return f"{KEY_PREFIX}:{session_id}:seq"


def _decode_member(member: str) -> SignalMessage:
    timestamp, _, payload = member.partition(":")
    body = json.loads(payload)
    return SignalMessage(
        type=body["type"],
        data=body.get("data"),
        timestamp=int(timestamp),
        sender=body["sender"],
    )


class RedisSignalRelay(SignalRelay):
    """
    Signalling queues stored as one sorted set per session, scored by timestamp.

    Each queue key expires with the message TTL, so abandoned sessions clean
    themselves up even if no sweep runs.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        max_messages: Optional[int] = None,
        message_ttl_ms: Optional[int] = None,
        clock: Optional[Callable[[], int]] = None,
        client: Optional[aioredis.Redis] = None,
    ):
        url = redis_url or settings.redis_url
        if client is None and not url:
            raise ValueError("redis_url required for redis relay backend")

        self.redis = client or aioredis.from_url(url, decode_responses=True)
        self.max_messages = max_messages or settings.relay_max_messages
        self.message_ttl_ms = message_ttl_ms or settings.relay_message_ttl_seconds * 1000
        self._clock = clock or MonotonicMillis()
        self._post_script = self.redis.register_script(_POST_SCRIPT)
        logger.info("Redis signalling relay initialized")

    async def post(
        self,
        session_id: str,
        type: SignalType,
        data: Any,
        sender: SignalRole,
    ) -> SignalMessage:
        payload = json.dumps(
            {"type": SignalType(type).value, "data": data, "sender": SignalRole(sender).value},
            separators=(",", ":"),
        )
        timestamp = await self._post_script(
            keys=[_queue_key(session_id), _seq_key(session_id)],
            args=[self._clock(), payload, self.max_messages, self.message_ttl_ms],
        )

        metrics.inc_counter("relay.posts")
        return SignalMessage(type=type, data=data, timestamp=int(timestamp), sender=sender)

    async def poll(
        self,
        session_id: str,
        since: int,
        role: SignalRole,
    ) -> list[SignalMessage]:
        members = await self.redis.zrangebyscore(_queue_key(session_id), f"({since}", "+inf")
        messages = [_decode_member(m) for m in members]

        metrics.inc_counter("relay.polls")
        return [m for m in messages if m.visible_to(role, since)]

    async def clear(self, session_id: str) -> None:
        # Sequence key is left to expire so timestamps keep increasing
        await self.redis.delete(_queue_key(session_id))

    async def sweep(self, max_age_ms: Optional[int] = None) -> int:
        max_age = self.message_ttl_ms if max_age_ms is None else max_age_ms
        cutoff = self._clock() - max_age
        removed = 0

        async for key in self.redis.scan_iter(match=f"{KEY_PREFIX}:*:queue"):
            # Redis drops a sorted set once it is empty
            removed += await self.redis.zremrangebyscore(key, "-inf", f"({cutoff}")

        metrics.inc_counter("relay.swept", removed)
        return removed

    async def close(self) -> None:
        await self.redis.aclose()
