"""Rate limiting for the agent poll and signalling endpoints."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from fastapi import HTTPException, Request, status

from signalgate.auth.credentials import CREDENTIAL_PREFIX_LENGTH, extract_bearer
from signalgate.config import settings

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRule:
    """Rate limit configuration for a specific scope."""

    calls: int
    window_seconds: int
    key_prefix: str = ""


class RateLimiterBackend(ABC):
    """Abstract base class for rate limiter backends."""

    @abstractmethod
    async def check_rate_limit(
        self, key: str, max_calls: int, window_seconds: int
    ) -> Tuple[bool, int, int]:
        """
        Check if request should be rate limited.

        Returns:
            Tuple of (allowed, remaining, reset_time)
            - allowed: Whether request should proceed
            - remaining: Calls remaining in current window
            - reset_time: Unix timestamp when window resets
        """
        pass

    @abstractmethod
    async def reset(self, key: str):
        """Reset rate limit for a specific key."""
        pass


class InMemoryRateLimiter(RateLimiterBackend):
    """
    In-memory sliding window limiter.

    Good for development and single-instance deployments.
    """

    def __init__(self):
        self._windows: Dict[str, list[float]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def check_rate_limit(
        self, key: str, max_calls: int, window_seconds: int
    ) -> Tuple[bool, int, int]:
        async with self._lock:
            now = time.time()
            window_start = now - window_seconds

            calls = [ts for ts in self._windows[key] if ts > window_start]
            allowed = len(calls) < max_calls
            remaining = max(0, max_calls - len(calls) - (1 if allowed else 0))

            # Window resets when the oldest call ages out
            reset_time = int((calls[0] if calls else now) + window_seconds)

            if allowed:
                calls.append(now)
            self._windows[key] = calls

            return allowed, remaining, reset_time

    async def reset(self, key: str):
        async with self._lock:
            self._windows.pop(key, None)


class RedisRateLimiter(RateLimiterBackend):
    """Redis sorted-set limiter shared by all instances."""

    def __init__(self, redis_url: str):
        import redis.asyncio as aioredis

        self.redis = aioredis.from_url(redis_url, decode_responses=True)
        logger.info("Redis rate limiter initialized")

    async def check_rate_limit(
        self, key: str, max_calls: int, window_seconds: int
    ) -> Tuple[bool, int, int]:
        now = time.time()
        redis_key = f"signalgate:ratelimit:{key}"

        pipe = self.redis.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
        pipe.zcard(redis_key)
        pipe.zadd(redis_key, {str(now): now})
        pipe.expire(redis_key, window_seconds)
        results = await pipe.execute()
        current_calls = results[1]

        allowed = current_calls < max_calls
        remaining = max(0, max_calls - current_calls - (1 if allowed else 0))

        oldest = await self.redis.zrange(redis_key, 0, 0, withscores=True)
        reset_time = int((oldest[0][1] if oldest else now) + window_seconds)

        if not allowed:
            await self.redis.zrem(redis_key, str(now))

        return allowed, remaining, reset_time

    async def reset(self, key: str):
        await self.redis.delete(f"signalgate:ratelimit:{key}")


def rate_limit_key(
    request: Request, key_prefix: str = "", session_id: Optional[str] = None
) -> str:
    """
    Key requests by the identity they carry.

    Agent polls key on the credential prefix, signalling calls on the
    session (from the query string, or session_id when the caller read it
    from the body), anything else on the client address.
    """
    credential = extract_bearer(request.headers.get("authorization"))
    if credential and request.url.path.endswith("/agent/rc/poll"):
        return f"{key_prefix}agent:{credential[:CREDENTIAL_PREFIX_LENGTH]}"

    session_id = session_id or request.query_params.get("sessionId")
    if session_id:
        return f"{key_prefix}session:{session_id}"

    client_ip = request.client.host if request.client else "unknown"
    return f"{key_prefix}ip:{client_ip}"


async def body_session_id(request: Request) -> Optional[str]:
    """sessionId from a JSON request body, or None if there is none to read."""
    if request.method != "POST":
        return None
    if "json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except ValueError:
        return None

    session_id = body.get("sessionId") if isinstance(body, dict) else None
    return session_id if isinstance(session_id, str) and session_id else None


class RateLimiter:
    """Rate limiter with configurable backend."""

    def __init__(self, backend: Optional[RateLimiterBackend] = None):
        if backend:
            self.backend = backend
        elif settings.rate_limit_backend == "redis":
            if not settings.redis_url:
                raise ValueError("redis_url required for redis backend")
            self.backend = RedisRateLimiter(settings.redis_url)
        else:
            self.backend = InMemoryRateLimiter()
            logger.info("Using in-memory rate limiter")

        self._rules: Dict[str, RateLimitRule] = {}
        self._default_rule = RateLimitRule(
            calls=settings.rate_limit_default_calls,
            window_seconds=settings.rate_limit_default_window_seconds,
        )
        # Agents poll on a fixed cadence; give them their own budget per credential
        self.configure_endpoint(
            "/v1/agent/rc/poll",
            calls=settings.rate_limit_agent_poll_calls,
            window_seconds=settings.rate_limit_default_window_seconds,
            key_prefix="poll:",
        )

    def configure_endpoint(
        self, path: str, calls: int, window_seconds: int, key_prefix: str = ""
    ):
        """Configure rate limit for specific endpoint."""
        self._rules[path] = RateLimitRule(
            calls=calls, window_seconds=window_seconds, key_prefix=key_prefix
        )

    async def check_request(self, request: Request, key_override: Optional[str] = None) -> None:
        """
        Raises:
            HTTPException: 429 if rate limited
        """
        if not settings.rate_limit_active:
            return

        path = request.url.path
        rule = self._rules.get(path, self._default_rule)
        key = key_override or rate_limit_key(
            request, rule.key_prefix, session_id=await body_session_id(request)
        )

        allowed, remaining, reset_time = await self.backend.check_rate_limit(
            key, rule.calls, rule.window_seconds
        )

        request.state.rate_limit_remaining = remaining
        request.state.rate_limit_reset = reset_time

        if not allowed:
            retry_after = max(0, reset_time - int(time.time()))
            logger.warning(f"Rate limit exceeded for {key}: {path} (retry after {retry_after}s)")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Retry after {retry_after} seconds.",
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(rule.calls),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset_time),
                },
            )


# Singleton instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create rate limiter singleton."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


async def rate_limit_dependency(request: Request) -> None:
    """FastAPI dependency for rate limiting."""
    await get_rate_limiter().check_request(request)
