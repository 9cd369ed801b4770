"""Middleware components for the SignalGate API."""

from signalgate.middleware.rate_limit import (
    InMemoryRateLimiter,
    RateLimiter,
    RateLimiterBackend,
    RateLimitRule,
    RedisRateLimiter,
    get_rate_limiter,
    rate_limit_dependency,
    rate_limit_key,
)

__all__ = [
    "InMemoryRateLimiter",
    "RateLimiter",
    "RateLimiterBackend",
    "RateLimitRule",
    "RedisRateLimiter",
    "get_rate_limiter",
    "rate_limit_dependency",
    "rate_limit_key",
]
