"""Shared utilities."""

from signalgate.utils.time import MonotonicMillis, ensure_aware, utc_now

__all__ = ["MonotonicMillis", "ensure_aware", "utc_now"]
