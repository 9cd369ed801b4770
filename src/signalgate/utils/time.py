"""Time utilities."""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MonotonicMillis:
    """
    Epoch milliseconds that never go backwards.

    Anchored to the wall clock once, then advanced by time.monotonic(), so
    NTP steps after startup cannot reorder relay timestamps.
    """

    def __init__(self) -> None:
        self._wall_anchor_ms = time.time() * 1000.0
        self._mono_anchor = time.monotonic()

    def __call__(self) -> int:
        elapsed_ms = (time.monotonic() - self._mono_anchor) * 1000.0
        return int(self._wall_anchor_ms + elapsed_ms)
