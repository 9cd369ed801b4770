"""
Relay sweep background task tests.
"""

import asyncio

import pytest

from signalgate.models import SignalRole, SignalType
from signalgate.observability.metrics import metrics
from signalgate.relay import InMemorySignalRelay
from signalgate.tasks.sweep import start_relay_sweep, stop_relay_sweep


class FailingRelay(InMemorySignalRelay):
    def __init__(self):
        super().__init__()
        self.calls = 0

    async def sweep(self, max_age_ms=None) -> int:
        self.calls += 1
        raise RuntimeError("backend unavailable")


@pytest.mark.asyncio
async def test_sweep_task_removes_expired_messages():
    now = [1_000_000]
    relay = InMemorySignalRelay(message_ttl_ms=1_000, clock=lambda: now[0])
    await relay.post("sess-1", SignalType.OFFER, {"sdp": "o"}, SignalRole.OPERATOR)
    now[0] += 5_000

    await start_relay_sweep(relay, interval_seconds=0.01)
    try:
        for _ in range(100):
            if await relay.session_count() == 0:
                break
            await asyncio.sleep(0.01)
    finally:
        await stop_relay_sweep()

    assert await relay.session_count() == 0
    assert metrics.counter_value("relay.swept") >= 1


@pytest.mark.asyncio
async def test_sweep_task_survives_errors():
    relay = FailingRelay()

    await start_relay_sweep(relay, interval_seconds=0.01)
    try:
        for _ in range(100):
            if relay.calls >= 3:
                break
            await asyncio.sleep(0.01)
    finally:
        await stop_relay_sweep()

    assert relay.calls >= 3
    assert metrics.counter_value("relay.sweeps.failed") >= 3


@pytest.mark.asyncio
async def test_stop_without_start_is_noop():
    await stop_relay_sweep()
