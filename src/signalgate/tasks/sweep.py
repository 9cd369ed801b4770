"""Signalling relay sweep background task."""

import asyncio
import logging
from typing import Optional

from signalgate.config import settings
from signalgate.observability.metrics import metrics
from signalgate.relay import SignalRelay, get_relay

logger = logging.getLogger("signalgate.sweep")

_sweep_task: Optional[asyncio.Task] = None
_shutdown_event: Optional[asyncio.Event] = None


async def relay_sweep_loop(relay: SignalRelay, interval_seconds: float):
    """
    Background loop that drops stale signalling messages.

    Messages older than the relay TTL are removed and queues left empty are
    deleted. A failed sweep is logged and the next one runs on schedule.
    """
    logger.info(f"Relay sweep loop started (interval: {interval_seconds}s)")

    while not _shutdown_event.is_set():
        try:
            await asyncio.wait_for(_shutdown_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass
        if _shutdown_event.is_set():
            break

        try:
            removed = await relay.sweep()
            metrics.inc_counter("relay.sweeps")
            if removed > 0:
                logger.info(f"Swept {removed} expired signalling messages")
        except Exception as e:
            logger.error(f"Relay sweep error: {e}", exc_info=True)
            metrics.inc_counter("relay.sweeps.failed")

    logger.info("Relay sweep loop stopped")


async def start_relay_sweep(
    relay: Optional[SignalRelay] = None,
    interval_seconds: Optional[float] = None,
):
    """Start the relay sweep background task."""
    global _sweep_task, _shutdown_event

    _shutdown_event = asyncio.Event()
    _sweep_task = asyncio.create_task(
        relay_sweep_loop(
            relay or get_relay(),
            interval_seconds or settings.relay_sweep_interval_seconds,
        )
    )


async def stop_relay_sweep():
    """Stop the relay sweep background task."""
    global _sweep_task, _shutdown_event

    if _shutdown_event:
        _shutdown_event.set()

    if _sweep_task:
        try:
            await asyncio.wait_for(_sweep_task, timeout=10.0)
        except asyncio.TimeoutError:
            logger.warning("Relay sweep task did not stop gracefully, cancelling")
            _sweep_task.cancel()
            try:
                await _sweep_task
            except asyncio.CancelledError:
                pass

    _sweep_task = None
    _shutdown_event = None
