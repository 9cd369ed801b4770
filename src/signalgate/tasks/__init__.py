"""SignalGate background tasks."""

from signalgate.tasks.sweep import start_relay_sweep, stop_relay_sweep

__all__ = ["start_relay_sweep", "stop_relay_sweep"]
