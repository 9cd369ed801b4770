"""Observability helpers for SignalGate."""

from signalgate.observability.metrics import metrics

__all__ = ["metrics"]
