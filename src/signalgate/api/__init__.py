"""SignalGate HTTP API."""
