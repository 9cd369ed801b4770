"""SignalGate - remote control session broker and signalling relay."""

__version__ = "0.1.0"
