"""Drum Ledger - cable drum inventory consumption tracking."""

__version__ = "0.1.0"
