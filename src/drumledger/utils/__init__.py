"""Utilities package for the Drum Ledger: configuration, constants, CLI."""
