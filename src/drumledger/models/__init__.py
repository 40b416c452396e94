"""
Database models package.

This package contains all SQLAlchemy ORM models for the drum ledger.
"""

from .base import Base, BaseModel
from .enums import DrumStatus, HistoryAction
from .inventory_item import InventoryItem
from .drum import Drum
from .drum_usage import DrumUsage
from .drum_history import DrumHistoryEntry
from .monthly_usage import MonthlyUsageSummary

__all__ = [
    "Base",
    "BaseModel",
    # Enums
    "DrumStatus",
    "HistoryAction",
    # Catalog
    "InventoryItem",
    # Drum ledger
    "Drum",
    "DrumUsage",
    "DrumHistoryEntry",
    # Reporting
    "MonthlyUsageSummary",
]
