"""
Enumerations for drum tracking.

This module contains enums used across the drum ledger models:
- DrumStatus: Lifecycle state of a physical drum
- HistoryAction: Kind of mutation recorded in the drum audit trail
"""

from enum import Enum


class DrumStatus(str, Enum):
    """
    Lifecycle status of a cable drum.

    Values:
        ACTIVE: Drum holds usable cable
        INACTIVE: Drum is nearly exhausted (at or below the low-stock threshold)
        EMPTY: Drum holds no cable (current_quantity <= 0)
        MAINTENANCE: Drum withdrawn from use by an operator
    """

    ACTIVE = "active"
    INACTIVE = "inactive"
    EMPTY = "empty"
    MAINTENANCE = "maintenance"


class HistoryAction(str, Enum):
    """
    Mutation kinds recorded in DrumHistoryEntry.

    Values:
        CREATED: Drum registered (previous_quantity is None)
        USAGE_ADDED: Cable deducted for a line
        QUANTITY_ADJUSTED: Restoration of a reversed usage or a recalculation
        STATUS_CHANGED: Operator status change with no quantity effect
    """

    CREATED = "created"
    USAGE_ADDED = "usage_added"
    QUANTITY_ADJUSTED = "quantity_adjusted"
    STATUS_CHANGED = "status_changed"
