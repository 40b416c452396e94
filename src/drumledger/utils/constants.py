"""
Constants and policy values for the Drum Ledger.

This module defines all system-wide constants including:
- Application metadata
- Drum capacity and wastage policies
- Status thresholds
- Reporting limits and validation ranges
"""

from typing import List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Drum Ledger"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"

# ============================================================================
# Drum Capacity Policy
# ============================================================================

# Capacity (meters) used when a drum is auto-created and neither the caller
# nor the catalog item supplies a drum size
DEFAULT_DRUM_CAPACITY = 2000.0

# Catalog item that cable drums are attached to when the caller gives no item
DEFAULT_CABLE_ITEM_NAME = "Drop Wire Cable"

# Unit recorded on catalog items created for cable
DEFAULT_CABLE_UNIT = "m"

# ============================================================================
# Wastage Policy
# ============================================================================

# Flat wastage applied on the line-edit path, where no meter readings exist
HEURISTIC_WASTAGE_RATE = 0.05

# Manual wastage above this share of drum capacity is flagged as suspicious
HIGH_WASTAGE_WARNING_PERCENT = 20

# ============================================================================
# Status Thresholds
# ============================================================================

# Drums holding this many meters or fewer are conventionally inactive
LOW_STOCK_THRESHOLD = 10.0

# Differences at or below this are treated as already consistent
RECALCULATION_EPSILON = 0.01

# ============================================================================
# Reporting
# ============================================================================

DEFAULT_HISTORY_LIMIT = 50

MIN_MONTH = 1
MAX_MONTH = 12
MIN_YEAR = 2000
MAX_YEAR = 2100

# ============================================================================
# Database
# ============================================================================

DATABASE_FILENAME = "drum_ledger.db"

TABLE_INVENTORY_ITEM = "inventory_items"
TABLE_DRUM = "drums"
TABLE_DRUM_USAGE = "drum_usages"
TABLE_DRUM_HISTORY = "drum_history"
TABLE_MONTHLY_USAGE = "monthly_usage_summaries"

LEDGER_TABLES: List[str] = [
    TABLE_INVENTORY_ITEM,
    TABLE_DRUM,
    TABLE_DRUM_USAGE,
    TABLE_DRUM_HISTORY,
    TABLE_MONTHLY_USAGE,
]

# ============================================================================
# Date/Time Formats
# ============================================================================

DATE_FORMAT = "%Y-%m-%d"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
PERIOD_FORMAT = "{year}-{month:02d}"
