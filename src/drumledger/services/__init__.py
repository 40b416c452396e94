"""Services package - Business logic layer for the Drum Ledger.

This package contains all service modules that provide business logic
and database operations for cable drum accounting.

Architecture:
- Services: Stateless functions organized by concern (registry, ledger, history,
  consumption, monthly rollups)
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- wastage_estimator: Pure wastage and remaining-quantity math
- drum_registry_service: Drum and catalog item identity, lookups, status
- usage_ledger_service: Per-line cable usage records
- drum_history_service: Append-only drum audit trail
- consumption_service: Transactional usage, reversal and recalculation
- monthly_usage_service: Per-item monthly rollups, sync totals, month reset

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- immutability: ORM listeners that keep the audit trail append-only
- logging_utils: Structured operation logging
"""

from . import (
    database,
    wastage_estimator,
    drum_history_service,
    drum_registry_service,
    usage_ledger_service,
    monthly_usage_service,
    consumption_service,
)

from .exceptions import (
    ServiceError,
    NotFound,
    DrumNotFound,
    DrumNumberNotFound,
    UsageRecordNotFound,
    InventoryItemNotFound,
    InvalidQuantity,
    ValidationError,
    InsufficientStock,
    TransactionFailure,
    ImmutableRecordError,
)

__all__ = [
    "database",
    "wastage_estimator",
    "drum_history_service",
    "drum_registry_service",
    "usage_ledger_service",
    "monthly_usage_service",
    "consumption_service",
    "ServiceError",
    "NotFound",
    "DrumNotFound",
    "DrumNumberNotFound",
    "UsageRecordNotFound",
    "InventoryItemNotFound",
    "InvalidQuantity",
    "ValidationError",
    "InsufficientStock",
    "TransactionFailure",
    "ImmutableRecordError",
]
