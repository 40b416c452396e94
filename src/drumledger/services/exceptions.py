"""Service layer exception classes for the Drum Ledger.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    ├── NotFound
    │   ├── DrumNotFound
    │   ├── DrumNumberNotFound
    │   ├── UsageRecordNotFound
    │   └── InventoryItemNotFound
    ├── InvalidQuantity
    ├── ValidationError
    ├── InsufficientStock
    ├── TransactionFailure
    └── ImmutableRecordError
"""

from typing import Optional

from ..utils.validators import format_meters


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions inherit from this class.
    """

    pass


class NotFound(ServiceError):
    """Raised when a referenced drum, line usage, or catalog item does not exist."""

    pass


class DrumNotFound(NotFound):
    """Raised when a drum cannot be found by ID.

    Example:
        >>> raise DrumNotFound(12)
        DrumNotFound: Drum with ID 12 not found
    """

    def __init__(self, drum_id: int):
        self.drum_id = drum_id
        super().__init__(f"Drum with ID {drum_id} not found")


class DrumNumberNotFound(NotFound):
    """Raised when a drum cannot be found by its drum number."""

    def __init__(self, drum_number: str):
        self.drum_number = drum_number
        super().__init__(f"Drum '{drum_number}' not found")


class UsageRecordNotFound(NotFound):
    """Raised when a usage record cannot be found by ID."""

    def __init__(self, usage_id: int):
        self.usage_id = usage_id
        super().__init__(f"Usage record with ID {usage_id} not found")


class InventoryItemNotFound(NotFound):
    """Raised when a catalog item cannot be found by ID."""

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Inventory item with ID {item_id} not found")


class InvalidQuantity(ServiceError):
    """Raised when a negative or non-finite quantity is supplied.

    Rejected before any write.
    """

    def __init__(self, field_name: str, value):
        self.field_name = field_name
        self.value = value
        super().__init__(
            f"Invalid {field_name}: {value!r} (must be a finite number >= 0)"
        )


class ValidationError(ServiceError):
    """Raised when data validation fails."""

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class InsufficientStock(ServiceError):
    """Raised when a deduction would exceed the cable left on a drum.

    The message is shown to operators verbatim, so it always carries
    both amounts.

    Example:
        >>> raise InsufficientStock(available=1685, required=1785)
        InsufficientStock: Not enough cable available. Available: 1685m, Required: 1785m
    """

    def __init__(self, available: float, required: float, drum_number: Optional[str] = None):
        self.available = available
        self.required = required
        self.drum_number = drum_number
        super().__init__(
            f"Not enough cable available. "
            f"Available: {format_meters(available)}m, Required: {format_meters(required)}m"
        )


class TransactionFailure(ServiceError):
    """Raised when the underlying store fails mid-operation.

    The whole operation has been rolled back; callers may retry.
    """

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"{message}. No changes were saved; please retry.")


class ImmutableRecordError(ServiceError):
    """Raised when code attempts to modify or delete an audit record."""

    def __init__(self, entity_type: str, entity_id, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(
            f"{entity_type} {entity_id} is append-only and cannot be {operation}"
        )
