"""Service layer logging utilities.

Provides structured logging functions for service operations, so every
ledger mutation is logged in the same format with its drum and line context.

Usage:
    from drumledger.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="apply_usage",
        outcome="success",
        drum_id=7,
        line_details_id="line-42",
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "drum_ledger.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger named with the 'drum_ledger.services' prefix.

    Example:
        >>> logger = get_service_logger("drumledger.services.consumption_service")
        >>> logger.name
        'drum_ledger.services.consumption_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The message is "<operation>: <outcome>"; the operation, outcome and
    every context field are attached to the record via 'extra'.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "apply_usage", "recalculate")
        outcome: Outcome description (e.g., "success", "insufficient_stock")
        level: Log level (default: INFO)
        **context: Additional context fields such as drum_id,
            line_details_id, quantity_change or error
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
