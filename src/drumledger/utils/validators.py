"""
Input validation functions for the Drum Ledger.

This module provides validation and formatting helpers for:
- Quantities (non-negative, finite)
- Reporting periods (month/year ranges)
- Drum numbers
"""

import math
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple

from .constants import MIN_MONTH, MAX_MONTH, MIN_YEAR, MAX_YEAR

ERROR_INVALID_NUMBER = "Please enter a valid number"
ERROR_NOT_FINITE = "Value must be a finite number"
ERROR_INVALID_NON_NEGATIVE = "Value must be zero or greater"


def validate_non_negative_quantity(value: Any, field_name: str = "Quantity") -> Tuple[bool, str]:
    """
    Validate that a value is a finite number >= 0.

    Args:
        value: The value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(value, bool):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"
    try:
        num_value = float(value)
    except (ValueError, TypeError):
        return False, f"{field_name}: {ERROR_INVALID_NUMBER}"

    if not math.isfinite(num_value):
        return False, f"{field_name}: {ERROR_NOT_FINITE}"
    if num_value < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    return True, ""


def validate_period(month: Any, year: Any) -> Tuple[bool, List[str]]:
    """
    Validate a reporting period.

    Args:
        month: Month number, 1-12
        year: Year, 2000-2100

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    errors = []

    try:
        month_value = int(month)
        if month_value != month or not MIN_MONTH <= month_value <= MAX_MONTH:
            errors.append(f"month must be a number between {MIN_MONTH} and {MAX_MONTH}")
    except (ValueError, TypeError):
        errors.append(f"month must be a number between {MIN_MONTH} and {MAX_MONTH}")

    try:
        year_value = int(year)
        if year_value != year or not MIN_YEAR <= year_value <= MAX_YEAR:
            errors.append(f"year must be a number between {MIN_YEAR} and {MAX_YEAR}")
    except (ValueError, TypeError):
        errors.append(f"year must be a number between {MIN_YEAR} and {MAX_YEAR}")

    return len(errors) == 0, errors


def sanitize_drum_number(value: Optional[str]) -> Optional[str]:
    """
    Strip surrounding whitespace from a drum number.

    Returns:
        Cleaned drum number, or None if nothing remains
    """
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def format_meters(value: Any) -> str:
    """
    Format a length in meters without trailing zeros.

    Operators read these numbers directly, so 1685.0 renders as "1685" and
    1685.50 as "1685.5".

    Examples:
        >>> format_meters(1685.0)
        '1685'
        >>> format_meters(12.25)
        '12.25'
    """
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return str(value)
    if not number.is_finite():
        return str(value)
    normalized = number.normalize()
    if normalized == 0:
        return "0"
    return format(normalized, "f")
