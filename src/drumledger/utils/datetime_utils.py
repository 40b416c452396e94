"""Datetime utilities for usage timestamps and monthly bucketing.

Usage:
    from drumledger.utils.datetime_utils import utc_now, month_year

    # For SQLAlchemy Column defaults
    usage_date = Column(DateTime, default=utc_now)

    # Bucket a usage into its reporting period
    month, year = month_year(usage.usage_date)
"""

from datetime import datetime, timezone
from typing import Optional, Tuple

from .constants import PERIOD_FORMAT


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def month_year(value: Optional[datetime] = None) -> Tuple[int, int]:
    """
    Return the (month, year) period a timestamp falls into.

    Args:
        value: Timestamp to bucket. If None, uses the current UTC time.

    Returns:
        Tuple of (month, year)
    """
    if value is None:
        value = utc_now()
    return value.month, value.year


def period_label(month: int, year: int) -> str:
    """Format a reporting period as YYYY-MM."""
    return PERIOD_FORMAT.format(year=year, month=month)
