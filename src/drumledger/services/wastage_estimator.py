"""
Wastage Estimator - pure cable wastage and remaining-quantity math.

This module has no database access and no side effects. Given a drum's usage
history and its nominal capacity it estimates the cable lost to splicing,
slack and rerouting, and the quantity that should remain on the drum.

Usage inputs come in two shapes:
- MeteredUsage: the technician captured start/end meter readings, so the
  physical length pulled off the drum is known.
- HeuristicUsage: entered or edited by hand without readings; the stored
  wastage is trusted as-is.

Dirty history (negative or non-finite readings) is clamped to zero rather
than raised, because recalculation has to work over whatever data the
ledger holds.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional, Tuple, Union

from ..models.enums import DrumStatus
from ..utils.constants import (
    HEURISTIC_WASTAGE_RATE,
    HIGH_WASTAGE_WARNING_PERCENT,
    LOW_STOCK_THRESHOLD,
)

# Statuses whose leftover stub (at or below LOW_STOCK_THRESHOLD) counts as scrap
WRITE_OFF_STATUSES = frozenset({DrumStatus.INACTIVE.value, DrumStatus.EMPTY.value})


# =============================================================================
# Usage input variants
# =============================================================================


@dataclass(frozen=True)
class MeteredUsage:
    """Usage with start/end meter readings."""

    quantity_used: float
    wastage_recorded: float
    start_point: float
    end_point: float
    usage_date: Optional[datetime] = None

    @property
    def physical_length(self) -> float:
        """Cable physically pulled off the drum between the two readings."""
        return abs(_clean(self.end_point) - _clean(self.start_point))


@dataclass(frozen=True)
class HeuristicUsage:
    """Usage without meter readings; wastage_recorded is authoritative."""

    quantity_used: float
    wastage_recorded: float
    usage_date: Optional[datetime] = None


UsageInput = Union[MeteredUsage, HeuristicUsage]


@dataclass(frozen=True)
class WastageEstimate:
    """Result of estimate()."""

    calculated_current_quantity: float
    total_used: float
    total_wastage: float
    usage_count: int
    written_off: float = 0.0


@dataclass
class SegmentAnalysis:
    """Layout of metered usage along the drum, for reporting."""

    used_segments: List[Tuple[float, float]] = field(default_factory=list)
    gap_segments: List[Tuple[float, float]] = field(default_factory=list)
    total_metered: float = 0.0
    total_gap: float = 0.0
    highest_point: float = 0.0
    remaining_cable: float = 0.0


@dataclass(frozen=True)
class WastageValidation:
    """Result of validate_manual_wastage()."""

    is_valid: bool
    message: Optional[str] = None
    adjusted_value: Optional[float] = None


# =============================================================================
# Helpers
# =============================================================================


def _clean(value: Any) -> float:
    """Coerce a stored reading to a finite, non-negative float."""
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def heuristic_wastage(quantity_used: float) -> float:
    """
    Flat wastage for usage entered without meter readings.

    HEURISTIC_WASTAGE_RATE of the quantity used, rounded half-up to whole
    meters.

    Example:
        >>> heuristic_wastage(500)
        25.0
        >>> heuristic_wastage(1700)
        85.0
    """
    raw = Decimal(str(_clean(quantity_used))) * Decimal(str(HEURISTIC_WASTAGE_RATE))
    return float(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def usage_input_from_record(record: Any) -> UsageInput:
    """
    Build the matching usage variant from a DrumUsage-like object.

    Records carrying both meter readings become MeteredUsage; everything
    else becomes HeuristicUsage.
    """
    start = getattr(record, "cable_start_point", None)
    end = getattr(record, "cable_end_point", None)
    quantity = getattr(record, "quantity_used", 0.0)
    wastage = getattr(record, "wastage_calculated", 0.0)
    usage_date = getattr(record, "usage_date", None)

    if start is not None and end is not None:
        return MeteredUsage(
            quantity_used=quantity,
            wastage_recorded=wastage,
            start_point=start,
            end_point=end,
            usage_date=usage_date,
        )
    return HeuristicUsage(quantity_used=quantity, wastage_recorded=wastage, usage_date=usage_date)


def _as_input(usage: Any) -> UsageInput:
    if isinstance(usage, (MeteredUsage, HeuristicUsage)):
        return usage
    return usage_input_from_record(usage)


def wastage_for(usage: UsageInput) -> float:
    """
    Wastage attributable to one usage.

    For metered usage, any physical length beyond quantity_used that the
    recorded wastage does not already cover is added.
    """
    recorded = _clean(usage.wastage_recorded)
    if isinstance(usage, MeteredUsage):
        excess = usage.physical_length - _clean(usage.quantity_used)
        return max(recorded, excess)
    return recorded


# =============================================================================
# Estimation
# =============================================================================


def estimate(
    usage_history: Iterable[Any],
    capacity: float,
    current_status: Optional[str] = None,
) -> WastageEstimate:
    """
    Estimate a drum's wastage and true remaining quantity from its history.

    Algorithm:
        1. Normalise each record into MeteredUsage or HeuristicUsage
        2. Sum quantity used and per-record wastage (see wastage_for)
        3. Remaining = capacity - (used + wastage), clamped to >= 0
        4. An inactive or empty drum whose remainder is only a stub
           (<= LOW_STOCK_THRESHOLD) has that stub written off as wastage

    Args:
        usage_history: DrumUsage records or UsageInput values for one drum
        capacity: Nominal drum capacity in meters
        current_status: The drum's current DrumStatus value

    Returns:
        WastageEstimate
    """
    inputs = [_as_input(usage) for usage in usage_history]

    capacity_m = _clean(capacity)
    total_used = sum(_clean(usage.quantity_used) for usage in inputs)
    total_wastage = sum(wastage_for(usage) for usage in inputs)

    remaining = max(0.0, capacity_m - total_used - total_wastage)

    status_value = current_status.value if isinstance(current_status, DrumStatus) else current_status
    written_off = 0.0
    if status_value in WRITE_OFF_STATUSES and 0 < remaining <= LOW_STOCK_THRESHOLD:
        written_off = remaining
        total_wastage += written_off
        remaining = 0.0

    return WastageEstimate(
        calculated_current_quantity=remaining,
        total_used=total_used,
        total_wastage=total_wastage,
        usage_count=len(inputs),
        written_off=written_off,
    )


def analyze_segments(usage_history: Iterable[Any], capacity: float) -> SegmentAnalysis:
    """
    Map metered usage onto the drum's length.

    Overlapping or touching segments are merged; the stretches between
    merged segments (and before the first one) are reported as gaps.
    Usage without meter readings is ignored.
    """
    segments = []
    for usage in usage_history:
        usage = _as_input(usage)
        if not isinstance(usage, MeteredUsage):
            continue
        start = _clean(usage.start_point)
        end = _clean(usage.end_point)
        low, high = min(start, end), max(start, end)
        if high > low:
            segments.append((low, high))

    segments.sort()

    merged: List[Tuple[float, float]] = []
    for start, end in segments:
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))

    gaps: List[Tuple[float, float]] = []
    cursor = 0.0
    for start, end in merged:
        if start > cursor:
            gaps.append((cursor, start))
        cursor = end

    highest = merged[-1][1] if merged else 0.0

    return SegmentAnalysis(
        used_segments=merged,
        gap_segments=gaps,
        total_metered=sum(end - start for start, end in merged),
        total_gap=sum(end - start for start, end in gaps),
        highest_point=highest,
        remaining_cable=max(0.0, _clean(capacity) - highest),
    )


def validate_manual_wastage(
    wastage_value: float,
    total_used: float,
    capacity: float,
) -> WastageValidation:
    """
    Check an operator-entered wastage figure against the drum's capacity.

    Returns:
        WastageValidation. Invalid when negative or larger than the capacity
        left after usage (adjusted_value then holds the maximum allowed).
        Valid-with-message when above HIGH_WASTAGE_WARNING_PERCENT of capacity.
    """
    if wastage_value < 0:
        return WastageValidation(is_valid=False, message="Wastage cannot be negative")

    max_wastage = capacity - total_used
    if wastage_value + total_used > capacity:
        return WastageValidation(
            is_valid=False,
            message=f"Wastage cannot exceed {max_wastage}m (remaining capacity after usage)",
            adjusted_value=max(0.0, max_wastage),
        )

    if capacity > 0:
        percentage = (wastage_value / capacity) * 100
        if percentage > HIGH_WASTAGE_WARNING_PERCENT:
            return WastageValidation(
                is_valid=True,
                message=(
                    f"Warning: Wastage is {percentage:.1f}% of drum capacity, "
                    f"which seems high"
                ),
            )

    return WastageValidation(is_valid=True)
