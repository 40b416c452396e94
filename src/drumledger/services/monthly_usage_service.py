"""
Monthly Usage Service - per-item monthly consumption rollups.

A MonthlyUsageSummary row holds the stock deducted from one catalog item in
one calendar month. Rows are kept in step by two writers:

- add_usage(): signed increments from the consumption service, applied in
  the same transaction as the drum deduction or restoration they mirror.
- sync_monthly_total() / apply_sync_totals(): absolute totals reported by
  the field-sheet sync. Only the increase over the stored total is deducted
  from stock, so re-running a sync never deducts twice. A decrease is
  recorded but never refunded.

reset_month() is the bulk-undo recovery action. It puts each row's total
back onto the item's stock and deletes the rows. Drum usage records and the
drum audit trail are not touched, so the aggregate and per-drum views differ
until consumption_service.recalculate_all() reconciles them.
"""

import logging
import math
from collections import OrderedDict
from contextlib import nullcontext
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from ..models import InventoryItem, MonthlyUsageSummary
from ..utils.datetime_utils import month_year, period_label, utc_now
from ..utils.validators import validate_non_negative_quantity, validate_period
from . import drum_registry_service
from .database import session_scope
from .exceptions import InvalidQuantity, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

# Opening stock for an item first seen in a sync: ten months of the reported
# usage, but never less than this
SYNC_MIN_OPENING_STOCK = 1000.0


def _require_period(month: Any, year: Any) -> None:
    is_valid, errors = validate_period(month, year)
    if not is_valid:
        raise ValidationError(errors)


def _find_row(
    sess: Session,
    item_id: int,
    month: int,
    year: int,
    *,
    lock: bool = False,
) -> Optional[MonthlyUsageSummary]:
    query = sess.query(MonthlyUsageSummary).filter(
        MonthlyUsageSummary.item_id == item_id,
        MonthlyUsageSummary.month == month,
        MonthlyUsageSummary.year == year,
    )
    if lock:
        query = query.with_for_update().populate_existing()
    return query.first()


def _row_to_dict(row: MonthlyUsageSummary) -> Dict[str, Any]:
    item = row.item
    return {
        "item_id": row.item_id,
        "item_name": item.name if item else None,
        "unit": item.unit if item else None,
        "month": row.month,
        "year": row.year,
        "period": row.period,
        "total_used": row.total_used,
        "current_stock": item.current_stock if item else None,
        "last_synced_at": row.last_synced_at.isoformat() if row.last_synced_at else None,
        "sync_connection_id": row.sync_connection_id,
    }


# =============================================================================
# Incremental rollup
# =============================================================================


def add_usage(
    item_id: int,
    usage_date: Optional[datetime],
    amount: float,
    *,
    sync_connection_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> Optional[MonthlyUsageSummary]:
    """
    Add a signed amount to an item's total for the month of usage_date.

    Positive amounts create the period's row on demand. Negative amounts
    (reversals) never take total_used below 0 and never create a row.

    Args:
        item_id: Catalog item the stock belongs to
        usage_date: Date of the usage being counted (defaults to now)
        amount: Meters to add; negative to reverse
        sync_connection_id: Optional sync run reference
        session: Optional database session

    Returns:
        The updated MonthlyUsageSummary, or None when nothing was recorded
    """
    if amount is None or not math.isfinite(float(amount)):
        raise InvalidQuantity("amount", amount)
    amount = float(amount)
    month, year = month_year(usage_date)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        if amount == 0:
            return _find_row(sess, item_id, month, year)

        row = _find_row(sess, item_id, month, year, lock=True)
        if row is None:
            if amount < 0:
                return None
            row = MonthlyUsageSummary(item_id=item_id, month=month, year=year, total_used=0.0)
            sess.add(row)

        row.total_used = max(0.0, (row.total_used or 0.0) + amount)
        row.last_synced_at = utc_now()
        if sync_connection_id is not None:
            row.sync_connection_id = sync_connection_id
        sess.flush()
        return row


# =============================================================================
# Sheet sync (absolute totals)
# =============================================================================


def sync_monthly_total(
    item_id: int,
    month: int,
    year: int,
    new_total: float,
    *,
    sync_connection_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Record a sync-reported monthly total and deduct only the increase.

    Args:
        item_id: Catalog item
        month: Month 1-12
        year: Year 2000-2100
        new_total: Total used in the period as reported by the sync
        sync_connection_id: Optional sync run reference
        session: Optional database session

    Returns:
        Dict with keys:
            - "inventory_delta" (float): new_total minus the stored total
            - "stock_deducted" (float): amount taken off current_stock
            - "created" (bool): whether the period row was created

    Raises:
        ValidationError: If the period is out of range
        InvalidQuantity: If new_total is negative or non-finite
        InventoryItemNotFound: If the item does not exist
    """
    _require_period(month, year)
    is_valid, _ = validate_non_negative_quantity(new_total, "total_used")
    if not is_valid:
        raise InvalidQuantity("total_used", new_total)
    new_total = float(new_total)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        item = drum_registry_service.get_item(item_id, lock=True, session=sess)
        row = _find_row(sess, item_id, month, year, lock=True)

        created = row is None
        previous_total = 0.0 if created else row.total_used
        delta = new_total - previous_total

        if created:
            row = MonthlyUsageSummary(item_id=item_id, month=month, year=year)
            sess.add(row)
        row.total_used = new_total
        row.last_synced_at = utc_now()
        if sync_connection_id is not None:
            row.sync_connection_id = sync_connection_id

        stock_deducted = 0.0
        if delta > 0:
            stock_deducted = min(delta, item.current_stock)
            item.current_stock = max(0.0, item.current_stock - delta)

        sess.flush()

        log_operation(
            logger,
            operation="sync_monthly_total",
            outcome="success",
            item_id=item_id,
            period=period_label(month, year),
            previous_total=previous_total,
            new_total=new_total,
            inventory_delta=delta,
        )
        return {
            "inventory_delta": delta,
            "stock_deducted": stock_deducted,
            "created": created,
        }


def apply_sync_totals(
    item_totals: Mapping[str, float],
    month: int,
    year: int,
    *,
    sync_connection_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Apply a whole sync run's per-item totals.

    Items are matched by name and created when first seen. Each item is
    processed in its own transaction; failures are collected, not raised.

    Args:
        item_totals: Mapping of item name to total used in the period
        month: Month 1-12
        year: Year 2000-2100
        sync_connection_id: Optional sync run reference

    Returns:
        Dict with keys "items_updated", "items_created",
        "usage_records_updated" and "errors" (list of messages)
    """
    _require_period(month, year)

    result: Dict[str, Any] = {
        "items_updated": 0,
        "items_created": 0,
        "usage_records_updated": 0,
        "errors": [],
    }

    for item_name, total in item_totals.items():
        try:
            if total is None or float(total) <= 0:
                continue
            with session_scope() as sess:
                opening_stock = max(SYNC_MIN_OPENING_STOCK, float(total) * 10)
                item, created = drum_registry_service.find_or_create_item(
                    item_name,
                    current_stock=opening_stock,
                    unit="units",
                    session=sess,
                )
                outcome = sync_monthly_total(
                    item.id,
                    month,
                    year,
                    total,
                    sync_connection_id=sync_connection_id,
                    session=sess,
                )
            if created:
                result["items_created"] += 1
            elif outcome["inventory_delta"] != 0:
                result["items_updated"] += 1
            result["usage_records_updated"] += 1
        except Exception as e:
            message = f"Failed to update {item_name}: {e}"
            log_operation(
                logger,
                operation="apply_sync_totals",
                outcome="item_failed",
                level=logging.WARNING,
                item_name=item_name,
                error=str(e),
            )
            result["errors"].append(message)

    return result


# =============================================================================
# Reporting
# =============================================================================


def get_monthly_summary(
    month: int,
    year: int,
    *,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """
    Get every item's usage for one month, highest total first.

    Raises:
        ValidationError: If the period is out of range
    """
    _require_period(month, year)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        rows = (
            sess.query(MonthlyUsageSummary)
            .filter(MonthlyUsageSummary.month == month, MonthlyUsageSummary.year == year)
            .order_by(MonthlyUsageSummary.total_used.desc(), MonthlyUsageSummary.item_id)
            .all()
        )
        return [_row_to_dict(row) for row in rows]


def get_all_monthly_usage(*, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """
    Get all recorded usage grouped by period, newest period first.

    Returns:
        List of dicts with keys "month", "year", "period" and "items"
        (rows as returned by get_monthly_summary)
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        rows = (
            sess.query(MonthlyUsageSummary)
            .order_by(
                MonthlyUsageSummary.year.desc(),
                MonthlyUsageSummary.month.desc(),
                MonthlyUsageSummary.total_used.desc(),
            )
            .all()
        )

        grouped: "OrderedDict[tuple, Dict[str, Any]]" = OrderedDict()
        for row in rows:
            key = (row.year, row.month)
            if key not in grouped:
                grouped[key] = {
                    "month": row.month,
                    "year": row.year,
                    "period": row.period,
                    "items": [],
                }
            grouped[key]["items"].append(_row_to_dict(row))
        return list(grouped.values())


# =============================================================================
# Recovery
# =============================================================================


def reset_month(month: int, year: int, *, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Undo a month's deductions from catalog stock and clear its rollups.

    Each row's total_used is added back to its item's current_stock, then
    the rows are deleted. Drum quantities, usage records and the drum audit
    trail are left as they are; run consumption_service.recalculate_all()
    afterwards to bring drums and catalog stock back into agreement.

    Args:
        month: Month 1-12
        year: Year 2000-2100
        session: Optional database session

    Returns:
        Dict with keys:
            - "items_reset" (int): summary rows removed
            - "inventory_restored" (int): items whose stock was increased
            - "quantity_restored" (float): total amount put back

    Raises:
        ValidationError: If the period is out of range
    """
    _require_period(month, year)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        rows = (
            sess.query(MonthlyUsageSummary)
            .filter(MonthlyUsageSummary.month == month, MonthlyUsageSummary.year == year)
            .with_for_update()
            .populate_existing()
            .all()
        )

        inventory_restored = 0
        quantity_restored = 0.0
        for row in rows:
            if row.total_used > 0:
                item = (
                    sess.query(InventoryItem)
                    .filter(InventoryItem.id == row.item_id)
                    .with_for_update()
                    .populate_existing()
                    .first()
                )
                if item is not None:
                    item.current_stock = item.current_stock + row.total_used
                    inventory_restored += 1
                    quantity_restored += row.total_used
            sess.delete(row)

        sess.flush()

        log_operation(
            logger,
            operation="reset_month",
            outcome="success",
            period=period_label(month, year),
            items_reset=len(rows),
            quantity_restored=quantity_restored,
        )
        return {
            "items_reset": len(rows),
            "inventory_restored": inventory_restored,
            "quantity_restored": quantity_restored,
        }
