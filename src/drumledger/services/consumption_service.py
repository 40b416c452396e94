"""
Consumption Service - transactional cable usage accounting.

This is the only module that changes a drum's quantity after registration.
Every entry point runs as one unit of work: drum quantity, catalog stock,
usage ledger, monthly rollup and audit trail commit together or not at all.

Entry points:
- apply_usage(): line edit path. Reverses the line's current usage, then
  deducts the new usage with heuristic wastage.
- record_metered_usage(): sync path. Same reversal, then deducts usage
  captured with start/end meter readings.
- recalculate() / recalculate_all(): rebuild drum quantities from the usage
  ledger via the wastage estimator.

Session pattern:
    Pass session= to run inside the caller's transaction. On any raised
    error the caller must roll back, since a restoration may already have
    been applied to that session. Without session= each call owns its
    transaction and session_scope() rolls back on error.

Locking:
    Drum and item rows are read with SELECT ... FOR UPDATE before each
    read-modify-write, so two writers on the same drum serialize. SQLite
    does not render FOR UPDATE; database.py opens every SQLite transaction
    with BEGIN IMMEDIATE instead, which takes the write lock before the read.
"""

import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Drum, DrumUsage, HistoryAction
from ..utils.constants import RECALCULATION_EPSILON
from ..utils.validators import format_meters, validate_non_negative_quantity
from . import (
    drum_history_service,
    drum_registry_service,
    monthly_usage_service,
    usage_ledger_service,
    wastage_estimator,
)
from .database import session_scope
from .exceptions import InsufficientStock, InvalidQuantity, TransactionFailure, ValidationError
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

# Float dust allowed when comparing a deduction with the cable on a drum
STOCK_TOLERANCE = 1e-9


@dataclass(frozen=True)
class RecalculationResult:
    """Outcome of recalculating one drum."""

    drum_id: int
    drum_number: str
    previous_quantity: float
    new_quantity: float
    total_wastage: float
    usage_count: int
    adjusted: bool


@dataclass
class BatchRecalculationResult:
    """Outcome of recalculate_all(); failures map drum_id to an error message."""

    processed: int = 0
    adjusted: int = 0
    failures: Dict[int, str] = field(default_factory=dict)
    items_reconciled: int = 0
    results: List[RecalculationResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures


# =============================================================================
# Helpers
# =============================================================================


def _require_line(line_details_id: Any) -> str:
    if line_details_id is None or not str(line_details_id).strip():
        raise ValidationError(["Line reference is required"])
    return str(line_details_id)


def _require_quantity(value: Any, field_name: str) -> float:
    if value is None:
        return 0.0
    is_valid, _ = validate_non_negative_quantity(value, field_name)
    if not is_valid:
        raise InvalidQuantity(field_name, value)
    return float(value)


def _adjust_item_stock(sess: Session, item_id: Optional[int], delta: float) -> None:
    """Apply a signed delta to a catalog item's stock, floored at 0."""
    if item_id is None or delta == 0:
        return
    item = drum_registry_service.get_item(item_id, lock=True, session=sess)
    item.current_stock = max(0.0, item.current_stock + delta)


def _restore_current_usage(
    sess: Session,
    line_details_id: str,
    sync_connection_id: Optional[str],
) -> Tuple[float, Optional[int]]:
    """
    Reverse the line's current usage record, if it has one.

    Puts the record's deduction back on its drum and catalog item, takes it
    off the monthly rollup, deletes the record and writes one
    'quantity_adjusted' entry. Flushed before returning so a following
    deduction on the same drum sees the restored quantity.

    Returns:
        Tuple of (amount restored, drum ID it was restored to)
    """
    existing = usage_ledger_service.find_current_usage(line_details_id, session=sess)
    if existing is None:
        return 0.0, None

    drum = drum_registry_service.get_drum(existing.drum_id, lock=True, session=sess)
    amount = existing.total_deduction
    usage_date = existing.usage_date
    previous_quantity = drum.current_quantity
    previous_status = drum.status

    drum_registry_service.adjust_quantity(drum.id, previous_quantity + amount, session=sess)
    _adjust_item_stock(sess, drum.item_id, amount)
    if drum.item_id is not None:
        monthly_usage_service.add_usage(
            drum.item_id,
            usage_date,
            -amount,
            sync_connection_id=sync_connection_id,
            session=sess,
        )
    usage_ledger_service.remove_usage(existing.id, session=sess)

    drum_history_service.append_entry(
        drum,
        HistoryAction.QUANTITY_ADJUSTED,
        previous_quantity,
        drum.current_quantity,
        previous_status=previous_status,
        line_details_id=line_details_id,
        sync_connection_id=sync_connection_id,
        notes=f"Restored {format_meters(amount)}m from previous usage on line {line_details_id}",
        session=sess,
    )
    sess.flush()

    log_operation(
        logger,
        operation="restore_usage",
        outcome="success",
        drum_id=drum.id,
        line_details_id=line_details_id,
        quantity_change=amount,
    )
    return amount, drum.id


def _deduct(
    sess: Session,
    drum: Drum,
    line_details_id: str,
    quantity_used: float,
    wastage: float,
    *,
    start_point: Optional[float] = None,
    end_point: Optional[float] = None,
    usage_date: Optional[datetime] = None,
    sync_connection_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> DrumUsage:
    """
    Deduct quantity_used + wastage from a locked drum and record it.

    Raises InsufficientStock before writing anything if the drum does not
    hold enough cable.
    """
    deduction = quantity_used + wastage
    available = drum.current_quantity
    if deduction > available + STOCK_TOLERANCE:
        log_operation(
            logger,
            operation="deduct_usage",
            outcome="insufficient_stock",
            level=logging.WARNING,
            drum_id=drum.id,
            line_details_id=line_details_id,
            available=available,
            required=deduction,
        )
        raise InsufficientStock(available, deduction, drum.drum_number)

    previous_status = drum.status
    new_quantity = max(0.0, available - deduction)
    drum_registry_service.adjust_quantity(drum.id, new_quantity, session=sess)
    _adjust_item_stock(sess, drum.item_id, -deduction)

    usage = usage_ledger_service.record_usage(
        drum.id,
        line_details_id,
        quantity_used,
        wastage,
        start_point=start_point,
        end_point=end_point,
        usage_date=usage_date,
        session=sess,
    )
    if drum.item_id is not None:
        monthly_usage_service.add_usage(
            drum.item_id,
            usage.usage_date,
            deduction,
            sync_connection_id=sync_connection_id,
            session=sess,
        )

    drum_history_service.append_entry(
        drum,
        HistoryAction.USAGE_ADDED,
        available,
        drum.current_quantity,
        previous_status=previous_status,
        line_details_id=line_details_id,
        sync_connection_id=sync_connection_id,
        notes=notes
        or (
            f"Used {format_meters(quantity_used)}m + {format_meters(wastage)}m wastage "
            f"on line {line_details_id}"
        ),
        session=sess,
    )
    return usage


def _usage_change(
    line_details_id: str,
    restored: float,
    restored_drum_id: Optional[int],
    drum: Optional[Drum] = None,
    usage: Optional[DrumUsage] = None,
) -> Dict[str, Any]:
    return {
        "line_details_id": line_details_id,
        "restored": restored,
        "restored_drum_id": restored_drum_id,
        "cleared": usage is None,
        "drum_id": drum.id if drum is not None else None,
        "drum_number": drum.drum_number if drum is not None else None,
        "usage_id": usage.id if usage is not None else None,
        "quantity_used": usage.quantity_used if usage is not None else 0.0,
        "wastage": usage.wastage_calculated if usage is not None else 0.0,
        "deducted": usage.total_deduction if usage is not None else 0.0,
        "current_quantity": drum.current_quantity if drum is not None else None,
    }


def _translate_store_error(operation: str, error: SQLAlchemyError, **context) -> TransactionFailure:
    log_operation(
        logger,
        operation=operation,
        outcome="transaction_failed",
        level=logging.ERROR,
        error=str(error),
        **context,
    )
    return TransactionFailure(f"Could not complete {operation.replace('_', ' ')}", error)


# =============================================================================
# Usage entry points
# =============================================================================


def apply_usage(
    line_details_id: str,
    drum_id: Optional[int],
    quantity_used: Optional[float],
    *,
    usage_date: Optional[datetime] = None,
    sync_connection_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Set a line's cable usage, replacing whatever it used before.

    Algorithm:
        1. Find the line's current usage record
        2. If found, restore its deduction to its drum, catalog item and
           monthly rollup, delete it, and write a 'quantity_adjusted' entry
        3. Stop if drum_id is None or quantity_used <= 0 (usage cleared)
        4. Wastage = heuristic_wastage(quantity_used); deduction =
           quantity_used + wastage
        5. Fail with InsufficientStock if deduction exceeds the drum
        6. Deduct from drum and catalog item (floored at 0), record the
           usage, add to the monthly rollup, write a 'usage_added' entry

    Restoration is flushed before step 4, so re-applying a line to its own
    drum never fails for lack of stock and nets to zero when the amount is
    unchanged.

    Args:
        line_details_id: External installation line reference
        drum_id: Drum the cable comes from, or None to clear usage
        quantity_used: Meters used, or None/0 to clear usage
        usage_date: When the cable was used (defaults to now)
        sync_connection_id: Optional causal sync reference
        session: Optional database session

    Returns:
        Dict with keys: line_details_id, restored, restored_drum_id,
        cleared, drum_id, drum_number, usage_id, quantity_used, wastage,
        deducted, current_quantity

    Raises:
        ValidationError: If line_details_id is blank
        InvalidQuantity: If quantity_used is negative or non-finite
        DrumNotFound: If drum_id does not exist
        InsufficientStock: If the drum holds less than the deduction
        TransactionFailure: If the database fails mid-operation
    """
    line = _require_line(line_details_id)
    quantity = _require_quantity(quantity_used, "quantity_used")

    try:
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as sess:
            restored, restored_drum_id = _restore_current_usage(sess, line, sync_connection_id)

            if drum_id is None or quantity <= 0:
                log_operation(
                    logger,
                    operation="apply_usage",
                    outcome="cleared",
                    line_details_id=line,
                    restored=restored,
                )
                return _usage_change(line, restored, restored_drum_id)

            drum = drum_registry_service.get_drum(drum_id, lock=True, session=sess)
            wastage = wastage_estimator.heuristic_wastage(quantity)
            usage = _deduct(
                sess,
                drum,
                line,
                quantity,
                wastage,
                usage_date=usage_date,
                sync_connection_id=sync_connection_id,
            )

            log_operation(
                logger,
                operation="apply_usage",
                outcome="success",
                drum_id=drum.id,
                line_details_id=line,
                restored=restored,
                quantity_change=-usage.total_deduction,
            )
            return _usage_change(line, restored, restored_drum_id, drum, usage)
    except SQLAlchemyError as e:
        raise _translate_store_error("apply_usage", e, line_details_id=line) from e


def record_metered_usage(
    line_details_id: str,
    drum_id: int,
    quantity_used: float,
    *,
    start_point: float,
    end_point: float,
    wastage_input: float = 0.0,
    usage_date: Optional[datetime] = None,
    sync_connection_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Record usage captured with start/end meter readings.

    The line's current usage is reversed first, as in apply_usage(). When
    start_point lies below the end point of the drum's previous metered
    usage, the overlap is cable that was cut away and is added to the
    wastage.

    Args:
        line_details_id: External installation line reference
        drum_id: Drum the cable comes from
        quantity_used: Meters delivered to the line
        start_point: Meter reading at the start of the pull
        end_point: Meter reading at the end of the pull
        wastage_input: Wastage reported by the technician
        usage_date: When the cable was used (defaults to now)
        sync_connection_id: Optional causal sync reference
        session: Optional database session

    Returns:
        Dict as returned by apply_usage(), plus "overlap_wastage"

    Raises:
        ValidationError: If line_details_id is blank
        InvalidQuantity: If any quantity or reading is negative or non-finite
        DrumNotFound: If drum_id does not exist
        InsufficientStock: If the drum holds less than the deduction
        TransactionFailure: If the database fails mid-operation
    """
    line = _require_line(line_details_id)
    quantity = _require_quantity(quantity_used, "quantity_used")
    reported_wastage = _require_quantity(wastage_input, "wastage_input")
    start = _require_quantity(start_point, "cable_start_point")
    end = _require_quantity(end_point, "cable_end_point")

    try:
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as sess:
            restored, restored_drum_id = _restore_current_usage(sess, line, sync_connection_id)

            drum = drum_registry_service.get_drum(drum_id, lock=True, session=sess)

            overlap = 0.0
            previous = usage_ledger_service.get_last_metered_usage(drum.id, session=sess)
            if previous is not None and start < previous.cable_end_point:
                overlap = previous.cable_end_point - start

            # Readings spanning more than quantity_used count the excess as wastage
            wastage = wastage_estimator.wastage_for(
                wastage_estimator.MeteredUsage(
                    quantity_used=quantity,
                    wastage_recorded=reported_wastage + overlap,
                    start_point=start,
                    end_point=end,
                )
            )
            usage = _deduct(
                sess,
                drum,
                line,
                quantity,
                wastage,
                start_point=start,
                end_point=end,
                usage_date=usage_date,
                sync_connection_id=sync_connection_id,
                notes=(
                    f"Metered {format_meters(start)}-{format_meters(end)}: "
                    f"{format_meters(quantity)}m used, {format_meters(wastage)}m wastage "
                    f"on line {line}"
                ),
            )

            log_operation(
                logger,
                operation="record_metered_usage",
                outcome="success",
                drum_id=drum.id,
                line_details_id=line,
                overlap_wastage=overlap,
                quantity_change=-usage.total_deduction,
            )
            change = _usage_change(line, restored, restored_drum_id, drum, usage)
            change["overlap_wastage"] = overlap
            return change
    except SQLAlchemyError as e:
        raise _translate_store_error("record_metered_usage", e, line_details_id=line) from e


# =============================================================================
# Recalculation
# =============================================================================


def _capacity_for(drum: Drum) -> float:
    """Capacity for recalculation: the quantity the drum was registered with."""
    return float(drum.initial_quantity)


def recalculate(
    drum_id: int,
    *,
    sync_connection_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> RecalculationResult:
    """
    Rebuild a drum's quantity from its usage ledger.

    Runs the wastage estimator over the drum's full usage history. If the
    estimate differs from the stored quantity by more than
    RECALCULATION_EPSILON the drum is overwritten, its status re-derived,
    the difference applied to the catalog item, and one 'quantity_adjusted'
    entry written. Otherwise nothing is written, so a second call in a row
    is a no-op.

    Args:
        drum_id: Drum to recalculate
        sync_connection_id: Optional causal sync reference
        session: Optional database session

    Returns:
        RecalculationResult

    Raises:
        DrumNotFound: If the drum does not exist
        TransactionFailure: If the database fails mid-operation
    """
    try:
        cm = nullcontext(session) if session is not None else session_scope()
        with cm as sess:
            drum = drum_registry_service.get_drum(drum_id, lock=True, session=sess)
            usages = usage_ledger_service.list_drum_usage(drum.id, session=sess)

            estimate = wastage_estimator.estimate(usages, _capacity_for(drum), drum.status)

            previous_quantity = drum.current_quantity
            new_quantity = estimate.calculated_current_quantity
            quantity_change = new_quantity - previous_quantity

            if abs(quantity_change) <= RECALCULATION_EPSILON:
                log_operation(
                    logger,
                    operation="recalculate",
                    outcome="unchanged",
                    level=logging.DEBUG,
                    drum_id=drum.id,
                )
                return RecalculationResult(
                    drum_id=drum.id,
                    drum_number=drum.drum_number,
                    previous_quantity=previous_quantity,
                    new_quantity=previous_quantity,
                    total_wastage=estimate.total_wastage,
                    usage_count=estimate.usage_count,
                    adjusted=False,
                )

            previous_status = drum.status
            drum_registry_service.adjust_quantity(drum.id, new_quantity, session=sess)
            _adjust_item_stock(sess, drum.item_id, quantity_change)

            drum_history_service.append_entry(
                drum,
                HistoryAction.QUANTITY_ADJUSTED,
                previous_quantity,
                new_quantity,
                previous_status=previous_status,
                sync_connection_id=sync_connection_id,
                notes=(
                    f"Recalculated from {estimate.usage_count} usage record(s), "
                    f"{estimate.total_wastage:.2f}m wastage"
                ),
                session=sess,
            )

            log_operation(
                logger,
                operation="recalculate",
                outcome="adjusted",
                drum_id=drum.id,
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
                quantity_change=quantity_change,
            )
            return RecalculationResult(
                drum_id=drum.id,
                drum_number=drum.drum_number,
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
                total_wastage=estimate.total_wastage,
                usage_count=estimate.usage_count,
                adjusted=True,
            )
    except SQLAlchemyError as e:
        raise _translate_store_error("recalculate", e, drum_id=drum_id) from e


def reconcile_item_stock(*, session: Optional[Session] = None) -> int:
    """
    Set each drum-backed item's stock to the cable left on its drums.

    Items without drums are left alone; their stock is managed by sync.

    Returns:
        Number of items whose stock changed
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        totals = (
            sess.query(Drum.item_id, func.sum(Drum.current_quantity))
            .filter(Drum.item_id.isnot(None))
            .group_by(Drum.item_id)
            .all()
        )

        changed = 0
        for item_id, total in totals:
            item = drum_registry_service.get_item(item_id, lock=True, session=sess)
            total = float(total or 0.0)
            if abs(item.current_stock - total) > RECALCULATION_EPSILON:
                log_operation(
                    logger,
                    operation="reconcile_item_stock",
                    outcome="adjusted",
                    item_id=item_id,
                    previous_stock=item.current_stock,
                    new_stock=total,
                )
                item.current_stock = total
                changed += 1

        sess.flush()
        return changed


def recalculate_all(
    *,
    drum_ids: Optional[Iterable[int]] = None,
    sync_connection_id: Optional[str] = None,
) -> BatchRecalculationResult:
    """
    Recalculate many drums, each in its own transaction.

    One drum failing does not stop the others; its error is collected in
    failures. Catalog stock is then reconciled against drum quantities.

    Args:
        drum_ids: Drums to process (defaults to every drum)
        sync_connection_id: Optional causal sync reference

    Returns:
        BatchRecalculationResult
    """
    if drum_ids is None:
        with session_scope() as sess:
            drum_ids = [row[0] for row in sess.query(Drum.id).order_by(Drum.id).all()]

    batch = BatchRecalculationResult()
    for drum_id in drum_ids:
        try:
            result = recalculate(drum_id, sync_connection_id=sync_connection_id)
        except Exception as e:
            log_operation(
                logger,
                operation="recalculate_all",
                outcome="drum_failed",
                level=logging.WARNING,
                drum_id=drum_id,
                error=str(e),
            )
            batch.failures[drum_id] = str(e)
            continue

        batch.processed += 1
        batch.results.append(result)
        if result.adjusted:
            batch.adjusted += 1

    try:
        batch.items_reconciled = reconcile_item_stock()
    except SQLAlchemyError as e:
        raise _translate_store_error("reconcile_item_stock", e) from e

    log_operation(
        logger,
        operation="recalculate_all",
        outcome="success" if batch.succeeded else "partial",
        processed=batch.processed,
        adjusted=batch.adjusted,
        failed=len(batch.failures),
        items_reconciled=batch.items_reconciled,
    )
    return batch
