"""
Usage Ledger Service - store of per-line cable consumption records.

The ledger is a pure store. It never touches drum quantities or catalog
stock; the consumption service restores a record's deduction before it
calls remove_usage().
"""

from contextlib import nullcontext
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import Drum, DrumUsage
from ..utils.datetime_utils import utc_now
from ..utils.validators import validate_non_negative_quantity
from .database import session_scope
from .exceptions import DrumNotFound, InvalidQuantity, UsageRecordNotFound, ValidationError


def _require_quantity(value, field_name: str) -> float:
    is_valid, _ = validate_non_negative_quantity(value, field_name)
    if not is_valid:
        raise InvalidQuantity(field_name, value)
    return float(value)


def _optional_point(value, field_name: str) -> Optional[float]:
    if value is None:
        return None
    return _require_quantity(value, field_name)


def record_usage(
    drum_id: int,
    line_details_id: str,
    quantity_used: float,
    wastage: float,
    *,
    start_point: Optional[float] = None,
    end_point: Optional[float] = None,
    usage_date: Optional[datetime] = None,
    session: Optional[Session] = None,
) -> DrumUsage:
    """
    Insert a usage record.

    Args:
        drum_id: Drum the cable came from
        line_details_id: External installation line reference
        quantity_used: Cable delivered to the line (meters)
        wastage: Wastage attributed to this event (meters)
        start_point: Optional start meter reading
        end_point: Optional end meter reading
        usage_date: When the cable was used (defaults to now)
        session: Optional database session

    Returns:
        The new DrumUsage

    Raises:
        DrumNotFound: If the drum does not exist
        InvalidQuantity: If any quantity or reading is negative or non-finite
        ValidationError: If line_details_id is blank
    """
    if line_details_id is None or not str(line_details_id).strip():
        raise ValidationError(["Line reference is required"])
    quantity = _require_quantity(quantity_used, "quantity_used")
    wastage_value = _require_quantity(wastage, "wastage")
    start = _optional_point(start_point, "cable_start_point")
    end = _optional_point(end_point, "cable_end_point")

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        if sess.get(Drum, drum_id) is None:
            raise DrumNotFound(drum_id)

        usage = DrumUsage(
            drum_id=drum_id,
            line_details_id=str(line_details_id),
            quantity_used=quantity,
            wastage_calculated=wastage_value,
            cable_start_point=start,
            cable_end_point=end,
            usage_date=usage_date or utc_now(),
        )
        sess.add(usage)
        sess.flush()
        return usage


def find_current_usage(
    line_details_id: str,
    *,
    session: Optional[Session] = None,
) -> Optional[DrumUsage]:
    """
    Get the most recent usage record for a line.

    Ties on usage_date are broken by insertion order.

    Returns:
        DrumUsage or None if the line has no usage
    """

    def _do_find(sess: Session) -> Optional[DrumUsage]:
        return (
            sess.query(DrumUsage)
            .filter(DrumUsage.line_details_id == str(line_details_id))
            .order_by(DrumUsage.usage_date.desc(), DrumUsage.id.desc())
            .first()
        )

    if session is not None:
        return _do_find(session)
    with session_scope() as sess:
        return _do_find(sess)


def get_usage(usage_id: int, *, session: Optional[Session] = None) -> DrumUsage:
    """
    Get a usage record by ID.

    Raises:
        UsageRecordNotFound: If the record does not exist
    """

    def _do_get(sess: Session) -> DrumUsage:
        usage = sess.get(DrumUsage, usage_id)
        if usage is None:
            raise UsageRecordNotFound(usage_id)
        return usage

    if session is not None:
        return _do_get(session)
    with session_scope() as sess:
        return _do_get(sess)


def list_drum_usage(drum_id: int, *, session: Optional[Session] = None) -> List[DrumUsage]:
    """All usage records for a drum, oldest first."""

    def _do_list(sess: Session) -> List[DrumUsage]:
        return (
            sess.query(DrumUsage)
            .filter(DrumUsage.drum_id == drum_id)
            .order_by(DrumUsage.usage_date.asc(), DrumUsage.id.asc())
            .all()
        )

    if session is not None:
        return _do_list(session)
    with session_scope() as sess:
        return _do_list(sess)


def get_last_metered_usage(
    drum_id: int,
    *,
    session: Optional[Session] = None,
) -> Optional[DrumUsage]:
    """Most recent usage on a drum that carries both meter readings."""

    def _do_get(sess: Session) -> Optional[DrumUsage]:
        return (
            sess.query(DrumUsage)
            .filter(
                DrumUsage.drum_id == drum_id,
                DrumUsage.cable_start_point.isnot(None),
                DrumUsage.cable_end_point.isnot(None),
            )
            .order_by(DrumUsage.usage_date.desc(), DrumUsage.id.desc())
            .first()
        )

    if session is not None:
        return _do_get(session)
    with session_scope() as sess:
        return _do_get(sess)


def remove_usage(usage_id: int, *, session: Optional[Session] = None) -> None:
    """
    Hard-delete a usage record.

    Only the consumption service calls this, after restoring the record's
    deduction in the same transaction.

    Raises:
        UsageRecordNotFound: If the record does not exist
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        usage = sess.get(DrumUsage, usage_id)
        if usage is None:
            raise UsageRecordNotFound(usage_id)
        sess.delete(usage)
        sess.flush()
