"""
Drum Registry Service - drum and catalog item identity and state.

This module owns the Drum and InventoryItem rows: registration (including
auto-creation during sync), lookups, and the raw quantity/status setter used
by the consumption service.

All functions are stateless and follow the session pattern:
- If session provided: caller owns transaction, don't commit
- If session is None: create own transaction via session_scope()

adjust_quantity() deliberately writes no history. The consumption service
owns history so that a multi-step operation leaves one coherent causal trail.
Registration and operator status changes, which are single-step, write their
own entries here.
"""

from contextlib import nullcontext
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import Drum, DrumStatus, HistoryAction, InventoryItem
from ..utils.constants import (
    DEFAULT_CABLE_ITEM_NAME,
    DEFAULT_CABLE_UNIT,
    DEFAULT_DRUM_CAPACITY,
    LOW_STOCK_THRESHOLD,
)
from ..utils.validators import sanitize_drum_number, validate_non_negative_quantity
from . import drum_history_service
from .database import session_scope
from .exceptions import (
    DrumNotFound,
    DrumNumberNotFound,
    InvalidQuantity,
    InventoryItemNotFound,
    ValidationError,
)
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

_VALID_STATUSES = frozenset(status.value for status in DrumStatus)


# =============================================================================
# Status rule
# =============================================================================


def derive_status(quantity: float, current_status: Optional[str] = None) -> str:
    """
    Derive a drum's status from its quantity.

    Rules:
        quantity <= 0                        -> empty
        drum under maintenance               -> maintenance (operator decision)
        0 < quantity <= LOW_STOCK_THRESHOLD  -> inactive
        otherwise                            -> active

    Args:
        quantity: Drum quantity in meters
        current_status: The drum's present status, if any

    Returns:
        DrumStatus value
    """
    if quantity <= 0:
        return DrumStatus.EMPTY.value
    if current_status == DrumStatus.MAINTENANCE.value:
        return DrumStatus.MAINTENANCE.value
    if quantity <= LOW_STOCK_THRESHOLD:
        return DrumStatus.INACTIVE.value
    return DrumStatus.ACTIVE.value


def _require_quantity(value: Any, field_name: str) -> float:
    is_valid, _ = validate_non_negative_quantity(value, field_name)
    if not is_valid:
        raise InvalidQuantity(field_name, value)
    return float(value)


# =============================================================================
# Catalog items
# =============================================================================


def get_item(
    item_id: int,
    *,
    lock: bool = False,
    session: Optional[Session] = None,
) -> InventoryItem:
    """
    Get a catalog item by ID.

    Args:
        item_id: InventoryItem ID
        lock: If True, lock the row (SELECT ... FOR UPDATE) for read-modify-write
        session: Optional database session

    Raises:
        InventoryItemNotFound: If the item does not exist
    """

    def _do_get(sess: Session) -> InventoryItem:
        query = sess.query(InventoryItem).filter(InventoryItem.id == item_id)
        if lock:
            query = query.with_for_update().populate_existing()
        item = query.first()
        if item is None:
            raise InventoryItemNotFound(item_id)
        return item

    if session is not None:
        return _do_get(session)
    with session_scope() as sess:
        return _do_get(sess)


def get_item_by_name(name: str, *, session: Optional[Session] = None) -> Optional[InventoryItem]:
    """Case-insensitive catalog lookup by name."""

    def _do_get(sess: Session) -> Optional[InventoryItem]:
        return (
            sess.query(InventoryItem)
            .filter(func.lower(InventoryItem.name) == name.strip().lower())
            .first()
        )

    if session is not None:
        return _do_get(session)
    with session_scope() as sess:
        return _do_get(sess)


def find_or_create_item(
    name: str,
    *,
    drum_size: Optional[float] = None,
    current_stock: float = 0.0,
    unit: str = DEFAULT_CABLE_UNIT,
    session: Optional[Session] = None,
) -> Tuple[InventoryItem, bool]:
    """
    Get a catalog item by name, creating it if absent.

    Args:
        name: Item name (matched case-insensitively)
        drum_size: Nominal drum capacity for cable items
        current_stock: Opening stock for a newly created item
        unit: Unit for a newly created item
        session: Optional database session

    Returns:
        Tuple of (item, created)
    """
    if not name or not name.strip():
        raise ValidationError(["Item name is required"])
    opening_stock = _require_quantity(current_stock, "current_stock")
    if drum_size is not None and _require_quantity(drum_size, "drum_size") <= 0:
        raise InvalidQuantity("drum_size", drum_size)

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        existing = get_item_by_name(name, session=sess)
        if existing is not None:
            return existing, False

        item = InventoryItem(
            name=name.strip(),
            unit=unit,
            current_stock=opening_stock,
            drum_size=drum_size,
        )
        sess.add(item)
        sess.flush()

        log_operation(logger, operation="create_item", outcome="success", item_id=item.id)
        return item, True


# =============================================================================
# Drum lookups
# =============================================================================


def get_drum(
    drum_id: int,
    *,
    lock: bool = False,
    session: Optional[Session] = None,
) -> Drum:
    """
    Get a drum by ID.

    Args:
        drum_id: Drum ID
        lock: If True, lock the row (SELECT ... FOR UPDATE) and refresh it
            from the database, so concurrent writers on the same drum serialize
        session: Optional database session

    Raises:
        DrumNotFound: If the drum does not exist
    """

    def _do_get(sess: Session) -> Drum:
        query = sess.query(Drum).filter(Drum.id == drum_id)
        if lock:
            query = query.with_for_update().populate_existing()
        drum = query.first()
        if drum is None:
            raise DrumNotFound(drum_id)
        return drum

    if session is not None:
        return _do_get(session)
    with session_scope() as sess:
        return _do_get(sess)


def get_drum_by_number(drum_number: str, *, session: Optional[Session] = None) -> Drum:
    """
    Get a drum by its drum number.

    Raises:
        DrumNumberNotFound: If no drum carries that number
    """
    cleaned = sanitize_drum_number(drum_number)

    def _do_get(sess: Session) -> Drum:
        drum = sess.query(Drum).filter(Drum.drum_number == cleaned).first()
        if drum is None:
            raise DrumNumberNotFound(drum_number)
        return drum

    if session is not None:
        return _do_get(session)
    with session_scope() as sess:
        return _do_get(sess)


def list_drums(
    *,
    status: Optional[str] = None,
    item_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> List[Drum]:
    """List drums ordered by drum number, optionally filtered by status or item."""

    def _do_list(sess: Session) -> List[Drum]:
        query = sess.query(Drum)
        if status is not None:
            query = query.filter(Drum.status == status)
        if item_id is not None:
            query = query.filter(Drum.item_id == item_id)
        return query.order_by(Drum.drum_number).all()

    if session is not None:
        return _do_list(session)
    with session_scope() as sess:
        return _do_list(sess)


# =============================================================================
# Registration
# =============================================================================


def find_or_create(
    drum_number: str,
    *,
    initial_quantity: Optional[float] = None,
    item_id: Optional[int] = None,
    sync_connection_id: Optional[str] = None,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> Tuple[Drum, bool]:
    """
    Return the drum with this number, registering it on first reference.

    Capacity of a new drum, in order of preference:
        1. initial_quantity
        2. drum_size of the given item (or of the default cable item)
        3. DEFAULT_DRUM_CAPACITY

    When item_id is omitted the drum is attached to the default cable
    catalog item if one exists. Creation writes one 'created' history entry
    with previous_quantity None.

    Args:
        drum_number: Human-assigned drum number (e.g. "DR-001")
        initial_quantity: Optional explicit capacity in meters
        item_id: Optional catalog item the drum's cable belongs to
        sync_connection_id: Optional sync run reference for the history entry
        notes: Optional history note
        session: Optional database session

    Returns:
        Tuple of (drum, created)

    Raises:
        ValidationError: If drum_number is blank
        InvalidQuantity: If initial_quantity is negative or non-finite
        InventoryItemNotFound: If item_id does not exist
    """
    cleaned = sanitize_drum_number(drum_number)
    if cleaned is None:
        raise ValidationError(["Drum number is required"])
    if initial_quantity is not None:
        initial_quantity = _require_quantity(initial_quantity, "initial_quantity")

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        existing = sess.query(Drum).filter(Drum.drum_number == cleaned).first()
        if existing is not None:
            return existing, False

        if item_id is not None:
            item = get_item(item_id, session=sess)
        else:
            item = get_item_by_name(DEFAULT_CABLE_ITEM_NAME, session=sess)

        if initial_quantity is not None:
            capacity = initial_quantity
        elif item is not None and item.drum_size:
            capacity = float(item.drum_size)
        else:
            capacity = DEFAULT_DRUM_CAPACITY

        status = derive_status(capacity)
        drum = Drum(
            drum_number=cleaned,
            item_id=item.id if item is not None else None,
            initial_quantity=capacity,
            current_quantity=capacity,
            status=status,
        )

        # A concurrent sync may register the same number first; the savepoint
        # keeps the rest of the caller's transaction intact
        savepoint = sess.begin_nested()
        try:
            sess.add(drum)
            sess.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            existing = sess.query(Drum).filter(Drum.drum_number == cleaned).first()
            if existing is None:
                raise
            return existing, False

        drum_history_service.append_entry(
            drum,
            HistoryAction.CREATED,
            None,
            capacity,
            previous_status=None,
            new_status=status,
            sync_connection_id=sync_connection_id,
            notes=notes or f"Drum {cleaned} created",
            session=sess,
        )

        log_operation(
            logger,
            operation="find_or_create",
            outcome="created",
            drum_id=drum.id,
            drum_number=cleaned,
            capacity=capacity,
        )
        return drum, True


def ensure_drums_exist(
    drum_numbers: Iterable[str],
    *,
    sync_connection_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> Dict[str, Dict[str, Any]]:
    """
    Register every drum number seen during a sync.

    Blank and duplicate numbers are skipped.

    Returns:
        Dict mapping drum number to {"id": int, "is_new": bool}
    """
    unique = []
    for number in drum_numbers:
        cleaned = sanitize_drum_number(number)
        if cleaned is not None and cleaned not in unique:
            unique.append(cleaned)

    result: Dict[str, Dict[str, Any]] = {}
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        for number in unique:
            drum, created = find_or_create(
                number,
                sync_connection_id=sync_connection_id,
                notes="Auto-created during sync",
                session=sess,
            )
            result[number] = {"id": drum.id, "is_new": created}

    return result


# =============================================================================
# Mutation
# =============================================================================


def adjust_quantity(
    drum_id: int,
    new_quantity: float,
    new_status: Optional[str] = None,
    *,
    session: Optional[Session] = None,
) -> Drum:
    """
    Set a drum's current quantity and status.

    Status is derived from the quantity unless new_status is given. No
    history is written; callers record the change.

    Raises:
        DrumNotFound: If the drum does not exist
        InvalidQuantity: If new_quantity is negative or non-finite
        ValidationError: If new_status is not a DrumStatus value
    """
    quantity = _require_quantity(new_quantity, "current_quantity")
    if new_status is not None and new_status not in _VALID_STATUSES:
        raise ValidationError([f"Invalid drum status '{new_status}'"])

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        drum = get_drum(drum_id, lock=True, session=sess)
        drum.current_quantity = quantity
        drum.status = new_status or derive_status(quantity, drum.status)
        sess.flush()
        return drum


def set_drum_status(
    drum_id: int,
    new_status: str,
    *,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> Drum:
    """
    Change a drum's status by operator decision, with a 'status_changed' entry.

    A drum holding no cable can only be 'empty', and only a drum holding no
    cable can be 'empty'.

    Raises:
        DrumNotFound: If the drum does not exist
        ValidationError: If the status is unknown or contradicts the quantity
    """
    status_value = new_status.value if isinstance(new_status, DrumStatus) else new_status
    if status_value not in _VALID_STATUSES:
        raise ValidationError([f"Invalid drum status '{new_status}'"])

    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        drum = get_drum(drum_id, lock=True, session=sess)
        is_empty_status = status_value == DrumStatus.EMPTY.value
        if drum.is_empty != is_empty_status:
            raise ValidationError(
                [
                    f"Drum {drum.drum_number} holds {drum.current_quantity}m; "
                    f"status '{status_value}' does not match"
                ]
            )

        previous_status = drum.status
        if previous_status == status_value:
            return drum

        drum.status = status_value
        sess.flush()

        drum_history_service.append_entry(
            drum,
            HistoryAction.STATUS_CHANGED,
            drum.current_quantity,
            drum.current_quantity,
            previous_status=previous_status,
            new_status=status_value,
            notes=notes or f"Status changed from {previous_status} to {status_value}",
            session=sess,
        )

        log_operation(
            logger,
            operation="set_drum_status",
            outcome="success",
            drum_id=drum.id,
            previous_status=previous_status,
            new_status=status_value,
        )
        return drum
