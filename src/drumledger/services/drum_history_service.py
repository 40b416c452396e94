"""
Drum History Service - the append-only audit trail.

append_entry() is the only code path that writes DrumHistoryEntry rows. It
is always called inside the caller's transaction, as the last step of a
state change, so a quantity change and its history entry commit or roll
back together.

Everything else in this module is read-only reporting and verification.
"""

from contextlib import nullcontext
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import Drum, DrumHistoryEntry, HistoryAction
from ..utils.constants import DEFAULT_HISTORY_LIMIT, RECALCULATION_EPSILON
from .database import session_scope
from .exceptions import DrumNotFound, ValidationError


def append_entry(
    drum: Drum,
    action: HistoryAction,
    previous_quantity: Optional[float],
    new_quantity: float,
    *,
    previous_status: Optional[str],
    new_status: Optional[str] = None,
    line_details_id: Optional[str] = None,
    sync_connection_id: Optional[str] = None,
    notes: Optional[str] = None,
    session: Session,
) -> DrumHistoryEntry:
    """
    Append one audit entry for a drum.

    quantity_change is always computed here as new_quantity minus
    previous_quantity (None counts as 0 for creation), so the pair can never
    disagree with the recorded delta.

    Args:
        drum: The drum that changed (must already be flushed)
        action: HistoryAction of the change
        previous_quantity: Quantity before the change, None for creation
        new_quantity: Quantity after the change
        previous_status: Status before the change, None for creation
        new_status: Status after the change (defaults to drum.status)
        line_details_id: Optional causal line reference
        sync_connection_id: Optional causal sync reference
        notes: Free-text explanation
        session: Session of the transaction making the change

    Returns:
        The new DrumHistoryEntry
    """
    action_value = action.value if isinstance(action, HistoryAction) else action
    if action_value not in {a.value for a in HistoryAction}:
        raise ValidationError([f"Unknown history action '{action_value}'"])

    baseline = previous_quantity if previous_quantity is not None else 0.0
    entry = DrumHistoryEntry(
        drum_id=drum.id,
        action=action_value,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        quantity_change=new_quantity - baseline,
        previous_status=previous_status,
        new_status=new_status or drum.status,
        line_details_id=line_details_id,
        sync_connection_id=sync_connection_id,
        notes=notes,
    )
    session.add(entry)
    session.flush()
    return entry


def _require_drum(session: Session, drum_id: int) -> Drum:
    drum = session.get(Drum, drum_id)
    if drum is None:
        raise DrumNotFound(drum_id)
    return drum


def _entry_to_dict(entry: DrumHistoryEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "drum_id": entry.drum_id,
        "action": entry.action,
        "previous_quantity": entry.previous_quantity,
        "new_quantity": entry.new_quantity,
        "quantity_change": entry.quantity_change,
        "previous_status": entry.previous_status,
        "new_status": entry.new_status,
        "line_details_id": entry.line_details_id,
        "sync_connection_id": entry.sync_connection_id,
        "notes": entry.notes,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


def get_drum_history(
    drum_id: int,
    *,
    limit: Optional[int] = DEFAULT_HISTORY_LIMIT,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """
    Get a drum's audit trail, newest first.

    Args:
        drum_id: Drum to report on
        limit: Maximum entries to return (None for all)
        session: Optional database session

    Returns:
        List of entry dicts

    Raises:
        DrumNotFound: If the drum does not exist
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        _require_drum(sess, drum_id)
        query = (
            sess.query(DrumHistoryEntry)
            .filter(DrumHistoryEntry.drum_id == drum_id)
            .order_by(DrumHistoryEntry.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return [_entry_to_dict(entry) for entry in query.all()]


def _ordered_entries(session: Session, drum_id: int) -> List[DrumHistoryEntry]:
    return (
        session.query(DrumHistoryEntry)
        .filter(DrumHistoryEntry.drum_id == drum_id)
        .order_by(DrumHistoryEntry.id.asc())
        .all()
    )


def replay_quantity(drum_id: int, *, session: Optional[Session] = None) -> Optional[float]:
    """
    Reconstruct a drum's quantity purely from its audit trail.

    Folds entries oldest first: the creation entry sets the starting
    quantity, every later entry adds its quantity_change.

    Returns:
        Reconstructed quantity, or None if the drum has no history
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        _require_drum(sess, drum_id)
        entries = _ordered_entries(sess, drum_id)
        if not entries:
            return None

        quantity = 0.0
        for entry in entries:
            if entry.action == HistoryAction.CREATED.value:
                quantity = entry.new_quantity
            else:
                quantity += entry.quantity_change
        return quantity


def verify_trail(drum_id: int, *, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Check that a drum's audit trail is continuous and matches the drum.

    Each entry's previous_quantity must equal the running quantity left by
    the entry before it, and the final quantity must equal the drum's
    current_quantity (within RECALCULATION_EPSILON).

    Returns:
        Dict with keys:
            - "consistent" (bool)
            - "replayed_quantity" (float or None)
            - "current_quantity" (float)
            - "breaks" (List[int]): IDs of entries that do not follow on
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as sess:
        drum = _require_drum(sess, drum_id)
        entries = _ordered_entries(sess, drum_id)

        breaks = []
        running = None
        for entry in entries:
            if entry.action == HistoryAction.CREATED.value:
                running = entry.new_quantity
                continue
            if running is None or entry.previous_quantity is None or (
                abs(entry.previous_quantity - running) > RECALCULATION_EPSILON
            ):
                breaks.append(entry.id)
            running = (running or 0.0) + entry.quantity_change

        consistent = (
            not breaks
            and running is not None
            and abs(running - drum.current_quantity) <= RECALCULATION_EPSILON
        )
        return {
            "consistent": consistent,
            "replayed_quantity": running,
            "current_quantity": drum.current_quantity,
            "breaks": breaks,
        }
