"""
ORM-level append-only enforcement for the drum audit trail.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database. The listeners here reject any such statement for a
DrumHistoryEntry, so the trail can only grow:

    session.flush()
         |
         v
    [before_update] --> _reject_history_update() --> ImmutableRecordError
    [before_delete] --> _reject_history_delete() --> ImmutableRecordError

Bulk Query.update()/delete() bypass mapper events; services never issue
those against drum_history.
"""

import logging

from sqlalchemy import event

from ..models.drum_history import DrumHistoryEntry
from .exceptions import ImmutableRecordError

logger = logging.getLogger(__name__)


def _reject_history_update(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={"entity_type": "DrumHistoryEntry", "entity_id": target.id, "operation": "UPDATE"},
    )
    raise ImmutableRecordError("DrumHistoryEntry", target.id, "modified")


def _reject_history_delete(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={"entity_type": "DrumHistoryEntry", "entity_id": target.id, "operation": "DELETE"},
    )
    raise ImmutableRecordError("DrumHistoryEntry", target.id, "deleted")


def register_immutability_listeners() -> None:
    """
    Register the audit-trail listeners.

    Idempotent; called when the database module is imported so every
    session the application creates is covered.
    """
    if not event.contains(DrumHistoryEntry, "before_update", _reject_history_update):
        event.listen(DrumHistoryEntry, "before_update", _reject_history_update)
    if not event.contains(DrumHistoryEntry, "before_delete", _reject_history_delete):
        event.listen(DrumHistoryEntry, "before_delete", _reject_history_delete)
