"""
DrumHistoryEntry model for the drum audit trail.

This module contains the DrumHistoryEntry model which provides an
immutable, append-only record of every quantity or status change applied
to a drum. Replaying a drum's entries in order reconstructs its quantity
timeline.
"""

from sqlalchemy import (
    Column,
    Integer,
    Float,
    String,
    Text,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import HistoryAction


class DrumHistoryEntry(BaseModel):
    """
    DrumHistoryEntry model for immutable drum audit trail.

    Attributes:
        drum_id: FK to the Drum that changed
        action: HistoryAction value
        previous_quantity: Quantity before the change (None for 'created')
        new_quantity: Quantity after the change
        quantity_change: Signed delta, always new_quantity - previous_quantity
        previous_status: Status before the change (None for 'created')
        new_status: Status after the change
        line_details_id: Optional causal reference to an installation line
        sync_connection_id: Optional causal reference to a sync/import run
        notes: Free-text explanation

    Relationships:
        drum: The Drum this entry belongs to

    Note:
        Records are immutable after creation. Update and delete attempts
        through the ORM raise ImmutableRecordError (see
        services/immutability.py).
    """

    __tablename__ = "drum_history"

    drum_id = Column(
        Integer,
        ForeignKey("drums.id", ondelete="RESTRICT"),
        nullable=False,
    )

    action = Column(String(30), nullable=False)
    previous_quantity = Column(Float, nullable=True)
    new_quantity = Column(Float, nullable=False)
    quantity_change = Column(Float, nullable=False)
    previous_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)

    line_details_id = Column(String(64), nullable=True)
    sync_connection_id = Column(String(64), nullable=True)
    notes = Column(Text, nullable=True)

    drum = relationship("Drum", back_populates="history")

    __table_args__ = (
        Index("idx_drum_history_drum", "drum_id", "id"),
        Index("idx_drum_history_action", "action"),
        Index("idx_drum_history_line", "line_details_id"),
        CheckConstraint(
            "action IN ('created', 'usage_added', 'quantity_adjusted', 'status_changed')",
            name="ck_drum_history_action_valid",
        ),
    )

    @property
    def is_creation(self) -> bool:
        return self.action == HistoryAction.CREATED.value

    def __repr__(self) -> str:
        return (
            f"DrumHistoryEntry(id={self.id}, drum_id={self.drum_id}, "
            f"action='{self.action}', change={self.quantity_change})"
        )
