"""
Drum model for physical cable drum tracking.

A drum is a discrete, depletable spool of cable identified by a
human-assigned drum number. Its quantity is only ever changed by the
consumption service, and every change is mirrored by a DrumHistoryEntry.
"""

from sqlalchemy import (
    Column,
    Integer,
    Float,
    String,
    Date,
    Text,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import DrumStatus


class Drum(BaseModel):
    """
    Drum model for cable stock tracking.

    Attributes:
        drum_number: Unique human-assigned identifier (e.g. "DR-001")
        item_id: Foreign key to the catalog InventoryItem (nullable until resolved)
        initial_quantity: Capacity when the drum was registered (meters)
        current_quantity: Cable remaining on the drum (meters, never negative)
        status: DrumStatus value
        received_date: Optional date the drum arrived
        notes: Optional free text

    Relationships:
        item: Many-to-One with InventoryItem
        usages: One-to-Many with DrumUsage
        history: One-to-Many with DrumHistoryEntry

    Note:
        Drums are never hard-deleted while usage records reference them;
        retirement goes through status.
    """

    __tablename__ = "drums"

    drum_number = Column(String(50), nullable=False, unique=True, index=True)
    item_id = Column(
        Integer,
        ForeignKey("inventory_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    initial_quantity = Column(Float, nullable=False)
    current_quantity = Column(Float, nullable=False)
    status = Column(String(20), nullable=False, default=DrumStatus.ACTIVE.value)

    received_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    item = relationship("InventoryItem", back_populates="drums")
    usages = relationship(
        "DrumUsage",
        back_populates="drum",
        order_by="DrumUsage.usage_date",
    )
    history = relationship(
        "DrumHistoryEntry",
        back_populates="drum",
        order_by="DrumHistoryEntry.id",
    )

    __table_args__ = (
        CheckConstraint("initial_quantity >= 0", name="ck_drum_initial_quantity_non_negative"),
        CheckConstraint("current_quantity >= 0", name="ck_drum_current_quantity_non_negative"),
        CheckConstraint(
            "status IN ('active', 'inactive', 'empty', 'maintenance')",
            name="ck_drum_status_valid",
        ),
        CheckConstraint("drum_number != ''", name="ck_drum_number_not_empty"),
        Index("idx_drum_status", "status"),
    )

    @property
    def is_empty(self) -> bool:
        """True when the drum holds no cable."""
        return self.current_quantity <= 0

    @property
    def quantity_consumed(self) -> float:
        """Cable removed from the drum since registration."""
        return self.initial_quantity - self.current_quantity

    @property
    def item_name(self):
        return self.item.name if self.item else None

    def __repr__(self) -> str:
        return (
            f"Drum(id={self.id}, drum_number='{self.drum_number}', "
            f"current_quantity={self.current_quantity}, status='{self.status}')"
        )

    def to_dict(self, include_relationships: bool = False) -> dict:
        result = super().to_dict(include_relationships)
        result["is_empty"] = self.is_empty
        result["quantity_consumed"] = self.quantity_consumed
        result["item_name"] = self.item_name
        return result
