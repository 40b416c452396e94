"""
InventoryItem model for the SKU-level catalog.

Each catalog item (e.g. "Drop Wire Cable") carries an aggregate
current_stock that the consumption service keeps in step with every
drum deduction and restoration for that item.
"""

from sqlalchemy import Column, String, Float, Text, CheckConstraint, Index
from sqlalchemy.orm import relationship

from .base import BaseModel


class InventoryItem(BaseModel):
    """
    Catalog entry for a stocked material.

    Attributes:
        name: Unique display name of the SKU
        unit: Unit that current_stock is expressed in (meters for cable)
        current_stock: Aggregate stock on hand, never negative
        drum_size: Nominal capacity of one drum of this item (cable only)
        reorder_level: Optional stock level that should trigger a reorder
        description: Optional free text

    Relationships:
        drums: One-to-Many with Drum
        monthly_usages: One-to-Many with MonthlyUsageSummary
    """

    __tablename__ = "inventory_items"

    name = Column(String(200), nullable=False, unique=True, index=True)
    unit = Column(String(20), nullable=False, default="m")
    current_stock = Column(Float, nullable=False, default=0.0)
    drum_size = Column(Float, nullable=True)
    reorder_level = Column(Float, nullable=True)
    description = Column(Text, nullable=True)

    drums = relationship("Drum", back_populates="item")
    monthly_usages = relationship(
        "MonthlyUsageSummary",
        back_populates="item",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_inventory_item_stock_non_negative"),
        CheckConstraint(
            "drum_size IS NULL OR drum_size > 0",
            name="ck_inventory_item_drum_size_positive",
        ),
        Index("idx_inventory_item_name", "name"),
    )

    @property
    def needs_reorder(self) -> bool:
        """True when a reorder level is set and stock has fallen to it."""
        if self.reorder_level is None:
            return False
        return self.current_stock <= self.reorder_level

    def __repr__(self) -> str:
        return (
            f"InventoryItem(id={self.id}, name='{self.name}', "
            f"current_stock={self.current_stock})"
        )
