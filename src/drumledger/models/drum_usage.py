"""
DrumUsage model for the usage ledger.

Each record is one consumption event: cable taken from one drum for one
installation line. Superseded records are hard-deleted by the consumption
service after their deduction has been restored.
"""

from sqlalchemy import (
    Column,
    Integer,
    Float,
    String,
    DateTime,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from ..utils.datetime_utils import utc_now

from .base import BaseModel


class DrumUsage(BaseModel):
    """
    DrumUsage model for cable consumption events.

    Attributes:
        drum_id: Foreign key to Drum
        line_details_id: External reference to the installation line
        quantity_used: Cable delivered to the line (meters)
        wastage_calculated: Cable lost to splicing/slack attributed to this event
        cable_start_point: Optional raw meter reading at the start of the pull
        cable_end_point: Optional raw meter reading at the end of the pull
        usage_date: When the cable was used (ordering and monthly bucketing)

    Relationships:
        drum: Many-to-One with Drum
    """

    __tablename__ = "drum_usages"

    drum_id = Column(
        Integer,
        ForeignKey("drums.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    line_details_id = Column(String(64), nullable=False, index=True)

    quantity_used = Column(Float, nullable=False)
    wastage_calculated = Column(Float, nullable=False, default=0.0)

    cable_start_point = Column(Float, nullable=True)
    cable_end_point = Column(Float, nullable=True)

    usage_date = Column(DateTime, nullable=False, default=utc_now, index=True)

    drum = relationship("Drum", back_populates="usages")

    __table_args__ = (
        CheckConstraint("quantity_used >= 0", name="ck_drum_usage_quantity_non_negative"),
        CheckConstraint("wastage_calculated >= 0", name="ck_drum_usage_wastage_non_negative"),
        Index("idx_drum_usage_line_date", "line_details_id", "usage_date"),
    )

    @property
    def total_deduction(self) -> float:
        """Quantity this record removed from its drum (used + wastage)."""
        return (self.quantity_used or 0.0) + (self.wastage_calculated or 0.0)

    @property
    def has_meter_points(self) -> bool:
        """True when both raw meter readings were captured."""
        return self.cable_start_point is not None and self.cable_end_point is not None

    def __repr__(self) -> str:
        return (
            f"DrumUsage(id={self.id}, drum_id={self.drum_id}, "
            f"line_details_id='{self.line_details_id}', "
            f"quantity_used={self.quantity_used}, wastage={self.wastage_calculated})"
        )

    def to_dict(self, include_relationships: bool = False) -> dict:
        result = super().to_dict(include_relationships)
        result["total_deduction"] = self.total_deduction
        return result
