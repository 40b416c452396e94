"""
MonthlyUsageSummary model for per-item monthly consumption rollups.

One row per (item, month, year). total_used is the amount deducted from the
item's current_stock during that period, so resetting a month can put it
back.
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
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..utils.datetime_utils import utc_now, period_label

from .base import BaseModel


class MonthlyUsageSummary(BaseModel):
    """
    MonthlyUsageSummary model for monthly usage reporting.

    Attributes:
        item_id: FK to InventoryItem
        month: Calendar month (1-12)
        year: Calendar year
        total_used: Stock deducted for this item in the period
        last_synced_at: When the total last changed
        sync_connection_id: Optional reference to the sync run that last wrote it

    Relationships:
        item: Many-to-One with InventoryItem
    """

    __tablename__ = "monthly_usage_summaries"

    item_id = Column(
        Integer,
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    total_used = Column(Float, nullable=False, default=0.0)
    last_synced_at = Column(DateTime, nullable=False, default=utc_now)
    sync_connection_id = Column(String(64), nullable=True)

    item = relationship("InventoryItem", back_populates="monthly_usages")

    __table_args__ = (
        UniqueConstraint("item_id", "month", "year", name="uq_monthly_usage_item_period"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_monthly_usage_month_range"),
        CheckConstraint("total_used >= 0", name="ck_monthly_usage_total_non_negative"),
        Index("idx_monthly_usage_period", "year", "month"),
    )

    @property
    def period(self) -> str:
        return period_label(self.month, self.year)

    def __repr__(self) -> str:
        return (
            f"MonthlyUsageSummary(item_id={self.item_id}, period='{self.period}', "
            f"total_used={self.total_used})"
        )
