"""Tests for monthly usage rollups, sheet sync totals and month reset."""

from datetime import datetime

import pytest

from drumledger.models import Drum, DrumUsage, InventoryItem, MonthlyUsageSummary
from drumledger.services import consumption_service, monthly_usage_service
from drumledger.services.exceptions import (
    InvalidQuantity,
    InventoryItemNotFound,
    ValidationError,
)

MARCH = datetime(2025, 3, 10, 14, 30)
APRIL = datetime(2025, 4, 2, 8, 0)


def _row(test_db, item_id, month, year):
    session = test_db()
    session.expire_all()
    return (
        session.query(MonthlyUsageSummary)
        .filter_by(item_id=item_id, month=month, year=year)
        .first()
    )


class TestRollupFromConsumption:
    def test_usage_counts_toward_its_month(self, test_db, drum, cable_item):
        consumption_service.apply_usage("line1", drum.id, 500, usage_date=MARCH)

        row = _row(test_db, cable_item.id, 3, 2025)
        assert row.total_used == 525
        assert row.period == "2025-03"

    def test_reassignment_moves_usage_between_months(self, test_db, drum, cable_item):
        consumption_service.apply_usage("line1", drum.id, 500, usage_date=MARCH)
        consumption_service.apply_usage("line1", drum.id, 300, usage_date=APRIL)

        assert _row(test_db, cable_item.id, 3, 2025).total_used == 0
        assert _row(test_db, cable_item.id, 4, 2025).total_used == 315

    def test_clearing_reverses_rollup(self, test_db, drum, cable_item):
        consumption_service.apply_usage("line1", drum.id, 100, usage_date=MARCH)
        consumption_service.apply_usage("line2", drum.id, 200, usage_date=MARCH)
        consumption_service.apply_usage("line1", None, 0)

        assert _row(test_db, cable_item.id, 3, 2025).total_used == 210

    def test_drum_without_item_has_no_rollup(self, test_db):
        from drumledger.services import drum_registry_service

        loose, _ = drum_registry_service.find_or_create("DR-900")
        consumption_service.apply_usage("line1", loose.id, 100, usage_date=MARCH)

        session = test_db()
        assert session.query(MonthlyUsageSummary).count() == 0


class TestAddUsage:
    def test_never_below_zero(self, test_db, cable_item):
        monthly_usage_service.add_usage(cable_item.id, MARCH, 50)
        row = monthly_usage_service.add_usage(cable_item.id, MARCH, -80)
        assert row.total_used == 0

    def test_reversal_without_row_creates_nothing(self, test_db, cable_item):
        assert monthly_usage_service.add_usage(cable_item.id, MARCH, -80) is None
        assert _row(test_db, cable_item.id, 3, 2025) is None

    def test_rejects_non_finite(self, test_db, cable_item):
        with pytest.raises(InvalidQuantity):
            monthly_usage_service.add_usage(cable_item.id, MARCH, float("nan"))


class TestSyncMonthlyTotal:
    def test_only_increase_is_deducted(self, test_db, cable_item, reload):
        first = monthly_usage_service.sync_monthly_total(cable_item.id, 3, 2025, 100)
        assert first["created"] is True
        assert first["inventory_delta"] == 100
        assert reload(InventoryItem, cable_item.id).current_stock == 1900

        repeat = monthly_usage_service.sync_monthly_total(cable_item.id, 3, 2025, 100)
        assert repeat["inventory_delta"] == 0
        assert reload(InventoryItem, cable_item.id).current_stock == 1900

        monthly_usage_service.sync_monthly_total(cable_item.id, 3, 2025, 150)
        assert reload(InventoryItem, cable_item.id).current_stock == 1850

    def test_decrease_is_recorded_but_not_refunded(self, test_db, cable_item, reload):
        monthly_usage_service.sync_monthly_total(cable_item.id, 3, 2025, 150)
        result = monthly_usage_service.sync_monthly_total(
            cable_item.id, 3, 2025, 120, sync_connection_id="sync-7"
        )

        assert result["inventory_delta"] == -30
        assert result["stock_deducted"] == 0
        assert reload(InventoryItem, cable_item.id).current_stock == 1850
        row = _row(test_db, cable_item.id, 3, 2025)
        assert row.total_used == 120
        assert row.sync_connection_id == "sync-7"

    def test_stock_floored_at_zero(self, test_db, cable_item, reload):
        result = monthly_usage_service.sync_monthly_total(cable_item.id, 3, 2025, 5000)
        assert result["stock_deducted"] == 2000
        assert reload(InventoryItem, cable_item.id).current_stock == 0

    def test_unknown_item(self, test_db):
        with pytest.raises(InventoryItemNotFound):
            monthly_usage_service.sync_monthly_total(404, 3, 2025, 10)

    @pytest.mark.parametrize("month, year", [(0, 2025), (13, 2025), (6, 1999), (6, 2101)])
    def test_period_validated(self, test_db, cable_item, month, year):
        with pytest.raises(ValidationError):
            monthly_usage_service.sync_monthly_total(cable_item.id, month, year, 10)


class TestApplySyncTotals:
    def test_creates_updates_and_skips(self, test_db, cable_item, reload):
        result = monthly_usage_service.apply_sync_totals(
            {"RJ45 Connector": 20, "Cable Ties": 0, "Drop Wire Cable": 30},
            3,
            2025,
            sync_connection_id="sync-1",
        )

        assert result == {
            "items_updated": 1,
            "items_created": 1,
            "usage_records_updated": 2,
            "errors": [],
        }
        assert reload(InventoryItem, cable_item.id).current_stock == 1970

        session = test_db()
        connector = session.query(InventoryItem).filter_by(name="RJ45 Connector").one()
        assert connector.current_stock == 980

    def test_errors_are_collected(self, test_db, cable_item):
        result = monthly_usage_service.apply_sync_totals(
            {"Drop Wire Cable": 30, "Broken": "lots"}, 3, 2025
        )

        assert result["usage_records_updated"] == 1
        assert len(result["errors"]) == 1
        assert result["errors"][0].startswith("Failed to update Broken")


class TestReporting:
    def test_monthly_summary_ordered_by_total(self, test_db, cable_item):
        from drumledger.services import drum_registry_service

        connector, _ = drum_registry_service.find_or_create_item("RJ45 Connector", current_stock=500)
        monthly_usage_service.sync_monthly_total(cable_item.id, 3, 2025, 40)
        monthly_usage_service.sync_monthly_total(connector.id, 3, 2025, 90)
        monthly_usage_service.sync_monthly_total(connector.id, 4, 2025, 5)

        summary = monthly_usage_service.get_monthly_summary(3, 2025)

        assert [row["item_name"] for row in summary] == ["RJ45 Connector", "Drop Wire Cable"]
        assert summary[0]["total_used"] == 90
        assert summary[0]["current_stock"] == 405
        assert summary[1]["unit"] == "m"

    def test_all_usage_grouped_newest_first(self, test_db, cable_item):
        monthly_usage_service.sync_monthly_total(cable_item.id, 12, 2024, 10)
        monthly_usage_service.sync_monthly_total(cable_item.id, 2, 2025, 20)

        periods = monthly_usage_service.get_all_monthly_usage()

        assert [p["period"] for p in periods] == ["2025-02", "2024-12"]
        assert periods[0]["items"][0]["total_used"] == 20

    def test_summary_validates_period(self, test_db):
        with pytest.raises(ValidationError):
            monthly_usage_service.get_monthly_summary(13, 2025)


class TestResetMonth:
    def test_restores_stock_and_deletes_rows(self, test_db, drum, cable_item, reload):
        consumption_service.apply_usage("line1", drum.id, 500, usage_date=MARCH)
        assert reload(InventoryItem, cable_item.id).current_stock == 1475

        result = monthly_usage_service.reset_month(3, 2025)

        assert result == {"items_reset": 1, "inventory_restored": 1, "quantity_restored": 525}
        assert reload(InventoryItem, cable_item.id).current_stock == 2000
        assert _row(test_db, cable_item.id, 3, 2025) is None

    def test_leaves_drum_ledger_until_reconciled(self, test_db, drum, cable_item, reload):
        consumption_service.apply_usage("line1", drum.id, 500, usage_date=MARCH)
        monthly_usage_service.reset_month(3, 2025)

        # Drum side is untouched by the reset
        assert reload(Drum, drum.id).current_quantity == 1475
        session = test_db()
        assert session.query(DrumUsage).count() == 1

        consumption_service.recalculate_all()
        assert reload(InventoryItem, cable_item.id).current_stock == 1475

    def test_other_months_untouched(self, test_db, drum, cable_item):
        consumption_service.apply_usage("line1", drum.id, 100, usage_date=MARCH)
        consumption_service.apply_usage("line2", drum.id, 200, usage_date=APRIL)

        monthly_usage_service.reset_month(3, 2025)

        assert _row(test_db, cable_item.id, 4, 2025).total_used == 210

    def test_empty_month(self, test_db):
        assert monthly_usage_service.reset_month(1, 2030) == {
            "items_reset": 0,
            "inventory_restored": 0,
            "quantity_restored": 0.0,
        }

    def test_validates_period(self, test_db):
        with pytest.raises(ValidationError):
            monthly_usage_service.reset_month(1, 1999)
