"""Tests for the maintenance CLI."""

from datetime import datetime

import pytest

from drumledger.models import Drum, InventoryItem
from drumledger.services import consumption_service, drum_registry_service
from drumledger.utils import maintenance_cli


@pytest.fixture(autouse=True)
def no_app_database(monkeypatch):
    """The CLI works against the test database, not the configured one."""
    monkeypatch.setattr(maintenance_cli, "initialize_app_database", lambda: None)


def test_no_command_prints_help(capsys):
    assert maintenance_cli.main([]) == 1
    assert "usage" in capsys.readouterr().out.lower()


def test_recalculate_adjusts_drifted_drum(test_db, drum, reload, capsys):
    consumption_service.apply_usage("line1", drum.id, 500)
    drum_registry_service.adjust_quantity(drum.id, 900)

    assert maintenance_cli.main(["recalculate", str(drum.id)]) == 0

    out = capsys.readouterr().out
    assert "900m -> 1475m" in out
    assert reload(Drum, drum.id).current_quantity == 1475


def test_recalculate_missing_drum(test_db, capsys):
    assert maintenance_cli.main(["recalculate", "404"]) == 1
    assert "ERROR: Drum with ID 404 not found" in capsys.readouterr().out


def test_recalculate_all(test_db, drum, second_drum, capsys):
    assert maintenance_cli.main(["recalculate-all"]) == 0
    out = capsys.readouterr().out
    assert "Processed: 2" in out
    assert "Adjusted: 0" in out


def test_reset_month(test_db, drum, cable_item, reload, capsys):
    consumption_service.apply_usage("line1", drum.id, 500, usage_date=datetime(2025, 3, 5))

    assert maintenance_cli.main(["reset-month", "3", "2025"]) == 0

    out = capsys.readouterr().out
    assert "Quantity restored: 525" in out
    assert "recalculate-all" in out
    assert reload(InventoryItem, cable_item.id).current_stock == 2000


def test_reset_month_invalid_period(test_db, capsys):
    assert maintenance_cli.main(["reset-month", "13", "2025"]) == 1
    assert "ERROR" in capsys.readouterr().out


def test_history(test_db, drum, capsys):
    consumption_service.apply_usage("line1", drum.id, 500)

    assert maintenance_cli.main(["history", "DR-001", "--limit", "5"]) == 0

    out = capsys.readouterr().out
    assert "History for drum DR-001 (2 entries)" in out
    assert "usage_added" in out
    assert "2000 -> 1475" in out


def test_history_unknown_drum(test_db, capsys):
    assert maintenance_cli.main(["history", "DR-404"]) == 1
    assert "Drum 'DR-404' not found" in capsys.readouterr().out


def test_verify_trail(test_db, drum, capsys):
    consumption_service.apply_usage("line1", drum.id, 500)
    assert maintenance_cli.main(["verify-trail", "DR-001"]) == 0

    drum_registry_service.adjust_quantity(drum.id, 10)
    assert maintenance_cli.main(["verify-trail", "DR-001"]) == 1


def test_monthly_summary(test_db, drum, capsys):
    consumption_service.apply_usage("line1", drum.id, 500, usage_date=datetime(2025, 3, 5))

    assert maintenance_cli.main(["monthly-summary", "3", "2025"]) == 0

    out = capsys.readouterr().out
    assert "Drop Wire Cable" in out
    assert "used 525 m" in out
