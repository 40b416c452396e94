"""Tests for the usage ledger service."""

from datetime import datetime, timedelta

import pytest

from drumledger.models import Drum, DrumUsage
from drumledger.services import usage_ledger_service
from drumledger.services.exceptions import (
    DrumNotFound,
    InvalidQuantity,
    UsageRecordNotFound,
    ValidationError,
)


def test_record_usage(test_db, drum):
    usage = usage_ledger_service.record_usage(drum.id, "line-1", 500, 25)

    assert usage.id is not None
    assert usage.quantity_used == 500
    assert usage.wastage_calculated == 25
    assert usage.total_deduction == 525
    assert usage.has_meter_points is False
    assert usage.usage_date is not None


def test_record_usage_never_touches_drum(test_db, drum, reload):
    usage_ledger_service.record_usage(drum.id, "line-1", 500, 25)
    assert reload(Drum, drum.id).current_quantity == 2000.0


def test_record_usage_with_points(test_db, drum):
    usage = usage_ledger_service.record_usage(
        drum.id, "line-1", 100, 0, start_point=0, end_point=105
    )
    assert usage.has_meter_points is True
    assert usage.cable_end_point == 105


def test_record_usage_missing_drum(test_db):
    with pytest.raises(DrumNotFound):
        usage_ledger_service.record_usage(404, "line-1", 10, 0)


@pytest.mark.parametrize(
    "quantity, wastage",
    [(-1, 0), (10, -1), (float("nan"), 0), (10, float("inf"))],
)
def test_record_usage_rejects_bad_quantities(test_db, drum, quantity, wastage):
    with pytest.raises(InvalidQuantity):
        usage_ledger_service.record_usage(drum.id, "line-1", quantity, wastage)


def test_record_usage_requires_line(test_db, drum):
    with pytest.raises(ValidationError):
        usage_ledger_service.record_usage(drum.id, " ", 10, 0)


def test_find_current_usage_returns_latest(test_db, drum):
    base = datetime(2025, 3, 1, 9, 0)
    usage_ledger_service.record_usage(drum.id, "line-1", 100, 5, usage_date=base)
    latest = usage_ledger_service.record_usage(
        drum.id, "line-1", 200, 10, usage_date=base + timedelta(days=1)
    )
    usage_ledger_service.record_usage(drum.id, "line-2", 50, 3, usage_date=base + timedelta(days=2))

    current = usage_ledger_service.find_current_usage("line-1")
    assert current.id == latest.id


def test_find_current_usage_breaks_ties_by_insertion(test_db, drum):
    when = datetime(2025, 3, 1, 9, 0)
    usage_ledger_service.record_usage(drum.id, "line-1", 100, 5, usage_date=when)
    second = usage_ledger_service.record_usage(drum.id, "line-1", 200, 10, usage_date=when)

    assert usage_ledger_service.find_current_usage("line-1").id == second.id


def test_find_current_usage_none(test_db):
    assert usage_ledger_service.find_current_usage("line-unknown") is None


def test_list_drum_usage_oldest_first(test_db, drum):
    base = datetime(2025, 3, 1)
    later = usage_ledger_service.record_usage(
        drum.id, "line-2", 50, 3, usage_date=base + timedelta(days=3)
    )
    earlier = usage_ledger_service.record_usage(drum.id, "line-1", 100, 5, usage_date=base)

    assert [u.id for u in usage_ledger_service.list_drum_usage(drum.id)] == [earlier.id, later.id]


def test_get_last_metered_usage(test_db, drum):
    base = datetime(2025, 3, 1)
    metered = usage_ledger_service.record_usage(
        drum.id, "line-1", 100, 0, start_point=0, end_point=100, usage_date=base
    )
    usage_ledger_service.record_usage(
        drum.id, "line-2", 50, 3, usage_date=base + timedelta(days=1)
    )

    assert usage_ledger_service.get_last_metered_usage(drum.id).id == metered.id


def test_remove_usage(test_db, drum):
    usage = usage_ledger_service.record_usage(drum.id, "line-1", 100, 5)
    usage_ledger_service.remove_usage(usage.id)

    session = test_db()
    assert session.get(DrumUsage, usage.id) is None
    with pytest.raises(UsageRecordNotFound):
        usage_ledger_service.get_usage(usage.id)


def test_remove_usage_missing(test_db):
    with pytest.raises(UsageRecordNotFound):
        usage_ledger_service.remove_usage(404)
