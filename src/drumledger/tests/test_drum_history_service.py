"""Tests for the drum audit trail and its immutability."""

import pytest

from drumledger.models import DrumHistoryEntry
from drumledger.services import consumption_service, drum_history_service
from drumledger.services.exceptions import DrumNotFound, ImmutableRecordError


def test_history_newest_first(test_db, drum):
    consumption_service.apply_usage("line-1", drum.id, 500)
    consumption_service.apply_usage("line-2", drum.id, 100)

    history = drum_history_service.get_drum_history(drum.id)

    assert [h["action"] for h in history] == ["usage_added", "usage_added", "created"]
    assert history[0]["line_details_id"] == "line-2"
    assert history[-1]["previous_quantity"] is None


def test_history_limit(test_db, drum):
    for n in range(3):
        consumption_service.apply_usage(f"line-{n}", drum.id, 10)

    assert len(drum_history_service.get_drum_history(drum.id, limit=2)) == 2
    assert len(drum_history_service.get_drum_history(drum.id, limit=None)) == 4


def test_history_missing_drum(test_db):
    with pytest.raises(DrumNotFound):
        drum_history_service.get_drum_history(404)


def test_quantity_change_matches_pair(test_db, drum):
    consumption_service.apply_usage("line-1", drum.id, 500)
    consumption_service.apply_usage("line-1", drum.id, 300)

    for entry in drum_history_service.get_drum_history(drum.id):
        previous = entry["previous_quantity"] or 0.0
        assert entry["new_quantity"] - previous == pytest.approx(entry["quantity_change"])


def test_replay_matches_current_quantity(test_db, drum):
    consumption_service.apply_usage("line-1", drum.id, 500)
    consumption_service.apply_usage("line-1", drum.id, 300)
    consumption_service.apply_usage("line-2", drum.id, 120)
    consumption_service.apply_usage("line-2", None, 0)

    result = consumption_service.apply_usage("line-3", drum.id, 40)

    assert drum_history_service.replay_quantity(drum.id) == pytest.approx(
        result["current_quantity"]
    )
    report = drum_history_service.verify_trail(drum.id)
    assert report["consistent"] is True
    assert report["breaks"] == []


def test_verify_trail_detects_untracked_change(test_db, drum):
    from drumledger.services import drum_registry_service

    drum_registry_service.adjust_quantity(drum.id, 1200)

    report = drum_history_service.verify_trail(drum.id)
    assert report["consistent"] is False
    assert report["replayed_quantity"] == 2000.0
    assert report["current_quantity"] == 1200.0


def test_history_rows_cannot_be_updated(test_db, drum):
    session = test_db()
    entry = session.query(DrumHistoryEntry).filter_by(drum_id=drum.id).first()
    entry.notes = "tampered"

    with pytest.raises(ImmutableRecordError):
        session.flush()
    session.rollback()


def test_history_rows_cannot_be_deleted(test_db, drum):
    session = test_db()
    entry = session.query(DrumHistoryEntry).filter_by(drum_id=drum.id).first()
    session.delete(entry)

    with pytest.raises(ImmutableRecordError):
        session.flush()
    session.rollback()
