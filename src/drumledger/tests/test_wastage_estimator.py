"""Tests for the wastage estimator."""

import math

import pytest

from drumledger.services.wastage_estimator import (
    HeuristicUsage,
    MeteredUsage,
    analyze_segments,
    estimate,
    heuristic_wastage,
    usage_input_from_record,
    validate_manual_wastage,
    wastage_for,
)


class _Record:
    """Stand-in for a DrumUsage row."""

    def __init__(self, quantity_used, wastage_calculated=0.0, start=None, end=None):
        self.quantity_used = quantity_used
        self.wastage_calculated = wastage_calculated
        self.cable_start_point = start
        self.cable_end_point = end
        self.usage_date = None


class TestHeuristicWastage:
    @pytest.mark.parametrize(
        "quantity, expected",
        [(500, 25.0), (300, 15.0), (1700, 85.0), (0, 0.0), (10, 1.0), (30, 2.0)],
    )
    def test_five_percent_rounded(self, quantity, expected):
        assert heuristic_wastage(quantity) == expected

    def test_rounds_half_up(self):
        # 0.05 * 50 = 2.5
        assert heuristic_wastage(50) == 3.0
        # 0.05 * 70 = 3.5
        assert heuristic_wastage(70) == 4.0

    def test_dirty_input_is_zero(self):
        assert heuristic_wastage(-100) == 0.0
        assert heuristic_wastage(float("nan")) == 0.0


class TestUsageInput:
    def test_record_with_points_is_metered(self):
        usage = usage_input_from_record(_Record(100, 5, start=0, end=110))
        assert isinstance(usage, MeteredUsage)
        assert usage.physical_length == 110

    def test_record_without_points_is_heuristic(self):
        usage = usage_input_from_record(_Record(100, 5))
        assert isinstance(usage, HeuristicUsage)

    def test_record_with_one_point_is_heuristic(self):
        assert isinstance(usage_input_from_record(_Record(100, 5, start=10)), HeuristicUsage)

    def test_reversed_readings_measure_the_same_length(self):
        usage = MeteredUsage(quantity_used=100, wastage_recorded=0, start_point=500, end_point=400)
        assert usage.physical_length == 100


class TestWastageFor:
    def test_heuristic_trusts_recorded(self):
        assert wastage_for(HeuristicUsage(quantity_used=500, wastage_recorded=25)) == 25

    def test_metered_excess_beyond_recorded(self):
        usage = MeteredUsage(quantity_used=100, wastage_recorded=5, start_point=0, end_point=120)
        assert wastage_for(usage) == 20

    def test_metered_recorded_covers_excess(self):
        usage = MeteredUsage(quantity_used=100, wastage_recorded=30, start_point=0, end_point=120)
        assert wastage_for(usage) == 30


class TestEstimate:
    def test_empty_history_is_full_capacity(self):
        result = estimate([], 2000)
        assert result.calculated_current_quantity == 2000
        assert result.usage_count == 0
        assert result.total_wastage == 0

    def test_heuristic_history(self):
        history = [_Record(300, 15), _Record(500, 25)]
        result = estimate(history, 2000, "active")
        assert result.calculated_current_quantity == 1160
        assert result.total_used == 800
        assert result.total_wastage == 40
        assert result.usage_count == 2

    def test_metered_history(self):
        history = [_Record(100, 0, start=0, end=110), _Record(200, 0, start=110, end=310)]
        result = estimate(history, 1000, "active")
        assert result.total_used == 300
        assert result.total_wastage == 10
        assert result.calculated_current_quantity == 690

    def test_never_negative(self):
        result = estimate([_Record(1500, 100), _Record(800, 40)], 2000, "active")
        assert result.calculated_current_quantity == 0

    def test_dirty_values_are_clamped(self):
        history = [_Record(-50, float("nan")), _Record(100, -5), _Record(None, None)]
        result = estimate(history, 1000, "active")
        assert result.total_used == 100
        assert result.total_wastage == 0
        assert result.calculated_current_quantity == 900
        assert math.isfinite(result.calculated_current_quantity)

    def test_stub_on_empty_drum_is_written_off(self):
        result = estimate([_Record(1900, 95)], 2000, "empty")
        assert result.calculated_current_quantity == 0
        assert result.written_off == 5
        assert result.total_wastage == 100

    def test_stub_on_inactive_drum_is_written_off(self):
        result = estimate([_Record(1900, 92)], 2000, "inactive")
        assert result.calculated_current_quantity == 0
        assert result.written_off == 8

    def test_stub_on_active_drum_is_kept(self):
        result = estimate([_Record(1900, 95)], 2000, "active")
        assert result.calculated_current_quantity == 5
        assert result.written_off == 0

    def test_large_remainder_on_empty_drum_is_kept(self):
        result = estimate([_Record(500, 25)], 2000, "empty")
        assert result.calculated_current_quantity == 1475
        assert result.written_off == 0

    def test_deterministic(self):
        history = [_Record(300, 15), _Record(100, 0, start=0, end=120)]
        assert estimate(history, 2000, "active") == estimate(history, 2000, "active")


class TestAnalyzeSegments:
    def test_merges_overlaps_and_reports_gaps(self):
        history = [
            _Record(100, start=0, end=100),
            _Record(60, start=80, end=140),
            _Record(50, start=200, end=250),
            _Record(40),  # no readings, ignored
        ]
        result = analyze_segments(history, 1000)
        assert result.used_segments == [(0, 140), (200, 250)]
        assert result.gap_segments == [(140, 200)]
        assert result.total_metered == 190
        assert result.total_gap == 60
        assert result.highest_point == 250
        assert result.remaining_cable == 750

    def test_no_metered_usage(self):
        result = analyze_segments([_Record(40)], 500)
        assert result.used_segments == []
        assert result.remaining_cable == 500


class TestValidateManualWastage:
    def test_negative_rejected(self):
        result = validate_manual_wastage(-1, 100, 2000)
        assert not result.is_valid

    def test_capped_at_remaining_capacity(self):
        result = validate_manual_wastage(500, 1800, 2000)
        assert not result.is_valid
        assert result.adjusted_value == 200

    def test_high_wastage_warns(self):
        result = validate_manual_wastage(500, 100, 2000)
        assert result.is_valid
        assert "Warning" in result.message

    def test_normal_wastage_passes(self):
        result = validate_manual_wastage(50, 100, 2000)
        assert result.is_valid
        assert result.message is None
