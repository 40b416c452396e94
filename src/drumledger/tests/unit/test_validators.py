"""Unit tests for input validators and formatting helpers."""

import pytest

from drumledger.utils.validators import (
    format_meters,
    sanitize_drum_number,
    validate_non_negative_quantity,
    validate_period,
)


class TestValidateNonNegativeQuantity:
    @pytest.mark.parametrize("value", [0, 0.0, 12, 1685.5, "42"])
    def test_valid(self, value):
        assert validate_non_negative_quantity(value) == (True, "")

    @pytest.mark.parametrize(
        "value", [-1, -0.01, float("nan"), float("inf"), "abc", None, True]
    )
    def test_invalid(self, value):
        is_valid, message = validate_non_negative_quantity(value, "quantity_used")
        assert is_valid is False
        assert message.startswith("quantity_used")


class TestValidatePeriod:
    def test_valid(self):
        assert validate_period(3, 2025) == (True, [])

    @pytest.mark.parametrize(
        "month, year, errors",
        [(0, 2025, 1), (13, 2025, 1), (3, 1999, 1), (3, 2101, 1), (0, 1999, 2), (2.5, 2025, 1)],
    )
    def test_invalid(self, month, year, errors):
        is_valid, messages = validate_period(month, year)
        assert is_valid is False
        assert len(messages) == errors

    def test_non_numeric(self):
        is_valid, messages = validate_period("March", None)
        assert is_valid is False
        assert len(messages) == 2


def test_sanitize_drum_number():
    assert sanitize_drum_number("  DR-001 ") == "DR-001"
    assert sanitize_drum_number("   ") is None
    assert sanitize_drum_number(None) is None


@pytest.mark.parametrize(
    "value, expected",
    [(1685.0, "1685"), (1785, "1785"), (12.25, "12.25"), (1685.50, "1685.5"), (0.0, "0"), (2000.0, "2000")],
)
def test_format_meters(value, expected):
    assert format_meters(value) == expected
