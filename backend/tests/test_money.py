"""
Tests for decimal-string <-> minor-unit conversion
"""

from decimal import Decimal

import pytest

from wallet_engine.services.errors import InvalidAmountError
from wallet_engine.utils.money import apply_rate, format_amount, from_minor_units, to_minor_units


@pytest.mark.parametrize(
    "value, expected",
    [
        ("100.00", 10000),
        ("0.01", 1),
        (" 12.5 ", 1250),
        (Decimal("100.5"), 10050),
        (100, 10000),
    ],
)
def test_to_minor_units(value, expected):
    assert to_minor_units(value) == expected


@pytest.mark.parametrize("value", ["1.005", "abc", "0", "-5.00", "NaN", "Infinity", "", "100.000000000000000000000000000001"])
def test_to_minor_units_rejects_invalid(value):
    with pytest.raises(InvalidAmountError):
        to_minor_units(value)


def test_floats_are_never_authoritative():
    with pytest.raises(InvalidAmountError) as exc_info:
        to_minor_units(100.0)
    assert "floating-point" in exc_info.value.message


def test_booleans_rejected():
    with pytest.raises(InvalidAmountError):
        to_minor_units(True)


def test_zero_allowed_when_requested():
    assert to_minor_units("0.00", allow_zero=True) == 0


def test_format_amount():
    assert format_amount(13500) == "135.00"
    assert format_amount(-15000) == "-150.00"
    assert format_amount(1) == "0.01"
    assert from_minor_units(10050) == Decimal("100.50")


def test_apply_rate_rounds_half_up():
    assert apply_rate(15000, Decimal("0.10")) == 1500
    assert apply_rate(15000, Decimal("0.025")) == 375
    # 101 * 0.025 = 2.525 -> 3
    assert apply_rate(101, Decimal("0.025")) == 3
    assert apply_rate(100, Decimal("0")) == 0


def test_no_drift_across_many_small_amounts():
    total = sum(to_minor_units("0.10") for _ in range(1000))
    assert total == 10000
    assert format_amount(total) == "100.00"


@pytest.mark.parametrize("value", ["1000000000.01", "1000000000000000000", "1e40", "1e999999999"])
def test_to_minor_units_rejects_amounts_above_maximum(value):
    with pytest.raises(InvalidAmountError) as exc_info:
        to_minor_units(value)
    assert exc_info.value.details["max_amount"] == "1000000000.00"


def test_maximum_amount_accepted():
    assert to_minor_units("1000000000.00") == 100000000000


def test_maximum_amount_capped_by_storage(monkeypatch):
    from wallet_engine.infrastructure.settings import get_settings
    from wallet_engine.utils.money import STORAGE_MAX_MINOR_UNITS, max_amount_minor_units

    monkeypatch.setattr(get_settings(), "MAX_AMOUNT", Decimal("1e30"))
    assert max_amount_minor_units() == STORAGE_MAX_MINOR_UNITS
    with pytest.raises(InvalidAmountError):
        to_minor_units("100000000000000000000")
