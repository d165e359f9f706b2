from decimal import Decimal

import pytest

from errors import Err, ErrorKind, Ok
from money import format_inr, parse_amount


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("₹1,23,456.50", 12_345_650),
        ("Rs. 250", 25_000),
        ("INR 99.99", 9_999),
        (1000, 100_000),
        (10.005, 1_001),
        (Decimal("0.01"), 1),
        ("  42  ", 4_200),
    ],
)
def test_parse_amount_accepts_common_forms(raw, expected) -> None:
    assert parse_amount(raw) == Ok(expected)


@pytest.mark.parametrize(
    "raw, message",
    [
        (None, "Amount is required"),
        ("", "Amount is required"),
        ("₹", "Amount is required"),
        (True, "Amount is required"),
        ("abc", "Amount must be a number"),
        ("NaN", "Amount must be a number"),
        ("0", "Amount must be a positive number"),
        ("-5", "Amount must be a positive number"),
        ("0.004", "Amount must be a positive number"),
    ],
)
def test_parse_amount_rejects_bad_input(raw, message) -> None:
    result = parse_amount(raw)

    assert isinstance(result, Err)
    assert result.kind == ErrorKind.invalid_input
    assert result.message == message


def test_format_inr_uses_lakh_grouping() -> None:
    assert format_inr(123_456_789) == "₹12,34,567.89"
    assert format_inr(10_000_000_000) == "₹10,00,00,000.00"
    assert format_inr(99_900) == "₹999.00"
    assert format_inr(0) == "₹0.00"


def test_format_inr_variants() -> None:
    assert format_inr(-150_050) == "-₹1,500.50"
    assert format_inr(150_050, include_paise=False) == "₹1,501"
    assert format_inr(150_049, include_paise=False) == "₹1,500"
    assert format_inr(12_345_600, symbol=None) == "1,23,456.00"
