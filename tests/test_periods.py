from datetime import date, datetime

import pytest

from periods import add_months, local_date, resolve_period, trailing_months


def test_trailing_months_end_with_current_month() -> None:
    months = trailing_months(date(2025, 1, 20), count=3)

    assert [(p.start, p.end) for p in months] == [
        (date(2024, 11, 1), date(2024, 11, 30)),
        (date(2024, 12, 1), date(2024, 12, 31)),
        (date(2025, 1, 1), date(2025, 1, 31)),
    ]
    assert months[-1].label == "2025-01"


def test_add_months_handles_year_wrap() -> None:
    assert add_months(date(2024, 12, 15), 1) == date(2025, 1, 1)
    assert add_months(date(2025, 1, 31), -2) == date(2024, 11, 1)


def test_resolve_period_slugs() -> None:
    today = date(2024, 3, 15)

    assert resolve_period("today", None, None, today=today).start == today
    week = resolve_period("week", None, None, today=today)
    assert (week.start, week.end) == (date(2024, 3, 8), today)
    last = resolve_period("last_month", None, None, today=today)
    assert (last.start, last.end) == (date(2024, 2, 1), date(2024, 2, 29))
    month = resolve_period("this_month", None, None, today=today)
    assert (month.start, month.end) == (date(2024, 3, 1), date(2024, 3, 31))
    assert resolve_period("bogus", None, None, today=today).slug == "this_month"
    assert resolve_period(None, None, None, today=today).slug == "all"


def test_custom_period_validation() -> None:
    custom = resolve_period("custom", "2024-01-05", "2024-01-10")
    assert custom.contains(date(2024, 1, 10))
    assert not custom.contains(date(2024, 1, 11))

    with pytest.raises(ValueError):
        resolve_period("custom", "2024-01-10", None)
    with pytest.raises(ValueError):
        resolve_period("custom", "2024-01-10", "2024-01-05")


def test_local_date_converts_naive_utc() -> None:
    moment = datetime(2025, 3, 31, 19, 0)

    assert local_date(moment) == date(2025, 3, 31)
    assert local_date(moment, "Asia/Kolkata") == date(2025, 4, 1)
