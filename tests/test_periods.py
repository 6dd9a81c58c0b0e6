from datetime import date

import pytest

from periods import add_months, is_last_day_of_month, month_key, resolve_period


def test_add_months_snaps_to_month_end() -> None:
    assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2026, 12, 15), 1) == date(2027, 1, 15)
    assert add_months(date(2026, 3, 31), -1) == date(2026, 2, 28)


def test_month_helpers() -> None:
    assert month_key(date(2026, 3, 9)) == "2026-03"
    assert is_last_day_of_month(date(2026, 2, 28))
    assert not is_last_day_of_month(date(2024, 2, 28))


def test_resolve_period() -> None:
    today = date(2026, 3, 10)
    assert resolve_period(None, None, None, today=today).slug == "all"
    assert resolve_period("this_month", None, None, today=today).start == date(2026, 3, 1)
    last = resolve_period("last_month", None, None, today=today)
    assert (last.start, last.end) == (date(2026, 2, 1), date(2026, 2, 28))
    custom = resolve_period("custom", "2026-01-01", "2026-01-31", today=today)
    assert custom.end == date(2026, 1, 31)
    with pytest.raises(ValueError):
        resolve_period("custom", "2026-02-01", "2026-01-01", today=today)
