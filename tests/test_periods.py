from datetime import date
from types import SimpleNamespace

import pandas as pd
import pytest

import finmodel.periods as periods


@pytest.fixture
def frozen_today(monkeypatch):
    monkeypatch.setattr(periods, "_today", lambda: date(2025, 3, 15))


def test_filter_by_period_inclusive_bounds() -> None:
    """filter_by_period should keep rows with dates in [start, end]."""
    df = pd.DataFrame(
        {
            "date": ["2025-01-01", "2025-02-15", "2025-03-10", "2025-04-01", "2025-05-01", ""],
            "description": ["A", "B", "C", "D", "E", "F"],
            "amount": [10, 20, -5, -15, 30, 99],
        }
    )

    p = periods.Period(start=date(2025, 2, 1), end=date(2025, 4, 1), label="Test period")

    filtered = periods.filter_by_period(df, p)

    assert filtered["description"].tolist() == ["B", "C", "D"]


def test_filter_by_period_none_keeps_everything() -> None:
    df = pd.DataFrame({"date": ["2025-01-01", "not a date"], "amount": [1, 2]})

    filtered = periods.filter_by_period(df, None)

    assert len(filtered) == 2
    assert filtered is not df


def test_predefined_windows(frozen_today) -> None:
    mtd = periods.period_mtd()
    assert (mtd.start, mtd.end) == (date(2025, 3, 1), date(2025, 3, 15))

    last = periods.period_last_month()
    assert (last.start, last.end) == (date(2025, 2, 1), date(2025, 2, 28))

    ytd = periods.period_ytd()
    assert (ytd.start, ytd.end) == (date(2025, 1, 1), date(2025, 3, 15))

    ltm = periods.period_ltm()
    assert (ltm.start, ltm.end) == (date(2024, 3, 16), date(2025, 3, 15))
    assert ltm.label == "Last 12 months"


def test_last_month_in_january(monkeypatch) -> None:
    monkeypatch.setattr(periods, "_today", lambda: date(2025, 1, 10))

    last = periods.period_last_month()

    assert (last.start, last.end) == (date(2024, 12, 1), date(2024, 12, 31))


@pytest.mark.parametrize(
    "period, expected_start",
    [
        ("mtd", date(2025, 3, 1)),
        ("last-month", date(2025, 2, 1)),
        ("ytd", date(2025, 1, 1)),
        ("ltm", date(2024, 3, 16)),
    ],
)
def test_determine_period_from_args_predefined(frozen_today, period, expected_start) -> None:
    args = SimpleNamespace(period=period, from_date="2020-01-01", to_date=None)

    p = periods.determine_period_from_args(args)

    assert p.start == expected_start


def test_determine_period_from_args_all_and_nothing() -> None:
    assert periods.determine_period_from_args(SimpleNamespace(period="all")) is None
    assert periods.determine_period_from_args(SimpleNamespace()) is None


def test_determine_period_from_args_custom(frozen_today) -> None:
    p = periods.determine_period_from_args(
        SimpleNamespace(period=None, from_date="2025-01-01", to_date="2025-01-31")
    )
    assert (p.start, p.end) == (date(2025, 1, 1), date(2025, 1, 31))
    assert p.label == "Custom period (2025-01-01 → 2025-01-31)"

    open_start = periods.determine_period_from_args(
        SimpleNamespace(period=None, from_date=None, to_date="2025-01-31")
    )
    assert open_start.start == periods.EARLIEST_DATE

    open_end = periods.determine_period_from_args(
        SimpleNamespace(period=None, from_date="2025-01-01", to_date=None)
    )
    assert open_end.end == date(2025, 3, 15)


def test_determine_period_from_args_errors() -> None:
    with pytest.raises(ValueError):
        periods.determine_period_from_args(
            SimpleNamespace(period=None, from_date="2025-02-01", to_date="2025-01-01")
        )
    with pytest.raises(ValueError):
        periods.determine_period_from_args(SimpleNamespace(period="quarter"))


def test_parse_dates_mixed_cells() -> None:
    """Offsets are dropped, serials become dates and other numbers become NaT."""
    values = pd.Series(
        ["2024-01-15", "2024-01-16T10:00:00+02:00", 45306, 20240115, None, "soon", date(2024, 2, 1)]
    )

    parsed = periods.parse_dates(values)

    assert str(parsed.dtype) == "datetime64[ns]"
    assert parsed.iloc[0] == pd.Timestamp("2024-01-15")
    assert parsed.iloc[1] == pd.Timestamp("2024-01-16 10:00")
    assert parsed.iloc[2] == pd.Timestamp("2024-01-15")
    assert parsed.iloc[3:6].isna().all()
    assert parsed.iloc[6] == pd.Timestamp("2024-02-01")


def test_filter_by_period_mixed_timezones() -> None:
    df = pd.DataFrame({"date": ["2025-02-01", "2025-02-02T08:00:00+01:00", "2025-05-01"], "amount": [1, 2, 3]})
    p = periods.Period(start=date(2025, 2, 1), end=date(2025, 2, 28), label="February")

    filtered = periods.filter_by_period(df, p)

    assert filtered["amount"].tolist() == [1, 2]
