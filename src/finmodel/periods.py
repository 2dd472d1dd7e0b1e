# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for FinModel.

This module defines a Period value object, the predefined reporting windows
(month to date, last month, year to date, last twelve months) and the
window filter applied to transactions before windowed KPIs are computed.

No period at all (None) means "all data".
"""

import numbers
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

import pandas as pd

from .io import EXCEL_EPOCH, EXCEL_SERIAL_MAX, EXCEL_SERIAL_THRESHOLD, is_blank

PERIOD_CHOICES = ("all", "mtd", "last-month", "ytd", "ltm")

# Open-ended custom periods start here.
EARLIEST_DATE = date(1900, 1, 1)


@dataclass
class Period:
    """Represents a reporting period with a human-readable label."""

    start: date
    end: date
    label: str


def _today() -> date:
    """Return today's date as a date object (isolated for easier testing)."""
    return datetime.today().date()


def period_mtd() -> Period:
    """Month to date."""
    today = _today()
    return Period(start=today.replace(day=1), end=today, label="Month to date")


def period_last_month() -> Period:
    """Full previous calendar month."""
    today = _today()
    year, month = (today.year - 1, 12) if today.month == 1 else (today.year, today.month - 1)
    return Period(
        start=date(year, month, 1),
        end=date(year, month, monthrange(year, month)[1]),
        label="Last month",
    )


def period_ytd() -> Period:
    """Calendar year to date."""
    today = _today()
    return Period(start=date(today.year, 1, 1), end=today, label="Year to date")


def period_ltm(months: int = 12) -> Period:
    """
    Trailing window of ``months`` months ending today.

    The window starts the day after the same date ``months`` months ago, so
    a 12-month window ending 2025-03-15 starts on 2024-03-16.
    """
    today = _today()
    start = (pd.Timestamp(today) - pd.DateOffset(months=months) + pd.Timedelta(days=1)).date()
    return Period(start=start, end=today, label=f"Last {months} months")


def determine_period_from_args(args, ltm_months: int = 12) -> Optional[Period]:
    """
    Determine the reporting period to use based on CLI args.

    Priority (highest to lowest):

        1. args.period (all, mtd, last-month, ytd, ltm)
        2. args.from_date / args.to_date (custom period)
        3. None, meaning all data
    """
    # 1) Predefined period wins over everything else
    if getattr(args, "period", None):
        p = args.period
        if p == "all":
            return None
        if p == "mtd":
            return period_mtd()
        if p == "last-month":
            return period_last_month()
        if p == "ytd":
            return period_ytd()
        if p == "ltm":
            return period_ltm(ltm_months)
        raise ValueError(f"Unknown period: {p!r}")

    # 2) Custom from/to dates
    from_raw: Optional[str] = getattr(args, "from_date", None)
    to_raw: Optional[str] = getattr(args, "to_date", None)

    if from_raw or to_raw:
        start = date.fromisoformat(from_raw) if from_raw else EARLIEST_DATE
        end = date.fromisoformat(to_raw) if to_raw else _today()

        if end < start:
            raise ValueError("Custom period end date cannot be before start date.")

        label = f"Custom period ({from_raw or 'start'} → {end})"
        return Period(start=start, end=end, label=label)

    return None


def _parse_date_cell(value) -> pd.Timestamp:
    if is_blank(value) or isinstance(value, bool):
        return pd.NaT

    try:
        if isinstance(value, numbers.Real):
            # Excel serial day numbers; other numbers are not dates.
            if not EXCEL_SERIAL_THRESHOLD < value <= EXCEL_SERIAL_MAX:
                return pd.NaT
            parsed = pd.Timestamp(EXCEL_EPOCH) + pd.Timedelta(days=int(value))
        elif isinstance(value, (datetime, date)):
            parsed = pd.Timestamp(value)
        else:
            parsed = pd.to_datetime(str(value).strip(), errors="coerce")
        if pd.isna(parsed):
            return pd.NaT
        # Offsets are dropped so the local calendar day is kept.
        if parsed.tzinfo is not None:
            parsed = parsed.tz_localize(None)
        return parsed.as_unit("ns")
    except (ValueError, TypeError, OverflowError):
        # Outside the nanosecond Timestamp range.
        return pd.NaT


def parse_dates(values: pd.Series) -> pd.Series:
    """
    Parse a column of date cells; unparseable values become NaT.

    Cells are parsed one by one so a column mixing naive and offset-aware
    strings, numbers and timestamps never fails as a whole.
    """
    parsed = [_parse_date_cell(v) for v in values]
    return pd.Series(pd.to_datetime(parsed), index=values.index, dtype="datetime64[ns]")


def filter_by_period(
    df: pd.DataFrame,
    period: Optional[Period],
    date_column: str = "date",
) -> pd.DataFrame:
    """
    Keep only rows whose date falls within the period (inclusive).

    Parameters
    ----------
    df:
        DataFrame with a date column. Values may be ISO strings or
        timestamps; rows whose date is missing or unparseable are excluded
        from any window.
    period:
        Reporting window, or None for all data (undated rows are kept in
        that case).
    date_column:
        Name of the date column.

    Returns
    -------
    pandas.DataFrame
        Filtered copy of ``df``.
    """
    if period is None:
        return df.copy()

    dates = parse_dates(df[date_column])
    mask = (dates >= pd.Timestamp(period.start)) & (dates <= pd.Timestamp(period.end))
    return df.loc[mask].copy()
