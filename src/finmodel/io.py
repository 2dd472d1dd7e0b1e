# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for FinModel.

This module turns uploaded spreadsheets into plain Python records and holds
the low-level parsing primitives shared by the detector, the normalizer and
the KPI engine.

Reading uploads
---------------
``read_table(path)`` accepts CSV and XLSX files and returns a ``RawTable``:

    - ``headers``: column names, in file order,
    - ``rows``:    one ``dict`` per data row, mapping header -> cell value.

CSV cells are kept as raw strings (no numeric or date coercion) so that
locale-specific formats such as ``1.234,56`` or ``15.01.2024`` reach the
detector untouched. The delimiter is sniffed among ``,``, ``;``, TAB and
``|`` from the header line. XLSX files are read with pandas (openpyxl
engine) and keep the native cell types (numbers, timestamps).

Parsing primitives
------------------
- ``parse_amount(value)``: tolerant numeric parser for European and US
  formatted amounts. Never raises; unparseable input yields ``0.0``.
- ``parse_date(value, date_format)``: returns an ISO ``YYYY-MM-DD`` string,
  or the original text when the value cannot be understood.
"""

import math
import numbers
import os
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from io import StringIO
from pathlib import Path
from typing import Any, Union

import pandas as pd

CSV_DELIMITERS: tuple[str, ...] = (",", ";", "\t", "|")

# Excel serial day numbers above this value are treated as dates.
EXCEL_SERIAL_THRESHOLD = 25000
# Serial of 9999-12-31, the last day Excel can represent.
EXCEL_SERIAL_MAX = 2958465
EXCEL_EPOCH = date(1899, 12, 30)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DOTTED_DATE = re.compile(r"^\d{1,2}\.\d{1,2}\.\d{4}$")
_SLASHED_DATE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
_CURRENCY_AND_SPACES = re.compile(r"[€$£¥\s]")
_NON_NUMERIC = re.compile(r"[^\d.,-]")


@dataclass
class RawTable:
    """An uploaded sheet: ordered headers plus one record per row."""

    name: str
    headers: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)


def is_blank(value: Any) -> bool:
    """True for None, NaN/NaT and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def is_iso_date(value: Any) -> bool:
    """True when ``value`` is a ``YYYY-MM-DD`` string naming a real day."""
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_amount(value: Any) -> float:
    """
    Parse a monetary amount into a float.

    Rules:
    - numbers are returned as floats (NaN and infinities become 0),
    - currency symbols and whitespace are stripped,
    - a value wrapped in parentheses is negative (accounting notation),
    - when both ``,`` and ``.`` are present, the rightmost one is the decimal
      separator and the other one the thousands separator
      (``1.234,56`` and ``1,234.56`` both give 1234.56),
    - when only ``,`` is present and the group after it has at most two
      digits, it is the decimal separator (``1,56`` -> 1.56); otherwise it
      separates thousands (``1,234`` -> 1234),
    - several ``.`` without any ``,`` are thousands separators,
    - anything that still cannot be parsed yields 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, numbers.Real):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    text = _CURRENCY_AND_SPACES.sub("", str(value))
    negative = text.startswith("(") and text.endswith(")")
    text = _NON_NUMERIC.sub("", text)
    if not text:
        return 0.0

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        parts = text.split(",")
        if len(parts) == 2 and len(parts[1]) <= 2:
            text = text.replace(",", ".")
        else:
            text = text.replace(",", "")
    elif text.count(".") > 1:
        text = text.replace(".", "")

    try:
        number = float(text)
    except ValueError:
        return 0.0

    if not math.isfinite(number):
        return 0.0
    return -abs(number) if negative else number


def parse_date(value: Any, date_format: str = "unknown") -> str:
    """
    Normalize a date cell to ``YYYY-MM-DD``.

    - date/datetime/Timestamp values are formatted directly,
    - numbers above 25000 are Excel serial day numbers (epoch 1899-12-30)
      up to the last serial Excel supports,
    - ``DD.MM.YYYY`` and ``MM/DD/YYYY`` strings are split explicitly,
    - anything else goes through pandas' generic parser (day-first when the
      detected format is ``DD-MM-YYYY``).

    Returns:
        The ISO date string, ``""`` for blank input, or the original text
        when it cannot be parsed. Callers treat a non-ISO result as invalid.
    """
    if is_blank(value):
        return ""

    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")

    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        if EXCEL_SERIAL_THRESHOLD < value <= EXCEL_SERIAL_MAX:
            return (EXCEL_EPOCH + timedelta(days=int(value))).isoformat()
        return str(value)

    text = str(value).strip()

    try:
        if _DOTTED_DATE.match(text):
            day, month, year = (int(p) for p in text.split("."))
            return date(year, month, day).isoformat()
        if _SLASHED_DATE.match(text):
            month, day, year = (int(p) for p in text.split("/"))
            return date(year, month, day).isoformat()
    except ValueError:
        return text

    parsed = pd.to_datetime(text, errors="coerce", dayfirst=date_format == "DD-MM-YYYY")
    if pd.isna(parsed):
        return text
    return parsed.strftime("%Y-%m-%d")


def sniff_delimiter(header_line: str) -> str:
    """Pick the most frequent candidate delimiter in a header line."""
    counts = {d: header_line.count(d) for d in CSV_DELIMITERS}
    best = max(CSV_DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] > 0 else ","


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError:
        # Older bank exports are often Latin-1.
        return path.read_text(encoding="latin-1")


def _frame_to_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for record in df.to_dict(orient="records"):
        rows.append({str(k): (None if is_blank(v) else v) for k, v in record.items()})
    return rows


def read_table(path: Union[str, "os.PathLike[str]"]) -> RawTable:
    """
    Read an uploaded CSV or XLSX file into a RawTable.

    Parameters
    ----------
    path:
        Path to a ``.csv``/``.txt`` or ``.xlsx``/``.xlsm`` file.

    Returns
    -------
    RawTable
        Headers in file order and one record per non-empty row. The table
        name is the file stem.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the extension is not supported.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Input file not found: {p}")

    suffix = p.suffix.lower()
    if suffix in {".xlsx", ".xlsm"}:
        df = pd.read_excel(p, engine="openpyxl", dtype=object)
    elif suffix in {".csv", ".txt", ""}:
        text = _read_text(p)
        if not text.strip():
            return RawTable(name=p.stem, headers=[], rows=[])
        delimiter = sniff_delimiter(text.splitlines()[0])
        df = pd.read_csv(
            StringIO(text),
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    else:
        raise ValueError(
            f"Unsupported file type {suffix!r}. Expected a CSV or XLSX file."
        )

    df.columns = [str(c).strip() for c in df.columns]
    df = df.dropna(how="all")
    rows = [r for r in _frame_to_rows(df) if any(v is not None for v in r.values())]
    return RawTable(name=p.stem, headers=list(df.columns), rows=rows)
