# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Normalization of uploaded tables into standard records.

Three kinds of uploads are turned into pandas DataFrames with a fixed set of
columns:

1) Transactions
   ------------
   ``normalize_transactions(rows, detection)`` applies the confirmed column
   mappings of a DetectionResult and returns a NormalizationResult whose
   ``transactions`` DataFrame has the columns:

       id, date, description, amount, category, reference

   - ``date`` is an ISO ``YYYY-MM-DD`` string,
   - ``amount`` is a signed float (``> 0`` revenue candidate, ``< 0`` cost),
   - ``category`` defaults to ``"Other"``.

   Rows without an amount cell or without a usable date are dropped and
   counted; nothing raises for data-quality reasons. When the detection
   result asks for user confirmation, normalization refuses to run unless the
   caller passes ``confirmed=True``.

2) Deals (CRM pipeline exports)
   ----------------------------
   ``normalize_deals(rows)`` maps CRM columns by keyword and normalizes
   pipeline phases through the bilingual alias table of the dictionary.

3) Budgets
   -------
   ``budget_to_long(rows)`` reshapes a wide budget sheet (a category column
   plus one column per month) into long ``month, category, value`` rows.
"""

import hashlib
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional

import pandas as pd

from .detection import ColumnMapping, DetectionResult, collect_headers, detect_column
from .dictionary import KeywordDictionary, default_dictionary
from .io import is_blank, is_iso_date, parse_amount, parse_date
from .schemas import BudgetRow, Deal, StandardTransaction

logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS: list[str] = [
    "id",
    "date",
    "description",
    "amount",
    "category",
    "reference",
]

DEAL_COLUMNS: list[str] = [
    "deal_name",
    "client_name",
    "phase",
    "phase_raw",
    "amount",
    "closing_date",
    "first_appointment",
    "product",
]

BUDGET_COLUMNS: list[str] = ["month", "category", "value"]

DEFAULT_CATEGORY = "Other"
UNKNOWN_CLIENT = "Unknown Client"
UNKNOWN_PHASE = "Unknown"


class ConfirmationRequiredError(ValueError):
    """Raised when normalizing a detection that still needs user confirmation."""


@dataclass(frozen=True)
class NormalizationResult:
    """
    Normalized transactions plus per-reason drop counters.

    Attributes:
        transactions: DataFrame with TRANSACTION_COLUMNS.
        total_rows: Number of input rows.
        dropped_missing_amount: Rows whose amount cell was empty.
        dropped_missing_date: Rows whose date cell was empty.
        dropped_invalid_date: Rows whose date could not be parsed.
    """

    transactions: pd.DataFrame
    total_rows: int = 0
    dropped_missing_amount: int = 0
    dropped_missing_date: int = 0
    dropped_invalid_date: int = 0

    @property
    def dropped_rows(self) -> int:
        return (
            self.dropped_missing_amount
            + self.dropped_missing_date
            + self.dropped_invalid_date
        )


def _text(value: Any) -> str:
    return "" if is_blank(value) else str(value).strip()


def _truthy(value: Any) -> bool:
    if is_blank(value) or value is False:
        return False
    if isinstance(value, (int, float)) and value == 0:
        return False
    return True


def _transaction_id(file_name: str, index: int, date: str, amount: float, text: str) -> str:
    digest = hashlib.sha1(
        f"{file_name}|{index}|{date}|{amount!r}|{text}".encode("utf-8")
    ).hexdigest()
    return f"tx_{index:05d}_{digest[:8]}"


def normalize_transactions(
    rows: Sequence[Mapping[str, Any]],
    detection: DetectionResult,
    mappings: Optional[Sequence[ColumnMapping]] = None,
    *,
    confirmed: bool = False,
) -> NormalizationResult:
    """
    Turn raw rows into StandardTransaction records.

    Parameters
    ----------
    rows:
        The uploaded records (header -> cell).
    detection:
        Result of ``detect_structure`` for the same rows. Its structure
        provides the date format used for parsing.
    mappings:
        Mappings confirmed by the user. Defaults to the suggested mappings of
        ``detection``.
    confirmed:
        Must be True when ``detection.needs_user_confirmation`` is set.

    Returns
    -------
    NormalizationResult

    Raises
    ------
    ConfirmationRequiredError
        If the detection needs confirmation and ``confirmed`` is False.
    """
    if detection.needs_user_confirmation and not confirmed:
        raise ConfirmationRequiredError(
            f"Column mapping for {detection.file_name or 'upload'} must be "
            "confirmed before normalization."
        )

    active = list(mappings if mappings is not None else detection.suggested_mappings)
    by_field: dict[str, str] = {}
    category_flags: list[tuple[str, str]] = []
    for m in active:
        if not m.original_header:
            continue
        if m.standard_field.startswith("category_"):
            category_flags.append((m.original_header, m.standard_field[len("category_") :]))
        else:
            by_field.setdefault(m.standard_field, m.original_header)

    date_format = detection.structure.date_format
    records: list[dict[str, Any]] = []
    missing_amount = missing_date = invalid_date = 0

    def cell(row: Mapping[str, Any], standard_field: str) -> Any:
        header = by_field.get(standard_field)
        return None if header is None else row.get(header)

    for index, row in enumerate(rows):
        amount_cell = cell(row, "amount")
        if is_blank(amount_cell):
            missing_amount += 1
            continue

        date_cell = cell(row, "date")
        if is_blank(date_cell):
            missing_date += 1
            continue

        iso_date = parse_date(date_cell, date_format)
        if not is_iso_date(iso_date):
            invalid_date += 1
            continue

        amount = parse_amount(amount_cell)
        description = _text(cell(row, "description"))
        reference = _text(cell(row, "reference"))

        category = _text(cell(row, "category")) or DEFAULT_CATEGORY
        # Later flag columns overwrite earlier ones.
        for header, name in category_flags:
            if _truthy(row.get(header)):
                category = name

        records.append(
            StandardTransaction(
                id=_transaction_id(detection.file_name, index, iso_date, amount, description),
                date=iso_date,
                description=description,
                amount=amount,
                category=category,
                reference=reference,
            ).model_dump()
        )

    df = pd.DataFrame(records, columns=TRANSACTION_COLUMNS)
    result = NormalizationResult(
        transactions=df,
        total_rows=len(rows),
        dropped_missing_amount=missing_amount,
        dropped_missing_date=missing_date,
        dropped_invalid_date=invalid_date,
    )

    if result.dropped_rows:
        logger.warning(
            "Dropped %d of %d rows from %s (missing amount: %d, missing date: %d, "
            "invalid date: %d)",
            result.dropped_rows,
            result.total_rows,
            detection.file_name or "upload",
            missing_amount,
            missing_date,
            invalid_date,
        )
    logger.info("Normalized %d transactions from %s", len(df), detection.file_name or "upload")
    return result


def detect_deal_columns(
    headers: Sequence[str],
    dictionary: Optional[KeywordDictionary] = None,
) -> dict[str, str]:
    """
    Assign CRM export headers to deal fields.

    Fields are processed in dictionary order and each takes the first header
    matching its keywords that no earlier field has claimed.
    """
    kd = dictionary or default_dictionary()
    assigned: dict[str, str] = {}
    for deal_field, keywords in kd.deal_fields:
        free = [h for h in headers if h not in assigned.values()]
        column = detect_column(free, keywords)
        if column:
            assigned[deal_field] = column
    return assigned


def normalize_phase(value: Any, dictionary: Optional[KeywordDictionary] = None) -> str:
    """Map a raw pipeline phase to its canonical name, ``Unknown`` if not listed."""
    if is_blank(value):
        return UNKNOWN_PHASE
    kd = dictionary or default_dictionary()
    return kd.alias_for_phase(str(value).strip().lower()) or UNKNOWN_PHASE


def normalize_deals(
    rows: Sequence[Mapping[str, Any]],
    column_map: Optional[Mapping[str, str]] = None,
    dictionary: Optional[KeywordDictionary] = None,
) -> pd.DataFrame:
    """
    Normalize a CRM pipeline export.

    Parameters
    ----------
    rows:
        Uploaded records.
    column_map:
        Optional explicit ``deal field -> header`` mapping. Detected from the
        headers when omitted (see ``detect_deal_columns``).
    dictionary:
        Keyword dictionary; the packaged one when omitted.

    Returns
    -------
    pandas.DataFrame
        One row per kept deal with DEAL_COLUMNS. Deals get the name
        ``"Deal with <client>"`` when unnamed, ``"Unknown Client"`` when no
        client is given, and are dropped when they have no name or have
        neither a positive amount nor a known client.
    """
    kd = dictionary or default_dictionary()
    cmap = dict(column_map) if column_map is not None else detect_deal_columns(
        collect_headers(rows), kd
    )

    def cell(row: Mapping[str, Any], deal_field: str) -> Any:
        header = cmap.get(deal_field)
        return None if header is None else row.get(header)

    records: list[dict[str, Any]] = []
    for row in rows:
        client = _text(cell(row, "client_name")) or UNKNOWN_CLIENT
        name = _text(cell(row, "deal_name"))
        if not name and client != UNKNOWN_CLIENT:
            name = f"Deal with {client}"

        raw_amount = cell(row, "amount")
        amount = 0.0 if is_blank(raw_amount) else parse_amount(raw_amount)

        if not name or not (amount > 0 or client != UNKNOWN_CLIENT):
            continue

        closing = parse_date(cell(row, "closing_date"))
        appointment = parse_date(cell(row, "first_appointment"))
        raw_phase = _text(cell(row, "phase"))

        records.append(
            Deal(
                deal_name=name,
                client_name=client,
                phase=normalize_phase(raw_phase, kd),
                phase_raw=raw_phase,
                amount=amount,
                closing_date=closing if is_iso_date(closing) else "",
                first_appointment=appointment if is_iso_date(appointment) else "",
                product=_text(cell(row, "product")),
            ).model_dump()
        )

    dropped = len(rows) - len(records)
    if dropped:
        logger.info("Dropped %d deals without a name or a client/amount", dropped)
    return pd.DataFrame(records, columns=DEAL_COLUMNS)


def budget_to_long(
    rows: Sequence[Mapping[str, Any]],
    category_column: Optional[str] = None,
    dictionary: Optional[KeywordDictionary] = None,
) -> pd.DataFrame:
    """
    Reshape a wide budget sheet into ``month, category, value`` rows.

    The category column is ``category_column`` when given, else the first
    header matching the category keywords, else the first header. Every
    other column is a month; blank cells count as 0. Rows without a category
    are skipped.
    """
    headers = collect_headers(rows)
    if not headers:
        return pd.DataFrame(columns=BUDGET_COLUMNS)

    kd = dictionary or default_dictionary()
    cat_col = category_column or detect_column(headers, kd.field_keywords("category"))
    cat_col = cat_col or headers[0]
    month_cols = [h for h in headers if h != cat_col]

    records: list[dict[str, Any]] = []
    for row in rows:
        category = row.get(cat_col)
        if is_blank(category):
            continue
        for month in month_cols:
            value = row.get(month)
            records.append(
                BudgetRow(
                    month=month.strip(),
                    category=str(category).strip(),
                    value=0.0 if is_blank(value) else parse_amount(value),
                ).model_dump()
            )

    return pd.DataFrame(records, columns=BUDGET_COLUMNS)


def budget_frame(
    rows: Sequence[Mapping[str, Any]],
    dictionary: Optional[KeywordDictionary] = None,
) -> pd.DataFrame:
    """
    Return budget rows in long format, whatever the sheet layout.

    Sheets that already have ``month``, ``category`` and a value column
    (``value``, ``planned`` or ``amount``) are taken as-is; anything else goes
    through ``budget_to_long``.
    """
    headers = collect_headers(rows)
    lower = {h.lower().strip(): h for h in headers}
    value_key = next((k for k in ("value", "planned", "amount") if k in lower), None)

    if "month" in lower and "category" in lower and value_key is not None:
        records = [
            BudgetRow(
                month=_text(r.get(lower["month"])),
                category=_text(r.get(lower["category"])),
                value=parse_amount(r.get(lower[value_key])),
            ).model_dump()
            for r in rows
        ]
        return pd.DataFrame(records, columns=BUDGET_COLUMNS)

    return budget_to_long(rows, dictionary=dictionary)
