# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Structure detection for uploaded tables.

Given a few rows of an uploaded sheet, the detector infers:

- which headers carry the standard columns (date, amount, description,
  category), by first-match keyword lookup in header order,
- the category layout (one category column, one column per category, or
  unknown),
- the header language (English, German or unknown),
- the date format of the first row and the currency symbol of the amounts,
- whether a human must confirm the mapping before normalization.

All keyword lists come from the keyword dictionary (see ``dictionary.py``).
Nothing in this module mutates its inputs and every function is
deterministic: the same rows always produce the same DetectionResult.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional

from .config import DetectionConfig
from .dictionary import KeywordDictionary, default_dictionary

logger = logging.getLogger(__name__)

CORE_FIELDS: tuple[str, ...] = ("date", "amount", "description")

STRUCTURE_SINGLE = "single-category"
STRUCTURE_MULTI = "multi-category"
UNKNOWN = "unknown"

# Checked in order against the first date cell; first match wins.
DATE_FORMAT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("YYYY-MM-DD", re.compile(r"^\d{4}-\d{2}-\d{2}$")),
    ("DD.MM.YYYY", re.compile(r"^\d{2}\.\d{2}\.\d{4}$")),
    ("MM/DD/YYYY", re.compile(r"^\d{2}/\d{2}/\d{4}$")),
    ("DD-MM-YYYY", re.compile(r"^\d{2}-\d{2}-\d{4}$")),
)

CURRENCY_SYMBOLS: tuple[str, ...] = ("€", "$", "£")

# Confidence given to detected / undetected columns.
DATE_CONFIDENCE = 0.9
AMOUNT_CONFIDENCE = 0.9
DESCRIPTION_CONFIDENCE = 0.8
CATEGORY_CONFIDENCE = 0.8
CATEGORY_COLUMN_CONFIDENCE = 0.7
MISSING_CONFIDENCE = 0.1


class EmptyInputError(ValueError):
    """Raised when structure detection is asked to run on zero rows."""


@dataclass(frozen=True)
class ColumnMapping:
    """
    Association between an uploaded header and a standard field.

    ``standard_field`` is one of ``date``, ``amount``, ``description``,
    ``category`` or ``category_<name>`` for multi-category layouts, where
    ``<name>`` is ``revenue``, ``cogs`` or an expense subcategory.
    """

    original_header: str
    standard_field: str
    confidence: float
    detected: bool


@dataclass(frozen=True)
class DataStructure:
    """Layout and format conventions of one uploaded table."""

    type: str
    language: str
    date_format: str
    currency_symbol: str
    amount_column: str
    date_column: str
    description_column: str


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of ``detect_structure``."""

    file_name: str
    structure: DataStructure
    sample_data: tuple[dict[str, Any], ...]
    suggested_mappings: tuple[ColumnMapping, ...]
    needs_user_confirmation: bool
    headers: tuple[str, ...] = ()


def collect_headers(rows: Sequence[Mapping[str, Any]]) -> list[str]:
    """Union of row keys, in order of first appearance."""
    headers: list[str] = []
    seen: set[str] = set()
    for row in rows:
        for key in row:
            name = str(key)
            if name not in seen:
                seen.add(name)
                headers.append(name)
    return headers


def _matches_any(header: str, keywords: Sequence[str]) -> bool:
    lower = header.lower()
    return any(k in lower for k in keywords)


def detect_column(headers: Sequence[str], keywords: Sequence[str]) -> str:
    """Return the first header containing any keyword, or ``""``."""
    for header in headers:
        if _matches_any(header, keywords):
            return header
    return ""


def detect_category_structure(headers: Sequence[str], kd: KeywordDictionary) -> str:
    """
    Classify the category layout of a table.

    ``single-category`` when a header matches the generic category keywords,
    ``multi-category`` when more than two headers match category-name
    vocabularies, ``unknown`` otherwise.
    """
    if detect_column(headers, kd.field_keywords("category")):
        return STRUCTURE_SINGLE

    vocab = kd.all_category_keywords()
    if sum(1 for h in headers if _matches_any(h, vocab)) > 2:
        return STRUCTURE_MULTI

    return UNKNOWN


def detect_language(headers: Sequence[str], kd: KeywordDictionary) -> str:
    """Majority vote between German and English header words; tie is unknown."""
    de_count = sum(1 for h in headers if _matches_any(h, kd.language_keywords("de")))
    en_count = sum(1 for h in headers if _matches_any(h, kd.language_keywords("en")))
    if de_count > en_count:
        return "de"
    if en_count > de_count:
        return "en"
    return UNKNOWN


def detect_date_format(rows: Sequence[Mapping[str, Any]], date_column: str) -> str:
    """Match the first row's date cell against the known patterns."""
    if not date_column or not rows:
        return UNKNOWN
    value = rows[0].get(date_column)
    if not isinstance(value, str) or not value:
        return UNKNOWN
    for name, pattern in DATE_FORMAT_PATTERNS:
        if pattern.match(value.strip()):
            return name
    return UNKNOWN


def detect_currency_symbol(
    rows: Sequence[Mapping[str, Any]],
    amount_column: str,
    sample_size: int = 5,
    default: str = "€",
) -> str:
    """Return the first currency symbol found in the leading amount cells."""
    if not amount_column:
        return default
    for row in rows[:sample_size]:
        value = row.get(amount_column)
        if not isinstance(value, str):
            continue
        for symbol in CURRENCY_SYMBOLS:
            if symbol in value:
                return symbol
    return default


def map_to_standard_category(column: str, kd: KeywordDictionary) -> str:
    """Name of the first category vocabulary matching a column, else ``other``."""
    for name, keywords in kd.categories:
        if _matches_any(column, keywords):
            return name
    return "other"


def create_column_mappings(
    headers: Sequence[str],
    structure: DataStructure,
    kd: KeywordDictionary,
) -> tuple[ColumnMapping, ...]:
    """
    Build the suggested mappings for a detected structure.

    Core fields always get an entry (confidence 0.1 when not detected);
    entries without a header are then filtered out, so the returned tuple only
    holds usable mappings.
    """
    mappings: list[ColumnMapping] = [
        ColumnMapping(
            structure.date_column,
            "date",
            DATE_CONFIDENCE if structure.date_column else MISSING_CONFIDENCE,
            bool(structure.date_column),
        ),
        ColumnMapping(
            structure.amount_column,
            "amount",
            AMOUNT_CONFIDENCE if structure.amount_column else MISSING_CONFIDENCE,
            bool(structure.amount_column),
        ),
        ColumnMapping(
            structure.description_column,
            "description",
            DESCRIPTION_CONFIDENCE if structure.description_column else MISSING_CONFIDENCE,
            bool(structure.description_column),
        ),
    ]

    if structure.type == STRUCTURE_SINGLE:
        column = detect_column(headers, kd.field_keywords("category"))
        if column:
            mappings.append(ColumnMapping(column, "category", CATEGORY_CONFIDENCE, True))
    elif structure.type == STRUCTURE_MULTI:
        vocab = kd.all_category_keywords()
        for column in headers:
            if _matches_any(column, vocab):
                name = map_to_standard_category(column, kd)
                mappings.append(
                    ColumnMapping(
                        column, f"category_{name}", CATEGORY_COLUMN_CONFIDENCE, True
                    )
                )

    return tuple(m for m in mappings if m.original_header)


def needs_confirmation(
    mappings: Sequence[ColumnMapping],
    structure: DataStructure,
    threshold: float = 0.8,
) -> bool:
    """
    Decide whether a human must confirm the mapping.

    True when a core field has low confidence, when the language or the
    category layout is unknown, or when fewer than three core fields were
    detected.
    """
    core = [m for m in mappings if m.standard_field in CORE_FIELDS]
    low_confidence = any(m.confidence < threshold for m in core)
    detected = sum(1 for m in core if m.detected)
    return (
        low_confidence
        or structure.language == UNKNOWN
        or structure.type == UNKNOWN
        or detected < len(CORE_FIELDS)
    )


def detect_structure(
    rows: Sequence[Mapping[str, Any]],
    file_name: str = "",
    *,
    headers: Optional[Sequence[str]] = None,
    dictionary: Optional[KeywordDictionary] = None,
    config: Optional[DetectionConfig] = None,
) -> DetectionResult:
    """
    Infer the structure of an uploaded table.

    Parameters
    ----------
    rows:
        Records of the table, header -> cell value. At least one is required.
    file_name:
        Name of the upload (informational).
    headers:
        Explicit header order. Defaults to the union of row keys in order of
        first appearance.
    dictionary:
        Keyword dictionary; the packaged one when omitted.
    config:
        Detection thresholds; defaults when omitted.

    Raises
    ------
    EmptyInputError
        If ``rows`` is empty.
    """
    if not rows:
        raise EmptyInputError(f"No rows to analyze in {file_name or 'upload'}.")

    kd = dictionary or default_dictionary()
    cfg = config or DetectionConfig()
    header_list = list(headers) if headers is not None else collect_headers(rows)

    date_column = detect_column(header_list, kd.field_keywords("date"))
    amount_column = detect_column(header_list, kd.field_keywords("amount"))

    structure = DataStructure(
        type=detect_category_structure(header_list, kd),
        language=detect_language(header_list, kd),
        date_format=detect_date_format(rows, date_column),
        currency_symbol=detect_currency_symbol(
            rows,
            amount_column,
            sample_size=cfg.currency_sample_size,
            default=cfg.default_currency,
        ),
        amount_column=amount_column,
        date_column=date_column,
        description_column=detect_column(header_list, kd.field_keywords("description")),
    )

    mappings = create_column_mappings(header_list, structure, kd)
    confirm = needs_confirmation(mappings, structure, cfg.confirmation_threshold)

    logger.debug(
        "Detected %s (%s, %s) in %s; confirmation needed: %s",
        structure.type,
        structure.language,
        structure.date_format,
        file_name or "upload",
        confirm,
    )

    return DetectionResult(
        file_name=file_name,
        structure=structure,
        sample_data=tuple(dict(r) for r in rows[: cfg.sample_size]),
        suggested_mappings=mappings,
        needs_user_confirmation=confirm,
        headers=tuple(header_list),
    )


def detect_file_type(
    headers: Sequence[str],
    dictionary: Optional[KeywordDictionary] = None,
) -> tuple[str, float]:
    """
    Guess what kind of export a header row belongs to.

    Returns ``("deals", 0.7)`` when a header mentions deals, clients or
    phases, ``("budget", 0.6)`` when a header contains a month abbreviation
    as a word, and ``("transactions", 0.3)`` otherwise.
    """
    kd = dictionary or default_dictionary()
    lower = [h.lower().strip() for h in headers]

    if any(_matches_any(h, kd.deal_header_keywords) for h in lower):
        return "deals", 0.7

    if kd.budget_month_keywords:
        months = re.compile(
            r"\b(" + "|".join(re.escape(m) for m in kd.budget_month_keywords) + r")\b"
        )
        if any(months.search(h) for h in lower):
            return "budget", 0.6

    return "transactions", 0.3
