# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Transaction classification.

A transaction is tagged with a ``(type, subtype)`` pair derived from its
signed amount and the text of its category and description:

- ``amount > 0``: ``revenue`` with subtype ``subscription``, ``one_time`` or
  ``other``,
- ``amount < 0``: ``cogs/direct`` when a direct-cost keyword matches,
  otherwise ``expense`` with subtype ``salaries``, ``marketing``,
  ``software``, ``rent``, ``travel`` or ``other``,
- ``amount == 0``: ``expense/other``.

Keyword families are tested in dictionary order and the first matching family
wins. Classification is a pure function of its inputs and the dictionary; it
is never stored and is recomputed whenever KPIs are computed.
"""

from dataclasses import dataclass
from typing import Any, Optional

import pandas as pd

from .dictionary import KeywordDictionary, default_dictionary
from .io import parse_amount

REVENUE = "revenue"
COGS = "cogs"
EXPENSE = "expense"
OTHER = "other"

# Types tested for negative amounts, in priority order.
COST_TYPES: tuple[str, ...] = (COGS, EXPENSE)


@dataclass(frozen=True)
class Classification:
    """Taxonomy tag of one transaction."""

    type: str
    subtype: str

    @property
    def is_cost(self) -> bool:
        return self.type in COST_TYPES


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    return str(value).strip().lower()


def classify(
    description: Any,
    category: Any,
    amount: Any,
    dictionary: Optional[KeywordDictionary] = None,
) -> Classification:
    """
    Classify a single transaction.

    Args:
        description: Free-text description (any type, None allowed).
        category: Category label (any type, None allowed).
        amount: Signed amount; non-numeric values count as 0.
        dictionary: Keyword dictionary; the packaged one when omitted.

    Returns:
        The Classification of the transaction.
    """
    kd = dictionary or default_dictionary()
    value = parse_amount(amount)
    texts = (_text(category), _text(description))

    def first_family(tx_type: str) -> Optional[str]:
        for subtype, keywords in kd.families(tx_type):
            if any(k in t for k in keywords for t in texts):
                return subtype
        return None

    if value > 0:
        return Classification(REVENUE, first_family(REVENUE) or OTHER)

    if value < 0:
        for tx_type in COST_TYPES:
            subtype = first_family(tx_type)
            if subtype is not None:
                return Classification(tx_type, subtype)
        return Classification(EXPENSE, OTHER)

    return Classification(EXPENSE, OTHER)


def classify_frame(
    transactions: pd.DataFrame,
    dictionary: Optional[KeywordDictionary] = None,
) -> pd.DataFrame:
    """
    Return a copy of ``transactions`` with ``type`` and ``subtype`` columns.

    The DataFrame is expected to hold ``amount`` and, optionally,
    ``description`` and ``category`` columns (missing ones are treated as
    empty text).
    """
    df = transactions.copy()
    n = len(df)
    descriptions = df["description"] if "description" in df.columns else [None] * n
    categories = df["category"] if "category" in df.columns else [None] * n
    amounts = df["amount"] if "amount" in df.columns else [0.0] * n

    tags = [
        classify(d, c, a, dictionary)
        for d, c, a in zip(descriptions, categories, amounts)
    ]
    df["type"] = [t.type for t in tags]
    df["subtype"] = [t.subtype for t in tags]
    return df
