# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for FinModel.

This module turns engine and detector results into flat pandas DataFrames
that the CLI prints as text tables, writes as CSV or dumps as JSON:

- ``kpis_to_dataframe``: one row per KPI (key, label, value, unit),
- ``variance_to_dataframe``: budget variance rows, rounded,
- ``mappings_to_dataframe``: suggested column mappings of a detection,
- ``structure_to_dataframe``: the detected DataStructure as key/value rows.

Nothing here computes financial figures; values are only rounded and
labelled.
"""

import pandas as pd

from .detection import DetectionResult
from .engine import VARIANCE_COLUMNS, KPIMetrics

KPI_COLUMNS: list[str] = ["key", "label", "value", "unit"]

# (key, label, unit) in display order.
KPI_LABELS: list[tuple[str, str, str]] = [
    ("revenue", "Revenue", "amount"),
    ("cogs", "Cost of goods sold", "amount"),
    ("expenses", "Operating expenses", "amount"),
    ("net_income", "Net income", "amount"),
    ("mrr", "Monthly recurring revenue", "amount"),
    ("arr", "Annual recurring revenue", "amount"),
    ("burn_rate", "Burn rate", "amount"),
    ("ltm_burn_rate", "Burn rate (LTM average)", "amount"),
    ("burn_variance_pct", "Burn vs LTM average", "percent"),
    ("ltm_avg_revenue", "Revenue (LTM average)", "amount"),
    ("cash_balance", "Cash balance", "amount"),
    ("runway_months", "Runway", "months"),
    ("gross_margin_pct", "Gross margin", "percent"),
    ("net_margin_pct", "Net margin", "percent"),
    ("customer_count", "Customers", "count"),
    ("pipeline_value", "Pipeline value", "amount"),
    ("contracted_value", "Contracted pipeline", "amount"),
    ("open_deals", "Open deals", "count"),
    ("churn_pct", "Churn", "percent"),
    ("new_customers", "New customers", "count"),
    ("cac", "Customer acquisition cost", "amount"),
    ("ltv", "Customer lifetime value", "amount"),
    ("quick_ratio", "Quick ratio", "ratio"),
    ("transaction_count", "Transactions in period", "count"),
    ("undated_rows", "Transactions without a date", "count"),
]


def kpis_to_dataframe(metrics: KPIMetrics, decimals: int = 2) -> pd.DataFrame:
    """
    Convert a KPIMetrics object into a key/label/value/unit table.

    Amounts and percentages are rounded to ``decimals``; counts and the
    runway are kept as integers.
    """
    values = metrics.to_dict()
    rows: list[dict[str, object]] = []
    for key, label, unit in KPI_LABELS:
        value = values[key]
        if isinstance(value, float):
            value = round(value, decimals)
        rows.append({"key": key, "label": label, "value": value, "unit": unit})
    return pd.DataFrame(rows, columns=KPI_COLUMNS)


def variance_to_dataframe(variance: pd.DataFrame, decimals: int = 2) -> pd.DataFrame:
    """Round the numeric columns of a budget variance table."""
    if variance is None or variance.empty:
        return pd.DataFrame(columns=VARIANCE_COLUMNS)
    df = variance.copy()
    for col in ("planned", "actual", "variance", "variance_pct"):
        df[col] = df[col].astype(float).round(decimals)
    return df[VARIANCE_COLUMNS]


def mappings_to_dataframe(result: DetectionResult) -> pd.DataFrame:
    """One row per suggested column mapping, in detection order."""
    rows = [
        {
            "original_header": m.original_header,
            "standard_field": m.standard_field,
            "confidence": m.confidence,
            "detected": m.detected,
        }
        for m in result.suggested_mappings
    ]
    return pd.DataFrame(
        rows, columns=["original_header", "standard_field", "confidence", "detected"]
    )


def structure_to_dataframe(result: DetectionResult) -> pd.DataFrame:
    s = result.structure
    rows = [
        ("file_name", result.file_name),
        ("type", s.type),
        ("language", s.language),
        ("date_format", s.date_format),
        ("currency_symbol", s.currency_symbol),
        ("date_column", s.date_column),
        ("amount_column", s.amount_column),
        ("description_column", s.description_column),
        ("needs_user_confirmation", result.needs_user_confirmation),
    ]
    return pd.DataFrame(rows, columns=["key", "value"])
