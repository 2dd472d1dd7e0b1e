# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
FinModel
--------

Data normalization and KPI engine for small-business finance dashboards.
FinModel ingests loosely structured spreadsheets (bank exports, CRM
pipelines, budget sheets) in English or German, infers their layout,
classifies transactions into a standard taxonomy, reconciles uploads with an
editable business-model proposal and aggregates everything into financial
KPIs.

Main capabilities:
- structure detection (column roles, language, date format, currency),
- normalization into standard transactions, deals and budget rows,
- bilingual keyword-driven classification (revenue / COGS / expenses),
- business-model proposals: graph projection, immutable edits, sheet
  linking and dataset auto-linking,
- KPIs: MRR/ARR, burn, runway, margins, pipeline, budget variance.

Keyword dictionaries are TOML data files, so new locales are a data change.

Version: 0.1.0

Usage:
    finmodel --help
"""

__all__ = [
    "detection",
    "classification",
    "normalization",
    "proposal",
    "graph",
    "edits",
    "linking",
    "engine",
]

__version__ = "0.1.0"
