# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
KPI aggregation engine for FinModel.

This module turns normalized transactions, pipeline deals and budget rows
into the financial KPIs shown on dashboards and in reports.

The engine has four responsibilities:

1. Preparation
   -----------
   ``prepare_transactions()`` parses amounts (non-numeric values count as 0),
   parses dates (unparseable dates become NaT) and classifies every row with
   the Classification Engine. Classification is derived on read and never
   taken from the input, so the same rows always produce the same KPIs.

2. Point-in-time and trailing KPIs
   --------------------------------
   ``compute_kpis()`` returns a KPIMetrics object:
   - revenue, COGS and expense totals over the reporting window,
   - MRR/ARR and burn rate for the reference month (the latest month with
     dated data in the window),
   - trailing-twelve-month averages (revenue, burn) ending at the reference
     month and the variance of the current burn against them,
   - all-time cash balance and runway,
   - gross and net margins,
   - customer count, pipeline and contracted pipeline values,
   - churn, CAC, LTV and quick ratio from deals and marketing spend.

3. Budget vs actual
   ----------------
   ``compute_budget_variance()`` compares planned budget values per category
   with actual figures; ``compute_budget_summary()`` gives the two rollup rows
   "Revenue" and "Expenses".

4. Compact rollups
   ---------------
   ``top_categories()`` and ``monthly_snapshots()`` produce small tables
   used for reporting payloads.

Notes
-----
Nothing here raises for data-quality reasons. A malformed row degrades the
output (amount 0, excluded from windowed figures); it never aborts the
computation.
"""

import logging
import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Optional

import pandas as pd

from .classification import COGS, COST_TYPES, EXPENSE, REVENUE, classify_frame
from .config import KPIConfig
from .dictionary import KeywordDictionary, default_dictionary
from .io import is_blank, parse_amount
from .normalization import BUDGET_COLUMNS, DEAL_COLUMNS, TRANSACTION_COLUMNS
from .periods import Period, filter_by_period, parse_dates

logger = logging.getLogger(__name__)

SUBSCRIPTION = "subscription"
MARKETING = "marketing"
UNCATEGORIZED = "Uncategorized"

VARIANCE_COLUMNS: list[str] = ["category", "planned", "actual", "variance", "variance_pct"]
TOP_CATEGORY_COLUMNS: list[str] = ["category", "total"]
SNAPSHOT_COLUMNS: list[str] = ["month", "revenue", "cogs", "expenses", "net_income", "burn"]


@dataclass(frozen=True)
class KPIMetrics:
    """
    Financial KPIs for one reporting window.

    Attributes
    ----------
    period_label :
        Label of the reporting window ("All data" when unbounded).
    reference_month :
        ``YYYY-MM`` of the latest month with dated data in the window, or
        None when the window holds no dated transaction.
    revenue, cogs, expenses :
        Window totals. Costs are reported as positive amounts.
    net_income :
        revenue - cogs - expenses.
    mrr, arr :
        Subscription revenue of the reference month (total revenue of that
        month when there is no subscription revenue) and ``mrr * 12``.
        Without any dated revenue the same rule applies to the whole window.
    burn_rate :
        max(0, costs - revenue) for the reference month.
    ltm_burn_rate, ltm_avg_revenue :
        Trailing-window monthly averages ending at the reference month.
    burn_variance_pct :
        Change of the unclamped current burn against the unclamped
        trailing average, in percent (0 when the average is not positive).
    cash_balance :
        Sum of every signed transaction amount, regardless of the window.
    runway_months :
        cash_balance / burn_rate rounded to the nearest month; the sentinel
        value when burn_rate is 0.
    gross_margin_pct, net_margin_pct :
        Margins in percent; the gross margin is clamped at 0, the net margin
        is not.
    customer_count :
        Distinct clients of the deals, or distinct revenue descriptions when
        there are no deals.
    pipeline_value, contracted_value, open_deals :
        Total deal value, value of deals in a contracted phase and number of
        deals not in a terminal phase.
    churn_pct :
        Lost or cancelled deals as a whole percentage of all deals.
    new_customers, cac :
        Won deals closing in the reference month, and the marketing spend of
        that month per new customer (0 without new customers).
    ltv :
        MRR per customer times the expected lifetime of 100 / churn_pct months
        (0 when churn or the customer count is 0).
    quick_ratio :
        mrr / burn_rate rounded to two decimals; the runway sentinel when
        burn_rate is 0.
    transaction_count, undated_rows :
        Rows in the window and rows without a usable date.
    """

    period_label: str = "All data"
    reference_month: Optional[str] = None
    revenue: float = 0.0
    cogs: float = 0.0
    expenses: float = 0.0
    net_income: float = 0.0
    mrr: float = 0.0
    arr: float = 0.0
    burn_rate: float = 0.0
    ltm_burn_rate: float = 0.0
    ltm_avg_revenue: float = 0.0
    burn_variance_pct: float = 0.0
    cash_balance: float = 0.0
    runway_months: int = 999
    gross_margin_pct: float = 0.0
    net_margin_pct: float = 0.0
    customer_count: int = 0
    pipeline_value: float = 0.0
    contracted_value: float = 0.0
    open_deals: int = 0
    churn_pct: float = 0.0
    new_customers: int = 0
    cac: float = 0.0
    ltv: float = 0.0
    quick_ratio: float = 999.0
    transaction_count: int = 0
    undated_rows: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Preparation
# ---------------------------------------------------------------------------


def _frame(data: Any, columns: list[str]) -> pd.DataFrame:
    if data is None:
        return pd.DataFrame(columns=columns)
    df = data.copy() if isinstance(data, pd.DataFrame) else pd.DataFrame(list(data))
    for col in columns:
        if col not in df.columns:
            df[col] = ""
    return df


def _norm(value: Any) -> str:
    return "" if is_blank(value) else str(value).strip().lower()


def prepare_transactions(
    transactions: Any,
    dictionary: Optional[KeywordDictionary] = None,
) -> pd.DataFrame:
    """
    Parse and classify transactions.

    Parameters
    ----------
    transactions:
        DataFrame (or iterable of records) with at least ``amount`` and
        ``date``; ``description`` and ``category`` are optional.
    dictionary:
        Keyword dictionary used for classification.

    Returns
    -------
    pandas.DataFrame
        Copy of the input with a float ``amount``, ``type`` and ``subtype``
        columns, a ``parsed_date`` Timestamp column (NaT when unparseable)
        and a monthly ``month`` Period column.
    """
    df = _frame(transactions, TRANSACTION_COLUMNS)
    df["amount"] = pd.Series([parse_amount(a) for a in df["amount"]], index=df.index, dtype=float)
    df = classify_frame(df, dictionary)
    df["parsed_date"] = parse_dates(df["date"])
    df["month"] = df["parsed_date"].dt.to_period("M")
    return df


def prepare_deals(deals: Any) -> pd.DataFrame:
    """Deals with a float ``amount`` and text phases / client names."""
    df = _frame(deals, DEAL_COLUMNS)
    df["amount"] = pd.Series([parse_amount(a) for a in df["amount"]], index=df.index, dtype=float)
    for col in ("client_name", "phase", "phase_raw"):
        df[col] = ["" if is_blank(v) else str(v).strip() for v in df[col]]
    return df


def prepare_budgets(budgets: Any) -> pd.DataFrame:
    """Budget rows with a float ``value`` and a ``parsed_month`` Timestamp."""
    df = _frame(budgets, BUDGET_COLUMNS)
    if "value" in df.columns and "planned" in df.columns and (df["value"] == "").all():
        df["value"] = df["planned"]
    df["value"] = pd.Series([parse_amount(v) for v in df["value"]], index=df.index, dtype=float)
    df["category"] = ["" if is_blank(v) else str(v).strip() for v in df["category"]]
    df["parsed_month"] = parse_dates(df["month"])
    return df


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------


def _totals(df: pd.DataFrame) -> tuple[float, float, float]:
    """(revenue, cogs, expenses) of a prepared frame, costs as positive amounts."""
    revenue = float(df.loc[df["type"] == REVENUE, "amount"].sum())
    cogs = abs(float(df.loc[df["type"] == COGS, "amount"].sum()))
    expenses = abs(float(df.loc[df["type"] == EXPENSE, "amount"].sum()))
    return revenue, cogs, expenses


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def runway_months(cash_balance: float, burn_rate: float, sentinel: int = 999) -> int:
    """
    Months of runway, rounded half up.

    ``sentinel`` when burn_rate <= 0 (the business is not burning cash),
    0 when there is no cash left.
    """
    if burn_rate <= 0:
        return sentinel
    if cash_balance <= 0:
        return 0
    return min(_round_half_up(cash_balance / burn_rate), sentinel)


def gross_margin_pct(revenue: float, cogs: float) -> float:
    if revenue <= 0:
        return 0.0
    return max(0.0, (revenue - cogs) / revenue * 100.0)


def net_margin_pct(revenue: float, cogs: float, expenses: float) -> float:
    if revenue <= 0:
        return 0.0
    return (revenue - cogs - expenses) / revenue * 100.0


def variance_pct(actual: float, planned: float) -> float:
    """(actual - planned) / planned in percent; 0 when nothing was planned."""
    if planned == 0:
        return 0.0
    return (actual - planned) / planned * 100.0


def customer_count(transactions: pd.DataFrame, deals: Optional[pd.DataFrame]) -> int:
    """
    Distinct customers.

    Client names of the deals when any deal exists, otherwise descriptions of
    revenue transactions. Names are compared lower-cased and trimmed.
    """
    if deals is not None and not deals.empty:
        names = {_norm(v) for v in deals["client_name"]}
    else:
        names = {_norm(v) for v in transactions.loc[transactions["type"] == REVENUE, "description"]}
    names.discard("")
    return len(names)


def _recurring_revenue(rows: pd.DataFrame) -> float:
    """Subscription revenue of the rows, or all their revenue when there is none."""
    revenue = rows.loc[rows["type"] == REVENUE]
    subscription = float(revenue.loc[revenue["subtype"] == SUBSCRIPTION, "amount"].sum())
    return subscription if subscription > 0 else float(revenue["amount"].sum())


def _contracted(phase: str, phase_raw: str, kd: KeywordDictionary) -> bool:
    text = f"{phase} {phase_raw}".lower()
    return any(k in text for k in kd.contracted_phases)


def _terminal(phase: str, phase_raw: str, kd: KeywordDictionary) -> bool:
    return phase.lower() in kd.terminal_phases or phase_raw.lower() in kd.terminal_phases


def _lost(phase: str, phase_raw: str, kd: KeywordDictionary) -> bool:
    text = f"{phase} {phase_raw}".lower()
    return any(k in text for k in kd.lost_phases)


def _won(phase: str, phase_raw: str, kd: KeywordDictionary) -> bool:
    if _lost(phase, phase_raw, kd):
        return False
    text = f"{phase} {phase_raw}".lower()
    return any(k in text for k in kd.won_phases)


def churn_pct(deals: Optional[pd.DataFrame], dictionary: Optional[KeywordDictionary] = None) -> float:
    """Share of lost or cancelled deals, as a whole percentage of all deals."""
    if deals is None or deals.empty:
        return 0.0
    kd = dictionary or default_dictionary()
    lost = sum(_lost(p, r, kd) for p, r in zip(deals["phase"], deals["phase_raw"]))
    return float(_round_half_up(lost / len(deals) * 100.0))


def lifetime_value(mrr: float, customers: int, churn: float) -> float:
    """MRR per customer over an expected lifetime of 100 / churn months."""
    if churn <= 0 or customers <= 0:
        return 0.0
    return float(_round_half_up((mrr / customers) * (100.0 / churn)))


def quick_ratio(mrr: float, burn_rate: float, sentinel: int = 999) -> float:
    """MRR over burn, two decimals; the sentinel when nothing is burnt."""
    if burn_rate <= 0:
        return float(sentinel)
    return round(mrr / burn_rate, 2)


# ---------------------------------------------------------------------------
# KPIs
# ---------------------------------------------------------------------------


def compute_kpis(
    transactions: Any,
    deals: Any = None,
    period: Optional[Period] = None,
    config: Optional[KPIConfig] = None,
    dictionary: Optional[KeywordDictionary] = None,
) -> KPIMetrics:
    """Compute the KPIs of a reporting window.

    Steps:
        1. Prepare (parse + classify) the transactions.
        2. Restrict them to the window; undated rows only count when the
           window is unbounded.
        3. Pick the reference month: latest month with dated data in the
           window.
        4. Compute monthly figures for the reference month and trailing
           averages over the ``ltm_months`` months ending with it.
        5. Derive cash (all-time), runway, margins and deal figures.

    Args:
        transactions: Normalized transactions (DataFrame or records).
        deals: Optional normalized deals.
        period: Reporting window; None means all data.
        config: KPI settings (runway sentinel, trailing window length).
        dictionary: Keyword dictionary used for classification and phases.

    Returns:
        KPIMetrics
    """
    cfg = config or KPIConfig()
    kd = dictionary or default_dictionary()

    tx = prepare_transactions(transactions, kd)
    windowed = filter_by_period(tx, period, date_column="parsed_date")
    undated = int(tx["parsed_date"].isna().sum())
    if undated:
        logger.info("%d transactions have no usable date", undated)

    revenue, cogs, expenses = _totals(windowed)

    dated = windowed.loc[windowed["parsed_date"].notna()]
    reference = dated["parsed_date"].max().to_period("M") if not dated.empty else None

    mrr = burn = ltm_burn = ltm_revenue_avg = burn_var = 0.0
    if reference is not None:
        month_rows = dated.loc[dated["month"] == reference]
        m_revenue, m_cogs, m_expenses = _totals(month_rows)
        mrr = _recurring_revenue(month_rows)
        net_burn = m_cogs + m_expenses - m_revenue
        burn = max(0.0, net_burn)

        months = max(cfg.ltm_months, 1)
        ltm_rows = tx.loc[(tx["month"] > reference - months) & (tx["month"] <= reference)]
        l_revenue, l_cogs, l_expenses = _totals(ltm_rows)
        ltm_revenue_avg = l_revenue / months
        ltm_net_burn = (l_cogs + l_expenses - l_revenue) / months
        ltm_burn = max(0.0, ltm_net_burn)
        if ltm_net_burn > 0:
            burn_var = (net_burn - ltm_net_burn) / ltm_net_burn * 100.0

    if mrr <= 0 and revenue > 0:
        revenue_rows = windowed.loc[windowed["type"] == REVENUE]
        dated_revenue = revenue_rows.loc[revenue_rows["month"].notna()]
        if not dated_revenue.empty:
            latest = dated_revenue["month"].max()
            mrr = _recurring_revenue(dated_revenue.loc[dated_revenue["month"] == latest])
        else:
            mrr = _recurring_revenue(revenue_rows)

    cash = float(tx["amount"].sum())

    deal_df = prepare_deals(deals) if deals is not None else None
    pipeline = contracted = 0.0
    open_count = won_count = 0
    if deal_df is not None and not deal_df.empty:
        pipeline = float(deal_df["amount"].sum())
        closing = parse_dates(deal_df["closing_date"]).dt.to_period("M")
        for amount, phase, raw, month in zip(
            deal_df["amount"], deal_df["phase"], deal_df["phase_raw"], closing
        ):
            if _contracted(phase, raw, kd):
                contracted += amount
            if not _terminal(phase, raw, kd):
                open_count += 1
            if reference is not None and month == reference and _won(phase, raw, kd):
                won_count += 1

    marketing = 0.0
    if reference is not None:
        marketing = abs(
            float(
                dated.loc[
                    (dated["month"] == reference)
                    & (dated["type"] == EXPENSE)
                    & (dated["subtype"] == MARKETING),
                    "amount",
                ].sum()
            )
        )
    cac = float(_round_half_up(marketing / won_count)) if won_count else 0.0

    customers = customer_count(windowed, deal_df)
    churn = churn_pct(deal_df, kd)

    return KPIMetrics(
        period_label=period.label if period is not None else "All data",
        reference_month=str(reference) if reference is not None else None,
        revenue=revenue,
        cogs=cogs,
        expenses=expenses,
        net_income=revenue - cogs - expenses,
        mrr=mrr,
        arr=mrr * 12,
        burn_rate=burn,
        ltm_burn_rate=ltm_burn,
        ltm_avg_revenue=ltm_revenue_avg,
        burn_variance_pct=burn_var,
        cash_balance=cash,
        runway_months=runway_months(cash, burn, cfg.runway_sentinel),
        gross_margin_pct=gross_margin_pct(revenue, cogs),
        net_margin_pct=net_margin_pct(revenue, cogs, expenses),
        customer_count=customers,
        pipeline_value=pipeline,
        contracted_value=contracted,
        open_deals=open_count,
        churn_pct=churn,
        new_customers=won_count,
        cac=cac,
        ltv=lifetime_value(mrr, customers, churn),
        quick_ratio=quick_ratio(mrr, burn, cfg.runway_sentinel),
        transaction_count=len(windowed),
        undated_rows=undated,
    )


# ---------------------------------------------------------------------------
# Budget vs actual
# ---------------------------------------------------------------------------


def _window_budgets(budgets: pd.DataFrame, period: Optional[Period]) -> pd.DataFrame:
    """Budget rows whose month overlaps the window; unparseable months are excluded."""
    if period is None:
        return budgets
    months = budgets["parsed_month"].dt.to_period("M")
    first = pd.Timestamp(period.start).to_period("M")
    last = pd.Timestamp(period.end).to_period("M")
    return budgets.loc[(months >= first) & (months <= last)]


def _variance_row(category: str, planned: float, actual: float) -> dict[str, Any]:
    return {
        "category": category,
        "planned": planned,
        "actual": actual,
        "variance": actual - planned,
        "variance_pct": variance_pct(actual, planned),
    }


def compute_budget_variance(
    transactions: Any,
    budgets: Any,
    period: Optional[Period] = None,
    dictionary: Optional[KeywordDictionary] = None,
) -> pd.DataFrame:
    """
    Budget vs actual per budget category.

    Actual figures come from the window's transactions whose category equals
    the budget category (case-insensitive). When no transaction carries the
    category, revenue-like categories take the revenue total and
    expense-like categories the cost total (COGS + expenses), as recognised
    by the dictionary's budget patterns; anything else has an actual of 0.

    Returns
    -------
    pandas.DataFrame
        Columns: category, planned, actual, variance, variance_pct.
        Categories keep their first-appearance order.
    """
    kd = dictionary or default_dictionary()
    tx = filter_by_period(prepare_transactions(transactions, kd), period, "parsed_date")
    plan = _window_budgets(prepare_budgets(budgets), period)
    plan = plan.loc[plan["category"] != ""]
    if plan.empty:
        return pd.DataFrame(columns=VARIANCE_COLUMNS)

    revenue, cogs, expenses = _totals(tx)
    revenue_re = re.compile(kd.budget_revenue_pattern, re.IGNORECASE)
    expense_re = re.compile(kd.budget_expense_pattern, re.IGNORECASE)
    tx_categories = tx["category"].map(_norm)

    rows: list[dict[str, Any]] = []
    for category, group in plan.groupby("category", sort=False):
        planned = float(group["value"].sum())
        matched = tx.loc[tx_categories == category.lower()]
        if not matched.empty:
            actual = abs(float(matched["amount"].sum()))
        elif revenue_re.search(category):
            actual = revenue
        elif expense_re.search(category):
            actual = cogs + expenses
        else:
            actual = 0.0
        rows.append(_variance_row(category, planned, actual))

    return pd.DataFrame(rows, columns=VARIANCE_COLUMNS)


def compute_budget_summary(
    transactions: Any,
    budgets: Any,
    period: Optional[Period] = None,
    dictionary: Optional[KeywordDictionary] = None,
) -> pd.DataFrame:
    """
    Two-row budget summary: "Revenue" and "Expenses".

    Planned revenue sums the revenue-like budget categories, planned expenses
    the expense-like ones (a category matching both counts as revenue).
    Actuals are the window's revenue and cost totals.
    """
    kd = dictionary or default_dictionary()
    tx = filter_by_period(prepare_transactions(transactions, kd), period, "parsed_date")
    plan = _window_budgets(prepare_budgets(budgets), period)

    revenue_re = re.compile(kd.budget_revenue_pattern, re.IGNORECASE)
    expense_re = re.compile(kd.budget_expense_pattern, re.IGNORECASE)
    is_revenue = plan["category"].map(lambda c: bool(revenue_re.search(c)))
    is_expense = plan["category"].map(lambda c: bool(expense_re.search(c))) & ~is_revenue

    revenue, cogs, expenses = _totals(tx)
    rows = [
        _variance_row("Revenue", float(plan.loc[is_revenue, "value"].sum()), revenue),
        _variance_row("Expenses", float(plan.loc[is_expense, "value"].sum()), cogs + expenses),
    ]
    return pd.DataFrame(rows, columns=VARIANCE_COLUMNS)


# ---------------------------------------------------------------------------
# Rollups
# ---------------------------------------------------------------------------


def top_categories(
    transactions: Any,
    n: int = 5,
    kind: str = "costs",
    period: Optional[Period] = None,
    dictionary: Optional[KeywordDictionary] = None,
) -> pd.DataFrame:
    """
    Largest categories by absolute total.

    ``kind`` is "costs" (COGS and expenses) or "revenue". Categories without
    a label are grouped under "Uncategorized". Totals are rounded to whole
    units; ties keep first-appearance order.
    """
    tx = filter_by_period(prepare_transactions(transactions, dictionary), period, "parsed_date")
    if kind == "revenue":
        rows = tx.loc[tx["type"] == REVENUE]
    else:
        rows = tx.loc[tx["type"].isin(COST_TYPES)]
    if rows.empty:
        return pd.DataFrame(columns=TOP_CATEGORY_COLUMNS)

    labels = ["" if is_blank(c) else str(c).strip() for c in rows["category"]]
    totals = (
        rows.assign(category=[label or UNCATEGORIZED for label in labels])
        .groupby("category", sort=False)["amount"]
        .sum()
        .abs()
        .sort_values(ascending=False, kind="mergesort")
        .head(n)
    )
    return pd.DataFrame(
        {"category": totals.index, "total": [int(round(v)) for v in totals.values]},
        columns=TOP_CATEGORY_COLUMNS,
    )


def monthly_snapshots(
    transactions: Any,
    period: Optional[Period] = None,
    dictionary: Optional[KeywordDictionary] = None,
) -> pd.DataFrame:
    """
    Per-month revenue, costs, net income and burn, oldest month first.

    Undated rows are not part of any month.
    """
    tx = filter_by_period(prepare_transactions(transactions, dictionary), period, "parsed_date")
    dated = tx.loc[tx["parsed_date"].notna()]

    rows: list[dict[str, Any]] = []
    for month, group in dated.groupby("month", sort=True):
        revenue, cogs, expenses = _totals(group)
        net = revenue - cogs - expenses
        rows.append(
            {
                "month": str(month),
                "revenue": revenue,
                "cogs": cogs,
                "expenses": expenses,
                "net_income": net,
                "burn": max(0.0, -net),
            }
        )
    return pd.DataFrame(rows, columns=SNAPSHOT_COLUMNS)
