import pytest

import finmodel.normalization as normalization
from finmodel.classification import classify
from finmodel.detection import ColumnMapping, detect_structure


def test_german_export_normalizes_after_confirmation() -> None:
    """Datum/Betrag/Beschreibung rows become one classified transaction."""
    rows = [{"Datum": "2024-01-15", "Betrag": "1500", "Beschreibung": "Abonnement"}]
    detected = detect_structure(rows, "konto.csv")

    with pytest.raises(normalization.ConfirmationRequiredError):
        normalization.normalize_transactions(rows, detected)

    result = normalization.normalize_transactions(rows, detected, confirmed=True)
    tx = result.transactions

    assert len(tx) == 1
    row = tx.iloc[0]
    assert row["date"] == "2024-01-15"
    assert row["amount"] == pytest.approx(1500.0)
    assert row["description"] == "Abonnement"
    assert row["category"] == "Other"

    tag = classify(row["description"], row["category"], row["amount"])
    assert (tag.type, tag.subtype) == ("revenue", "subscription")


def test_rows_without_amount_or_date_are_dropped_and_counted() -> None:
    rows = [
        {"Date": "2024-01-15", "Description": "Client A", "Amount": "1.500,00", "Category": "Consulting"},
        {"Date": "2024-01-16", "Description": "Rent", "Amount": "", "Category": "Rent"},
        {"Date": "", "Description": "Ads", "Amount": "-200", "Category": "Marketing"},
        {"Date": "someday", "Description": "Tools", "Amount": "-50", "Category": "Software"},
    ]
    detected = detect_structure(rows, "bank.csv")
    assert detected.needs_user_confirmation is False

    result = normalization.normalize_transactions(rows, detected)

    assert result.total_rows == 4
    assert len(result.transactions) == 1
    assert result.dropped_missing_amount == 1
    assert result.dropped_missing_date == 1
    assert result.dropped_invalid_date == 1
    assert result.dropped_rows == 3
    kept = result.transactions.iloc[0]
    assert kept["amount"] == pytest.approx(1500.0)
    assert kept["category"] == "Consulting"
    assert list(result.transactions.columns) == normalization.TRANSACTION_COLUMNS


def test_transaction_ids_are_stable() -> None:
    rows = [
        {"Date": "2024-01-15", "Description": "A", "Amount": "10", "Category": "Sales"},
        {"Date": "2024-01-16", "Description": "B", "Amount": "20", "Category": "Sales"},
    ]
    detected = detect_structure(rows, "bank.csv")

    first = normalization.normalize_transactions(rows, detected).transactions
    second = normalization.normalize_transactions(rows, detected).transactions

    assert list(first["id"]) == list(second["id"])
    assert first["id"].iloc[0].startswith("tx_00000_")
    assert first["id"].iloc[0] != first["id"].iloc[1]


def test_multi_category_flags_set_the_category() -> None:
    rows = [
        {"Date": "2024-02-01", "Description": "Campaign", "Amount": "-300", "Revenue": "", "Marketing": "1", "Rent": ""},
        {"Date": "2024-02-02", "Description": "Misc", "Amount": "-10", "Revenue": "", "Marketing": "", "Rent": ""},
    ]
    detected = detect_structure(rows)

    tx = normalization.normalize_transactions(rows, detected).transactions

    assert list(tx["category"]) == ["marketing", "Other"]


def test_multi_category_last_flag_wins() -> None:
    rows = [
        {"Date": "2024-02-01", "Description": "Booth", "Amount": "-300", "Revenue": "", "Marketing": "x", "Rent": "x"},
        {"Date": "2024-02-02", "Description": "Office", "Amount": "-900", "Revenue": "", "Marketing": "", "Rent": "x"},
    ]
    detected = detect_structure(rows)

    tx = normalization.normalize_transactions(rows, detected).transactions

    assert list(tx["category"]) == ["rent", "rent"]


def test_user_mappings_override_suggestions() -> None:
    """Confirmed mappings replace the detector's suggestions."""
    rows = [{"Wann": "15.01.2024", "Wieviel": "99,90", "Was": "Lizenz"}]
    detected = detect_structure(rows)
    mappings = [
        ColumnMapping("Wann", "date", 1.0, True),
        ColumnMapping("Wieviel", "amount", 1.0, True),
        ColumnMapping("Was", "description", 1.0, True),
    ]

    tx = normalization.normalize_transactions(rows, detected, mappings, confirmed=True).transactions

    assert tx.iloc[0]["date"] == "2024-01-15"
    assert tx.iloc[0]["amount"] == pytest.approx(99.9)
    assert tx.iloc[0]["description"] == "Lizenz"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("lead", "Lead Generation"),
        ("Lead Gen", "Lead Generation"),
        ("Verhandlung", "Negotiation"),
        ("gewonnen", "Deal"),
        ("Kein Deal", "No Deal"),
        ("whatever", "Unknown"),
        (None, "Unknown"),
    ],
)
def test_normalize_phase(raw, expected) -> None:
    assert normalization.normalize_phase(raw) == expected


def test_normalize_deals() -> None:
    """Unnamed deals are named after the client; empty rows are dropped."""
    rows = [
        {"Deal": "Website", "Client": "ACME", "Phase": "Verhandlung", "Amount": "5.000,00", "Closing Date": "15.03.2024"},
        {"Deal": "", "Client": "Beta GmbH", "Phase": "gewonnen", "Amount": "1200", "Closing Date": ""},
        {"Deal": "", "Client": "", "Phase": "lead", "Amount": "", "Closing Date": ""},
    ]

    deals = normalization.normalize_deals(rows)

    assert len(deals) == 2
    first, second = deals.iloc[0], deals.iloc[1]
    assert first["deal_name"] == "Website"
    assert first["client_name"] == "ACME"
    assert first["phase"] == "Negotiation"
    assert first["phase_raw"] == "Verhandlung"
    assert first["amount"] == pytest.approx(5000.0)
    assert first["closing_date"] == "2024-03-15"
    assert second["deal_name"] == "Deal with Beta GmbH"
    assert second["phase"] == "Deal"
    assert second["closing_date"] == ""


def test_normalize_deals_unknown_client_with_amount_is_kept() -> None:
    rows = [{"Deal": "Mystery", "Amount": "300"}]

    deals = normalization.normalize_deals(rows)

    assert deals.iloc[0]["client_name"] == "Unknown Client"
    assert deals.iloc[0]["phase"] == "Unknown"


def test_detect_deal_columns_does_not_reuse_headers() -> None:
    headers = ["Closing Date", "Client", "Stage", "Value", "Deal"]

    cmap = normalization.detect_deal_columns(headers)

    assert cmap == {
        "closing_date": "Closing Date",
        "client_name": "Client",
        "phase": "Stage",
        "amount": "Value",
        "deal_name": "Deal",
    }


def test_budget_to_long() -> None:
    rows = [
        {"Category": "Revenue", "Jan 2024": "10000", "Feb 2024": ""},
        {"Category": "Marketing", "Jan 2024": "2.000,00", "Feb 2024": "1500"},
        {"Category": "", "Jan 2024": "5", "Feb 2024": "5"},
    ]

    long = normalization.budget_to_long(rows)

    assert list(long.columns) == ["month", "category", "value"]
    assert len(long) == 4
    marketing_jan = long[(long["category"] == "Marketing") & (long["month"] == "Jan 2024")]
    assert marketing_jan["value"].iloc[0] == pytest.approx(2000.0)
    revenue_feb = long[(long["category"] == "Revenue") & (long["month"] == "Feb 2024")]
    assert revenue_feb["value"].iloc[0] == 0.0


def test_budget_frame_keeps_long_layout() -> None:
    rows = [
        {"Month": "2024-01", "Category": "Marketing", "Planned": "2000"},
        {"Month": "2024-02", "Category": "Marketing", "Planned": "2500"},
    ]

    frame = normalization.budget_frame(rows)

    assert list(frame["month"]) == ["2024-01", "2024-02"]
    assert list(frame["value"]) == [2000.0, 2500.0]
