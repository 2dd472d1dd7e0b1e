from datetime import date, datetime

import pandas as pd
import pytest

import finmodel.io as fio


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.234,56", 1234.56),
        ("1,234.56", 1234.56),
        ("1,56", 1.56),
        ("1,234", 1234.0),
        ("1.234.567", 1234567.0),
        ("€ 1.500,00", 1500.0),
        ("$1,200.00", 1200.0),
        ("-1.234,56", -1234.56),
        ("(250.00)", -250.0),
        ("1500", 1500.0),
        (42, 42.0),
        (12.5, 12.5),
    ],
)
def test_parse_amount_handles_locale_formats(raw, expected) -> None:
    """Both European and US separators should give the same numbers."""
    assert fio.parse_amount(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["abc", "", None, float("nan"), float("inf"), "--"])
def test_parse_amount_falls_back_to_zero(raw) -> None:
    """Unparseable or non-finite values count as 0.0 instead of raising."""
    assert fio.parse_amount(raw) == 0.0


@pytest.mark.parametrize(
    "raw, date_format, expected",
    [
        ("2024-01-15", "YYYY-MM-DD", "2024-01-15"),
        ("15.01.2024", "DD.MM.YYYY", "2024-01-15"),
        ("5.1.2024", "unknown", "2024-01-05"),
        ("01/15/2024", "MM/DD/YYYY", "2024-01-15"),
        (45306, "unknown", "2024-01-15"),
        (date(2024, 3, 1), "unknown", "2024-03-01"),
        (datetime(2024, 3, 1, 14, 30), "unknown", "2024-03-01"),
        (pd.Timestamp("2024-03-01"), "unknown", "2024-03-01"),
    ],
)
def test_parse_date_normalizes_to_iso(raw, date_format, expected) -> None:
    """Supported date layouts and Excel serials become YYYY-MM-DD."""
    assert fio.parse_date(raw, date_format) == expected


def test_parse_date_blank_and_invalid_values() -> None:
    """Blank cells give "", unparseable text is returned unchanged."""
    assert fio.parse_date(None) == ""
    assert fio.parse_date("   ") == ""
    assert fio.parse_date("31.02.2024") == "31.02.2024"
    assert fio.parse_date("someday") == "someday"
    assert not fio.is_iso_date(fio.parse_date("someday"))
    assert fio.parse_date(20240115) == "20240115"


def test_is_iso_date_rejects_impossible_days() -> None:
    """Only real calendar days in YYYY-MM-DD form are ISO dates."""
    assert fio.is_iso_date("2024-02-29")
    assert not fio.is_iso_date("2023-02-29")
    assert not fio.is_iso_date("15.01.2024")
    assert not fio.is_iso_date(None)


def test_sniff_delimiter_prefers_most_frequent() -> None:
    assert fio.sniff_delimiter("Datum;Betrag;Beschreibung") == ";"
    assert fio.sniff_delimiter("Date,Amount") == ","
    assert fio.sniff_delimiter("Date\tAmount\tDescription") == "\t"
    assert fio.sniff_delimiter("single") == ","


def test_read_table_semicolon_latin1_csv(tmp_path) -> None:
    """German bank exports: semicolons, Latin-1 and blank cells as None."""
    path = tmp_path / "konto.csv"
    path.write_bytes(
        "Datum;Betrag;Beschreibung\n"
        "15.01.2024;1.500,00;Büromiete\n"
        "16.01.2024;;Gebühr\n"
        "\n".encode("latin-1")
    )

    table = fio.read_table(path)

    assert table.name == "konto"
    assert table.headers == ["Datum", "Betrag", "Beschreibung"]
    assert len(table.rows) == 2
    assert table.rows[0]["Betrag"] == "1.500,00"
    assert table.rows[0]["Beschreibung"] == "Büromiete"
    assert table.rows[1]["Betrag"] is None


def test_read_table_xlsx(tmp_path) -> None:
    """XLSX uploads are read through openpyxl with their header row."""
    path = tmp_path / "export.xlsx"
    pd.DataFrame(
        {"Date": ["2024-01-15", "2024-01-16"], "Amount": [12.5, -3.0]}
    ).to_excel(path, index=False)

    table = fio.read_table(path)

    assert table.headers == ["Date", "Amount"]
    assert len(table.rows) == 2
    assert fio.parse_amount(table.rows[0]["Amount"]) == pytest.approx(12.5)


def test_read_table_errors(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        fio.read_table(tmp_path / "missing.csv")

    unsupported = tmp_path / "data.json"
    unsupported.write_text("{}", encoding="utf-8")
    with pytest.raises(ValueError):
        fio.read_table(unsupported)


def test_read_table_empty_csv(tmp_path) -> None:
    """An empty file yields a table without headers or rows."""
    path = tmp_path / "empty.csv"
    path.write_text("", encoding="utf-8")

    table = fio.read_table(path)

    assert table.headers == []
    assert table.rows == []
