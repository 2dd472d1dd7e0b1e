import pandas as pd

import finmodel.views as views
from finmodel.detection import detect_structure
from finmodel.engine import KPIMetrics


def test_kpis_to_dataframe_rounds_amounts_only() -> None:
    metrics = KPIMetrics(revenue=1234.5678, runway_months=7, customer_count=3)

    df = views.kpis_to_dataframe(metrics, decimals=1)

    assert list(df.columns) == views.KPI_COLUMNS
    assert df["key"].tolist() == [key for key, _, _ in views.KPI_LABELS]
    values = dict(zip(df["key"], df["value"]))
    assert values["revenue"] == 1234.6
    assert values["runway_months"] == 7
    assert values["customer_count"] == 3


def test_variance_to_dataframe_handles_empty_input() -> None:
    empty = views.variance_to_dataframe(pd.DataFrame())
    assert empty.empty

    df = pd.DataFrame(
        [{"category": "Revenue", "planned": 800, "actual": 1000.456, "variance": 200.456, "variance_pct": 25.057}]
    )
    rounded = views.variance_to_dataframe(df, decimals=1)
    assert rounded.iloc[0]["actual"] == 1000.5
    assert rounded.iloc[0]["variance_pct"] == 25.1


def test_detection_tables() -> None:
    result = detect_structure([{"Datum": "15.01.2024", "Betrag": "10"}], "konto.csv")

    mappings = views.mappings_to_dataframe(result)
    assert mappings["standard_field"].tolist() == ["date", "amount"]

    structure = dict(views.structure_to_dataframe(result).values.tolist())
    assert structure["file_name"] == "konto.csv"
    assert structure["date_format"] == "DD.MM.YYYY"
    assert structure["needs_user_confirmation"] is True
