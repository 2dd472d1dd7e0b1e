import pytest

import finmodel.config as config
import finmodel.dictionary as dictionary


def test_defaults_when_no_config_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    cfg = config.load_app_config()

    assert cfg == config.AppConfig()
    assert cfg.detection.confirmation_threshold == pytest.approx(0.8)
    assert cfg.kpis.runway_sentinel == 999


def test_load_app_config_reads_sections(tmp_path) -> None:
    (tmp_path / "words.toml").write_text('version = "custom"\n', encoding="utf-8")
    path = tmp_path / "finmodel_config.toml"
    path.write_text(
        """
[detection]
confirmation_threshold = 0.6
default_currency = "$"

[dictionary]
path = "words.toml"

[kpis]
ltm_months = 6
top_n = 3

[display]
mode = "JSON"
decimals = 0

[logging]
level = "debug"
""",
        encoding="utf-8",
    )

    cfg = config.load_app_config(str(path))

    assert cfg.detection.confirmation_threshold == pytest.approx(0.6)
    assert cfg.detection.default_currency == "$"
    assert cfg.dictionary_path == (tmp_path / "words.toml").resolve()
    assert cfg.kpis.ltm_months == 6
    assert cfg.kpis.top_n == 3
    assert cfg.display.mode == "json"
    assert cfg.display.decimals == 0
    assert cfg.log_level == "DEBUG"


def test_invalid_values_fall_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "cfg.toml"
    path.write_text(
        """
[detection]
confirmation_threshold = 3.5
sample_size = "many"

[kpis]
runway_sentinel = 0

[display]
mode = "html"

[logging]
level = "LOUD"
""",
        encoding="utf-8",
    )

    cfg = config.load_app_config(str(path))

    assert cfg.detection.confirmation_threshold == pytest.approx(0.8)
    assert cfg.detection.sample_size == 10
    assert cfg.kpis.runway_sentinel == 999
    assert cfg.display.mode == "table"
    assert cfg.log_level == "WARNING"


def test_config_errors(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        config.load_app_config(str(tmp_path / "missing.toml"))

    broken = tmp_path / "broken.toml"
    broken.write_text("[detection\nthreshold = ", encoding="utf-8")
    with pytest.raises(ValueError):
        config.load_app_config(str(broken))

    dangling = tmp_path / "dangling.toml"
    dangling.write_text('[dictionary]\npath = "nowhere.toml"\n', encoding="utf-8")
    with pytest.raises(FileNotFoundError):
        config.load_app_config(str(dangling))


def test_default_dictionary_is_bilingual() -> None:
    kd = dictionary.default_dictionary()

    assert kd.locales == ("en", "de")
    assert "datum" in kd.field_keywords("date")
    assert "betrag" in kd.field_keywords("amount")
    assert [name for name, _ in kd.archetypes] == [
        "payments",
        "bookings",
        "sessions",
        "customers",
        "coaches",
    ]
    assert [name for name, _ in kd.families("expense")] == [
        "salaries",
        "marketing",
        "software",
        "rent",
        "travel",
        "other",
    ]
    assert kd.alias_for_phase("gewonnen") == "Deal"
    assert "verloren" in kd.lost_phases
    assert "gewonnen" in kd.won_phases


def test_load_dictionary_from_file(tmp_path) -> None:
    path = tmp_path / "keywords.toml"
    path.write_text(
        """
version = "2"
locales = ["de", "en"]

[fields.date]
en = ["date"]
de = ["datum", "date"]
""",
        encoding="utf-8",
    )

    kd = dictionary.load_dictionary(path)

    assert kd.version == "2"
    assert kd.field_keywords("date") == ("datum", "date")
    assert kd.field_keywords("amount") == ()
    assert dictionary.load_dictionary() is dictionary.default_dictionary()
