# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for FinModel.

This module is responsible for:
- loading the application configuration from a TOML file,
- exposing typed dataclasses used by the detector, the KPI engine and the CLI.

Every section is optional. Values that are missing or cannot be converted
fall back to their defaults; only a missing file that was explicitly
requested and unparsable TOML are reported as errors.
"""

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

DEFAULT_CONFIG_FILENAME = "finmodel_config.toml"

DISPLAY_MODES: tuple[str, ...] = ("table", "csv", "json")
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class DetectionConfig:
    """Structure detector settings."""

    sample_size: int = 10
    currency_sample_size: int = 5
    confirmation_threshold: float = 0.8
    default_currency: str = "€"


@dataclass(frozen=True)
class KPIConfig:
    """KPI engine settings."""

    runway_sentinel: int = 999
    top_n: int = 5
    ltm_months: int = 12


@dataclass(frozen=True)
class DisplayConfig:
    """CLI rendering settings."""

    mode: str = "table"
    decimals: int = 2


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for FinModel.

    This aggregates:
    - structure detection thresholds,
    - the keyword dictionary location (None = packaged dictionary),
    - KPI engine options,
    - display options,
    - the logging level used by the CLI.
    """

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    dictionary_path: Optional[Path] = None
    kpis: KPIConfig = field(default_factory=KPIConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    log_level: str = "WARNING"


def load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, Mapping):
        return {}
    return value


def _as_int(value: Any, default: int, minimum: int = 0) -> int:
    try:
        out = int(value)
    except (TypeError, ValueError):
        return default
    return out if out >= minimum else default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_detection(section: Mapping[str, Any]) -> DetectionConfig:
    defaults = DetectionConfig()
    threshold = _as_float(
        section.get("confirmation_threshold"), defaults.confirmation_threshold
    )
    if not 0.0 <= threshold <= 1.0:
        threshold = defaults.confirmation_threshold

    currency = section.get("default_currency")
    if not isinstance(currency, str) or not currency.strip():
        currency = defaults.default_currency

    return DetectionConfig(
        sample_size=_as_int(section.get("sample_size"), defaults.sample_size, 1),
        currency_sample_size=_as_int(
            section.get("currency_sample_size"), defaults.currency_sample_size, 1
        ),
        confirmation_threshold=threshold,
        default_currency=currency.strip(),
    )


def _parse_kpis(section: Mapping[str, Any]) -> KPIConfig:
    defaults = KPIConfig()
    return KPIConfig(
        runway_sentinel=_as_int(
            section.get("runway_sentinel"), defaults.runway_sentinel, 1
        ),
        top_n=_as_int(section.get("top_n"), defaults.top_n, 1),
        ltm_months=_as_int(section.get("ltm_months"), defaults.ltm_months, 1),
    )


def _parse_display(section: Mapping[str, Any]) -> DisplayConfig:
    defaults = DisplayConfig()
    mode = str(section.get("mode", defaults.mode)).strip().lower()
    if mode not in DISPLAY_MODES:
        mode = defaults.mode
    return DisplayConfig(
        mode=mode,
        decimals=_as_int(section.get("decimals"), defaults.decimals),
    )


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the FinModel application configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [detection]
        sample_size, currency_sample_size, confirmation_threshold,
        default_currency.

    [dictionary]
        path: optional keyword dictionary replacing the packaged one.

    [kpis]
        runway_sentinel, top_n, ltm_months.

    [display]
        mode (table | csv | json) and decimals.

    [logging]
        level: name of a standard logging level.

    Notes
    -----
    - When ``config_path`` is omitted and ``finmodel_config.toml`` does not
      exist in the working directory, defaults are returned.
    - All file paths in the TOML are resolved relative to the directory of
      the TOML file itself.

    Parameters
    ----------
    config_path : str, optional
        Path to the TOML configuration file.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.

    Raises
    ------
    FileNotFoundError
        If an explicitly provided path (config or dictionary) does not exist.
    ValueError
        If the TOML content cannot be parsed.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILENAME).resolve()
        if not config_file.is_file():
            return AppConfig()
    else:
        config_file = Path(config_path).resolve()

    raw = load_toml(config_file)
    base_dir = config_file.parent

    dictionary_path: Optional[Path] = None
    dictionary_raw = _section(raw, "dictionary").get("path")
    if isinstance(dictionary_raw, str) and dictionary_raw.strip():
        dictionary_path = (base_dir / dictionary_raw).resolve()
        if not dictionary_path.is_file():
            raise FileNotFoundError(f"Keyword dictionary not found: {dictionary_path}")

    level = str(_section(raw, "logging").get("level", "WARNING")).strip().upper()
    if level not in LOG_LEVELS:
        level = "WARNING"

    return AppConfig(
        detection=_parse_detection(_section(raw, "detection")),
        dictionary_path=dictionary_path,
        kpis=_parse_kpis(_section(raw, "kpis")),
        display=_parse_display(_section(raw, "display")),
        log_level=level,
    )
