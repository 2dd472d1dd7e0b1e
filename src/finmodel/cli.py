# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for FinModel.

This module wires together the building blocks of FinModel:

- application configuration and keyword dictionary,
- upload decoding (CSV / XLSX),
- structure detection and normalization,
- the KPI engine and budget variance,
- business-model proposals (graph, validation, linking).

The CLI is intentionally thin: it does not implement detection,
classification or KPI logic itself. It reads files, calls the library and
renders the results.


Commands
--------

- ``detect FILE``:
    Run structure detection on an upload and print the detected structure
    and the suggested column mappings.

- ``normalize FILE [--confirm] [--output CSV]``:
    Detect, then normalize the upload into standard transactions. When the
    detection needs user confirmation and ``--confirm`` is absent, the
    mappings are printed and the command exits with status 2.

- ``kpis --transactions FILE [--deals FILE] [--budgets FILE]``:
    Compute KPIs, budget variance and top cost categories for a reporting
    period (``--period`` or ``--from-date`` / ``--to-date``).

- ``model graph|validate|link|autolink|parse``:
    Operations on a business-model proposal stored as JSON. Results are
    printed as JSON.


Display modes and output
------------------------

``--display-mode`` (or ``display.mode`` in the configuration) selects how
tabular results are rendered:

- ``table``: text tables on stdout (pandas.DataFrame.to_string),
- ``csv``:   CSV files written to ``--output DIR`` (``data/output`` by
             default) with timestamp-based names such as
             ``kpis_YYYY-MM-DD-HH-MM-SS.csv``,
- ``json``:  one JSON document on stdout.


Examples
--------

    finmodel detect bank_export.csv
    finmodel normalize bank_export.csv --confirm --output transactions.csv
    finmodel kpis --transactions transactions.csv --budgets budget.xlsx --period ytd
    finmodel model link proposal.json payments.csv --sheet-name Payments
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from . import __version__
from .assist import parse_proposal_json
from .config import DISPLAY_MODES, LOG_LEVELS, AppConfig, load_app_config
from .detection import EmptyInputError, detect_file_type, detect_structure
from .dictionary import KeywordDictionary, load_dictionary
from .engine import (
    compute_budget_summary,
    compute_budget_variance,
    compute_kpis,
    top_categories,
)
from .graph import proposal_to_graph
from .io import RawTable, read_table
from .linking import auto_link_datasets_to_model, link_parsed_sheet_to_model
from .normalization import budget_frame, normalize_deals, normalize_transactions
from .periods import PERIOD_CHOICES, determine_period_from_args
from .proposal import MissingProposalError, ModelProposal, validate_proposal
from .views import (
    kpis_to_dataframe,
    mappings_to_dataframe,
    structure_to_dataframe,
    variance_to_dataframe,
)

DEFAULT_OUTPUT_DIR = Path("data/output")

# Exit status of ``normalize`` when the mapping still needs confirmation.
EXIT_NEEDS_CONFIRMATION = 2


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="finmodel",
        description=(
            "FinModel - Data normalization & KPI engine for SMB finance "
            "dashboards. Detects the structure of financial uploads, "
            "normalizes and classifies transactions, computes KPIs and "
            "reconciles uploads with a business-model proposal."
        ),
    )

    # Generic options
    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of finmodel and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. "
            "If omitted, 'finmodel_config.toml' in the current directory is used "
            "when present."
        ),
    )
    ap.add_argument(
        "--log-level",
        dest="log_level",
        choices=list(LOG_LEVELS),
        help="Override the logging level from the configuration file.",
    )

    # Display options
    ap.add_argument(
        "--display-mode",
        dest="display_mode",
        choices=list(DISPLAY_MODES),
        help=(
            "Override the display.mode setting from the configuration file. "
            "'table' prints text tables, 'csv' writes CSV files, "
            "'json' prints a JSON document."
        ),
    )
    ap.add_argument(
        "--output",
        dest="output_dir",
        help=(
            "Output directory for CSV files when the display mode is 'csv'. "
            "If omitted, 'data/output' is used."
        ),
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # detect
    detect_p = subparsers.add_parser("detect", help="Detect the structure of an upload.")
    detect_p.add_argument("file", help="CSV or XLSX file to analyze.")

    # normalize
    normalize_p = subparsers.add_parser(
        "normalize",
        help="Normalize an upload into standard transactions.",
    )
    normalize_p.add_argument("file", help="CSV or XLSX file to normalize.")
    normalize_p.add_argument(
        "--confirm",
        action="store_true",
        help="Accept the suggested column mappings even when confirmation is needed.",
    )
    normalize_p.add_argument(
        "--output",
        dest="normalized_csv",
        metavar="CSV",
        help="Write the normalized transactions to this CSV file.",
    )

    # kpis
    kpis_p = subparsers.add_parser("kpis", help="Compute KPIs and budget variance.")
    kpis_p.add_argument(
        "--transactions",
        required=True,
        help="Normalized transactions (CSV or XLSX).",
    )
    kpis_p.add_argument("--deals", help="CRM pipeline export (CSV or XLSX).")
    kpis_p.add_argument("--budgets", help="Budget sheet, long or wide (CSV or XLSX).")
    kpis_p.add_argument(
        "--period",
        choices=list(PERIOD_CHOICES),
        help="Predefined reporting period. If omitted, all data is used.",
    )
    kpis_p.add_argument(
        "--from-date",
        dest="from_date",
        help="Custom period start date (YYYY-MM-DD).",
    )
    kpis_p.add_argument(
        "--to-date",
        dest="to_date",
        help="Custom period end date (YYYY-MM-DD). Defaults to today.",
    )

    # model
    model_p = subparsers.add_parser("model", help="Business-model proposal operations.")
    model_sub = model_p.add_subparsers(dest="model_command", metavar="model-command")

    graph_p = model_sub.add_parser("graph", help="Print the graph of a proposal.")
    graph_p.add_argument("proposal", help="Proposal JSON file.")
    graph_p.add_argument(
        "--no-fk-hints",
        dest="fk_hints",
        action="store_false",
        help="Do not synthesize foreign-key fields on graph nodes.",
    )

    validate_p = model_sub.add_parser("validate", help="Validate a proposal.")
    validate_p.add_argument("proposal", help="Proposal JSON file.")

    link_p = model_sub.add_parser("link", help="Link a parsed sheet to a proposal.")
    link_p.add_argument("proposal", help="Proposal JSON file.")
    link_p.add_argument("sheet", help="CSV or XLSX sheet to link.")
    link_p.add_argument("--sheet-name", dest="sheet_name", help="Sheet name override.")

    autolink_p = model_sub.add_parser(
        "autolink",
        help="Link uploaded datasets to the tables of a proposal.",
    )
    autolink_p.add_argument("proposal", help="Proposal JSON file.")
    autolink_p.add_argument("datasets", help="JSON array of dataset records.")

    parse_p = model_sub.add_parser(
        "parse",
        help="Parse text-generation output into a proposal.",
    )
    parse_p.add_argument("text", help="Text file holding the raw output.")

    return ap


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _render(
    sections: list[tuple[str, str, pd.DataFrame]],
    mode: str,
    output_dir: Optional[str],
) -> None:
    """
    Render (title, file stem, DataFrame) sections.

    ``table`` prints each section, ``csv`` writes one timestamped file per
    section and ``json`` prints a single document keyed by file stem.
    """
    if mode == "json":
        payload = {stem: df.to_dict(orient="records") for _, stem, df in sections}
        print(json.dumps(payload, indent=2, default=str, ensure_ascii=False))
        return

    if mode == "csv":
        out = Path(output_dir) if output_dir else DEFAULT_OUTPUT_DIR
        out.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
        for _, stem, df in sections:
            path = out / f"{stem}_{timestamp}.csv"
            df.to_csv(path, index=False)
            print(f"Wrote {path} ({len(df)} rows)")
        return

    for title, _, df in sections:
        print()
        print(f"=== {title} ===")
        print(df.to_string(index=False) if not df.empty else "(no rows)")


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def _read(parser: argparse.ArgumentParser, path: str) -> RawTable:
    try:
        return read_table(path)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))


def _read_json(parser: argparse.ArgumentParser, path: str) -> Any:
    p = Path(path)
    if not p.is_file():
        parser.error(f"File not found: {p}")
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        parser.error(f"Invalid JSON in {p}: {exc}")


def _load_proposal(parser: argparse.ArgumentParser, path: str) -> ModelProposal:
    try:
        return ModelProposal.from_dict(_read_json(parser, path))
    except MissingProposalError as exc:
        parser.error(f"{path}: {exc}")


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _handle_detect(args, parser, config: AppConfig, kd: KeywordDictionary, mode: str) -> int:
    table = _read(parser, args.file)
    try:
        result = detect_structure(
            table.rows, table.name, headers=table.headers, dictionary=kd, config=config.detection
        )
    except EmptyInputError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    file_type, confidence = detect_file_type(table.headers, kd)
    print(f"File type guess: {file_type} (confidence {confidence:.1f})")
    _render(
        [
            ("Detected structure", "structure", structure_to_dataframe(result)),
            ("Suggested mappings", "mappings", mappings_to_dataframe(result)),
        ],
        mode,
        args.output_dir,
    )
    return 0


def _handle_normalize(args, parser, config: AppConfig, kd: KeywordDictionary, mode: str) -> int:
    table = _read(parser, args.file)
    try:
        result = detect_structure(
            table.rows, table.name, headers=table.headers, dictionary=kd, config=config.detection
        )
    except EmptyInputError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if result.needs_user_confirmation and not args.confirm:
        print("The column mapping needs confirmation. Suggested mappings:")
        print(mappings_to_dataframe(result).to_string(index=False))
        print("Re-run with --confirm to accept them.")
        return EXIT_NEEDS_CONFIRMATION

    normalized = normalize_transactions(table.rows, result, confirmed=args.confirm)
    print(
        f"Normalized {len(normalized.transactions)} of {normalized.total_rows} rows "
        f"({normalized.dropped_rows} dropped)."
    )

    if args.normalized_csv:
        path = Path(args.normalized_csv)
        path.parent.mkdir(parents=True, exist_ok=True)
        normalized.transactions.to_csv(path, index=False)
        print(f"Wrote {path} ({len(normalized.transactions)} rows)")
    else:
        _render([("Transactions", "transactions", normalized.transactions)], mode, args.output_dir)
    return 0


def _handle_kpis(args, parser, config: AppConfig, kd: KeywordDictionary, mode: str) -> int:
    try:
        period = determine_period_from_args(args, ltm_months=config.kpis.ltm_months)
    except ValueError as exc:
        parser.error(str(exc))

    transactions = pd.DataFrame(_read(parser, args.transactions).rows)
    deals = normalize_deals(_read(parser, args.deals).rows, dictionary=kd) if args.deals else None
    budgets = budget_frame(_read(parser, args.budgets).rows, kd) if args.budgets else None

    metrics = compute_kpis(transactions, deals, period, config.kpis, kd)
    decimals = config.display.decimals

    print(f"Period: {metrics.period_label}")
    sections = [("KPIs", "kpis", kpis_to_dataframe(metrics, decimals))]
    if budgets is not None:
        sections.append(
            (
                "Budget summary",
                "budget_summary",
                variance_to_dataframe(
                    compute_budget_summary(transactions, budgets, period, kd), decimals
                ),
            )
        )
        sections.append(
            (
                "Budget variance",
                "budget_variance",
                variance_to_dataframe(
                    compute_budget_variance(transactions, budgets, period, kd), decimals
                ),
            )
        )
    sections.append(
        (
            "Top cost categories",
            "top_categories",
            top_categories(transactions, config.kpis.top_n, period=period, dictionary=kd),
        )
    )
    _render(sections, mode, args.output_dir)
    return 0


def _handle_model(args, parser, config: AppConfig, kd: KeywordDictionary) -> int:
    cmd = args.model_command

    if cmd == "graph":
        graph = proposal_to_graph(_read_json(parser, args.proposal), args.fk_hints)
        _print_json(graph.to_dict())
        return 0

    if cmd == "validate":
        result = validate_proposal(_read_json(parser, args.proposal))
        if result.ok:
            print("Proposal is valid.")
            return 0
        for issue in result.issues:
            print(f"- {issue}")
        return 1

    if cmd == "link":
        model = _load_proposal(parser, args.proposal)
        sheet = _read(parser, args.sheet)
        result = link_parsed_sheet_to_model(
            model, sheet.headers, args.sheet_name or sheet.name, dictionary=kd
        )
        _print_json(
            {
                "targetTable": result.target_table,
                "suggestedRelationships": [r.to_dict() for r in result.suggested_relationships],
                "updatedModel": result.updated_model.to_dict(),
            }
        )
        return 0

    if cmd == "autolink":
        model = _load_proposal(parser, args.proposal)
        datasets = _read_json(parser, args.datasets)
        if not isinstance(datasets, list):
            parser.error(f"{args.datasets}: expected a JSON array of dataset records.")
        records = [d for d in datasets if isinstance(d, dict)]
        _print_json(auto_link_datasets_to_model(model, records).to_dict())
        return 0

    if cmd == "parse":
        path = Path(args.text)
        if not path.is_file():
            parser.error(f"File not found: {path}")
        _print_json(parse_proposal_json(path.read_text(encoding="utf-8")).to_dict())
        return 0

    parser.error("model: a subcommand is required (graph, validate, link, autolink, parse).")
    return 2


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the FinModel CLI.

    Parses command-line arguments, loads the configuration and keyword
    dictionary, configures logging and dispatches to the selected command.
    Returns the process exit status.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"finmodel version {__version__}")
        return 0

    try:
        config = load_app_config(args.config_path)
        kd = load_dictionary(config.dictionary_path)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))

    logging.basicConfig(
        level=getattr(logging, args.log_level or config.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )
    mode = args.display_mode or config.display.mode

    if args.command == "detect":
        return _handle_detect(args, parser, config, kd, mode)
    if args.command == "normalize":
        return _handle_normalize(args, parser, config, kd, mode)
    if args.command == "kpis":
        return _handle_kpis(args, parser, config, kd, mode)
    if args.command == "model":
        return _handle_model(args, parser, config, kd)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
