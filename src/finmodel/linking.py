# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Reconciliation of uploaded data with a business-model proposal.

Two operations are provided:

1) ``link_parsed_sheet_to_model(model, columns, sheet_name)``
   Attach one parsed sheet to the model. The target table is chosen by
   sheet name (singularized, exact or substring match against table names),
   then by archetype detection on the columns, defaulting to ``bookings``.
   The target table is created or extended with the sheet's columns, the
   minimal upstream tables of its archetype are added, and relationships
   from the archetype adjacency table are suggested and appended.

2) ``auto_link_datasets_to_model(model, datasets)``
   Mark every table as linked to the first uploaded dataset whose detected
   table, sheet name or display name matches the table name. The operation
   is idempotent: running it twice with the same datasets gives the same
   linkage.

Both return new proposals and leave their input untouched.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any, Optional, Union

from .dictionary import KeywordDictionary, default_dictionary
from .proposal import FieldDef, LinkedMeta, ModelProposal, RelationshipDef, TableDef

logger = logging.getLogger(__name__)

DEFAULT_ARCHETYPE = "bookings"

# Archetype -> tables that must exist for its graph to be connected, each
# created with a single identifier field.
UPSTREAM_TABLES: dict[str, tuple[str, ...]] = {
    "payments": ("bookings", "customers"),
    "bookings": ("sessions", "customers"),
}

# Archetype -> (referenced table, key field) pairs, in suggestion order.
ARCHETYPE_ADJACENCY: dict[str, tuple[tuple[str, str], ...]] = {
    "payments": (("bookings", "booking_id"), ("customers", "customer_id")),
    "bookings": (("sessions", "session_id"), ("customers", "customer_id")),
    "sessions": (("coaches", "coach_id"),),
}

_ID_FIELDS: dict[str, str] = {
    "bookings": "booking_id",
    "sessions": "session_id",
    "customers": "customer_id",
    "coaches": "coach_id",
    "payments": "payment_id",
}


@dataclass(frozen=True)
class LinkResult:
    """Outcome of ``link_parsed_sheet_to_model``."""

    updated_model: ModelProposal
    target_table: str
    suggested_relationships: tuple[RelationshipDef, ...] = ()


@dataclass(frozen=True)
class LinkedDataset:
    """
    Identity and classification metadata of an uploaded dataset.

    Attributes:
        id: Dataset identifier stored on the linked table.
        dataset_name: Display name (usually the file name).
        detected_table: Table guess stored directly in the source metadata.
        sheet_name: Sheet the dataset was read from, if any.
        ai_detected_table: Table guess of a text-generation classifier.
        ai_confidence: Confidence reported with ``ai_detected_table``.
    """

    id: str
    dataset_name: str = ""
    detected_table: str = ""
    sheet_name: str = ""
    ai_detected_table: str = ""
    ai_confidence: Any = None

    @property
    def detected(self) -> str:
        return (self.detected_table or self.ai_detected_table).strip().lower()

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "LinkedDataset":
        """
        Build from a stored dataset record.

        Expected shape (every key optional except ``id``)::

            {"id": "...", "dataset_name": "...",
             "source_meta": {"detectedTable": "...", "sheetName": "...",
                             "aiClassification": {"detectedTable": "...",
                                                  "confidence": 0.9}}}
        """
        meta = record.get("source_meta")
        meta = meta if isinstance(meta, Mapping) else {}
        ai = meta.get("aiClassification")
        ai = ai if isinstance(ai, Mapping) else {}

        def text(value: Any) -> str:
            return str(value).strip() if value is not None else ""

        return cls(
            id=text(record.get("id")),
            dataset_name=text(record.get("dataset_name")),
            detected_table=text(meta.get("detectedTable")),
            sheet_name=text(meta.get("sheetName")),
            ai_detected_table=text(ai.get("detectedTable")),
            ai_confidence=ai.get("confidence"),
        )


def detect_target_table(
    columns: Sequence[str],
    dictionary: Optional[KeywordDictionary] = None,
) -> str:
    """
    Guess the business-entity archetype of a sheet from its columns.

    Archetypes are tried in dictionary order; the first one with a pattern
    matching the space-joined column names wins. Defaults to ``bookings``.
    """
    kd = dictionary or default_dictionary()
    joined = " ".join(str(c) for c in columns)
    for name, patterns in kd.archetype_patterns():
        if any(p.search(joined) for p in patterns):
            return name
    return DEFAULT_ARCHETYPE


def _find_table(tables: Sequence[TableDef], name: str) -> Optional[TableDef]:
    wanted = name.lower()
    for t in tables:
        if t.name.lower() == wanted:
            return t
    return None


def _match_sheet_name(tables: Sequence[TableDef], sheet_name: Optional[str]) -> Optional[str]:
    normalized = (sheet_name or "").strip().lower()
    if normalized.endswith("s"):
        normalized = normalized[:-1]
    if not normalized:
        return None
    for t in tables:
        name = t.name.lower()
        if not name:
            continue
        if name == normalized or name in normalized or normalized in name:
            return t.name
    return None


def _unique_columns(columns: Iterable[Any]) -> list[str]:
    seen: list[str] = []
    for c in columns:
        name = str(c).strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def _ensure_table(tables: list[TableDef], name: str, columns: list[str]) -> None:
    existing = _find_table(tables, name)
    if existing is None:
        tables.append(TableDef(name=name, fields=tuple(FieldDef(name=c) for c in columns)))
        return
    new_fields = tuple(FieldDef(name=c) for c in columns if not existing.has_field(c))
    if new_fields:
        tables[tables.index(existing)] = replace(existing, fields=existing.fields + new_fields)


def link_parsed_sheet_to_model(
    model: ModelProposal,
    columns: Sequence[str],
    sheet_name: Optional[str] = None,
    dictionary: Optional[KeywordDictionary] = None,
) -> LinkResult:
    """
    Attach a parsed sheet to a proposal.

    Parameters
    ----------
    model:
        Current proposal; not modified.
    columns:
        Header names of the parsed sheet.
    sheet_name:
        Optional sheet (or file) name, used first to find the target table.
    dictionary:
        Keyword dictionary providing the archetype patterns.

    Returns
    -------
    LinkResult
        The new proposal, the chosen target table and the relationships
        suggested for it. Suggestions already present in the model (same
        ``from`` and ``to``) are not appended twice, and existing field
        definitions are never overwritten.
    """
    tables = list(model.tables)
    cols = _unique_columns(columns)

    target = _match_sheet_name(tables, sheet_name) or detect_target_table(cols, dictionary)
    _ensure_table(tables, target, cols)

    archetype = target.lower()
    for upstream in UPSTREAM_TABLES.get(archetype, ()):
        if _find_table(tables, upstream) is None:
            tables.append(TableDef(name=upstream, fields=(FieldDef(name=_ID_FIELDS[upstream]),)))

    suggestions: list[RelationshipDef] = []
    for ref_table, key in ARCHETYPE_ADJACENCY.get(archetype, ()):
        existing = _find_table(tables, ref_table)
        if existing is not None:
            suggestions.append(
                RelationshipDef(source=f"{target}.{key}", target=f"{existing.name}.{key}")
            )

    relationships = list(model.relationships)
    for s in suggestions:
        if not any(r.same_endpoints(s) for r in relationships):
            relationships.append(s)

    note = (
        f'Linked sheet "{sheet_name}" as {target}' if sheet_name else f"Linked data as {target}"
    )
    meta = dict(model.meta)
    meta["notes"] = list(model.notes) + [note]

    logger.info("%s (%d relationships suggested)", note, len(suggestions))
    return LinkResult(
        updated_model=replace(
            model, tables=tuple(tables), relationships=tuple(relationships), meta=meta
        ),
        target_table=target,
        suggested_relationships=tuple(suggestions),
    )


def _contains_either_way(a: str, b: str) -> bool:
    return bool(a) and (a == b or a in b or b in a)


def _dataset_matches(ds: LinkedDataset, table_name: str) -> bool:
    if _contains_either_way(ds.detected, table_name):
        return True
    if _contains_either_way(ds.sheet_name.lower(), table_name):
        return True
    return _contains_either_way(ds.dataset_name.lower(), table_name)


def auto_link_datasets_to_model(
    model: ModelProposal,
    datasets: Iterable[Union[LinkedDataset, Mapping[str, Any]]],
) -> ModelProposal:
    """
    Link each table to the first matching uploaded dataset.

    For every table, datasets are scanned in input order and the first one
    whose detected table, sheet name or display name equals or contains the
    table name (or is contained in it), compared case-insensitively, is
    linked. Tables without a match, or without a name, are marked unlinked.
    Linkage depends only on table names and the datasets, so the operation is
    idempotent.
    """
    pool = [d if isinstance(d, LinkedDataset) else LinkedDataset.from_record(d) for d in datasets]

    tables: list[TableDef] = []
    for t in model.tables:
        name = t.name.strip().lower()
        match = next((d for d in pool if name and _dataset_matches(d, name)), None)
        if match is None:
            tables.append(replace(t, is_linked=False, linked_dataset_id=None, linked_meta=None))
            continue

        logger.info(
            "Table %r linked with dataset %r (detected=%s)",
            t.name,
            match.dataset_name,
            match.ai_detected_table or match.detected_table or "-",
        )
        tables.append(
            replace(
                t,
                is_linked=True,
                linked_dataset_id=match.id or None,
                linked_meta=LinkedMeta(
                    dataset_name=match.dataset_name or None,
                    detected_table=match.ai_detected_table or match.detected_table or None,
                    confidence=match.ai_confidence if match.ai_confidence else "n/a",
                ),
            )
        )

    return replace(model, tables=tuple(tables))
