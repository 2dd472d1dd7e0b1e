# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Business-model proposal types.

A ModelProposal is the editable business schema of a workspace: a business
type, a list of tables (each with fields and optional file-linkage metadata)
and a list of relationships between ``Table.field`` endpoints.

All types are frozen dataclasses holding tuples, so a proposal can be shared
freely; every edit (see ``edits.py`` and ``linking.py``) builds a new object.
The ``meta`` dictionary is treated as copy-on-write: code in this package
never mutates a proposal's ``meta`` in place.

Dictionaries exchanged with the outside world (persisted blobs, JSON files,
assist output) use camelCase keys:

    {
      "businessType": "Yoga studio",
      "recommendedTables": [
        {"name": "bookings", "fields": [{"name": "booking_id", "type": "string"}]}
      ],
      "relationships": [{"from": "bookings.session_id", "to": "sessions.session_id"}],
      "meta": {"notes": ["..."]}
    }
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional


class MissingProposalError(ValueError):
    """Raised when a proposal has no ``recommendedTables`` array."""


@dataclass(frozen=True)
class Endpoint:
    """One side of a relationship: ``Table`` or ``Table.field``."""

    table: str
    field: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.table}.{self.field}" if self.field else self.table


def parse_endpoint(endpoint: str) -> Endpoint:
    """
    Split ``"Table.field"`` into its parts.

    Only the first dot separates table and field; anything after a second dot
    is ignored. An empty field is reported as None.
    """
    parts = str(endpoint or "").split(".")
    table = parts[0].strip()
    field_name = parts[1].strip() if len(parts) > 1 else ""
    return Endpoint(table=table, field=field_name or None)


@dataclass(frozen=True)
class FieldReference:
    """Target of a foreign-key field."""

    table: str
    field: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"table": self.table}
        if self.field:
            out["field"] = self.field
        return out


@dataclass(frozen=True)
class FieldDef:
    """A column of a proposed table."""

    name: str
    type: str = "string"
    nullable: Optional[bool] = None
    primary_key: Optional[bool] = None
    references: Optional[FieldReference] = None

    @classmethod
    def from_dict(cls, data: Any) -> "FieldDef":
        """Build a FieldDef; a bare string is a string-typed field name."""
        if isinstance(data, str):
            return cls(name=data.strip())
        if not isinstance(data, Mapping):
            return cls(name=str(data))

        ref_raw = data.get("references")
        reference = None
        if isinstance(ref_raw, Mapping) and ref_raw.get("table"):
            reference = FieldReference(
                table=str(ref_raw["table"]),
                field=str(ref_raw["field"]) if ref_raw.get("field") else None,
            )

        nullable = data.get("nullable")
        primary_key = data.get("primaryKey")
        return cls(
            name=str(data.get("name") or "").strip(),
            type=str(data.get("type") or "string"),
            nullable=bool(nullable) if nullable is not None else None,
            primary_key=bool(primary_key) if primary_key is not None else None,
            references=reference,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name, "type": self.type}
        if self.nullable is not None:
            out["nullable"] = self.nullable
        if self.primary_key is not None:
            out["primaryKey"] = self.primary_key
        if self.references is not None:
            out["references"] = self.references.to_dict()
        return out


@dataclass(frozen=True)
class FileMapping:
    """Ingestion metadata of a table: source file and column -> field map."""

    file_name: Optional[str] = None
    column_map: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Optional["FileMapping"]:
        if not isinstance(data, Mapping):
            return None
        cmap = data.get("columnMap")
        return cls(
            file_name=str(data["fileName"]) if data.get("fileName") else None,
            column_map=(
                {str(k): str(v) for k, v in cmap.items()}
                if isinstance(cmap, Mapping)
                else {}
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"columnMap": dict(self.column_map)}
        if self.file_name:
            out["fileName"] = self.file_name
        return out


@dataclass(frozen=True)
class LinkedMeta:
    """Advisory description of the dataset linked to a table."""

    dataset_name: Optional[str] = None
    detected_table: Optional[str] = None
    confidence: Any = "n/a"

    def to_dict(self) -> dict[str, Any]:
        return {
            "datasetName": self.dataset_name,
            "detectedTable": self.detected_table,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class TableDef:
    """
    A proposed table.

    ``is_linked``, ``linked_dataset_id`` and ``linked_meta`` are set by
    auto-link. ``is_linked`` stays None until auto-link has run.
    """

    name: str
    fields: tuple[FieldDef, ...] = ()
    file_mapping: Optional[FileMapping] = None
    is_linked: Optional[bool] = None
    linked_dataset_id: Optional[str] = None
    linked_meta: Optional[LinkedMeta] = None

    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def has_field(self, name: str) -> bool:
        return any(f.name == name for f in self.fields)

    @classmethod
    def from_dict(cls, data: Any) -> "TableDef":
        if not isinstance(data, Mapping):
            return cls(name=str(data or "").strip())

        fields_raw = data.get("fields")
        fields = (
            tuple(FieldDef.from_dict(f) for f in fields_raw)
            if isinstance(fields_raw, list)
            else ()
        )

        linked_meta = None
        meta_raw = data.get("linkedMeta")
        if isinstance(meta_raw, Mapping):
            linked_meta = LinkedMeta(
                dataset_name=meta_raw.get("datasetName"),
                detected_table=meta_raw.get("detectedTable"),
                confidence=meta_raw.get("confidence", "n/a"),
            )

        is_linked = data.get("isLinked")
        linked_id = data.get("linkedDatasetId")
        return cls(
            name=str(data.get("name") or "").strip(),
            fields=fields,
            file_mapping=FileMapping.from_dict(data.get("fileMapping")),
            is_linked=bool(is_linked) if is_linked is not None else None,
            linked_dataset_id=str(linked_id) if linked_id is not None else None,
            linked_meta=linked_meta,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.file_mapping is not None:
            out["fileMapping"] = self.file_mapping.to_dict()
        if self.is_linked is not None:
            out["isLinked"] = self.is_linked
            out["linkedDatasetId"] = self.linked_dataset_id
        if self.linked_meta is not None:
            out["linkedMeta"] = self.linked_meta.to_dict()
        return out


@dataclass(frozen=True)
class RelationshipDef:
    """A relationship between two ``Table.field`` endpoints."""

    source: str
    target: str
    type: Optional[str] = None

    @property
    def source_end(self) -> Endpoint:
        return parse_endpoint(self.source)

    @property
    def target_end(self) -> Endpoint:
        return parse_endpoint(self.target)

    def same_endpoints(self, other: "RelationshipDef") -> bool:
        return self.source == other.source and self.target == other.target

    @classmethod
    def from_dict(cls, data: Any) -> "RelationshipDef":
        if not isinstance(data, Mapping):
            return cls(source="", target="")
        rel_type = data.get("type")
        return cls(
            source=str(data.get("from") or "").strip(),
            target=str(data.get("to") or "").strip(),
            type=str(rel_type) if rel_type else None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"from": self.source, "to": self.target}
        if self.type:
            out["type"] = self.type
        return out


@dataclass(frozen=True)
class ModelProposal:
    """
    Editable business schema.

    Attributes:
        business_type: Free-text business type, if known.
        tables: Proposed tables, in display order.
        relationships: Relationships, in insertion order.
        meta: Opaque metadata; ``meta["notes"]`` is an append-only list of
            human-readable notes.
    """

    business_type: Optional[str] = None
    tables: tuple[TableDef, ...] = ()
    relationships: tuple[RelationshipDef, ...] = ()
    meta: Mapping[str, Any] = field(default_factory=dict)

    @property
    def notes(self) -> tuple[str, ...]:
        notes = self.meta.get("notes")
        if isinstance(notes, (list, tuple)):
            return tuple(str(n) for n in notes)
        if isinstance(notes, str) and notes:
            return (notes,)
        return ()

    def table(self, name: str) -> Optional[TableDef]:
        """Return the table named exactly ``name``, if any."""
        for t in self.tables:
            if t.name == name:
                return t
        return None

    def has_table(self, name: str) -> bool:
        return self.table(name) is not None

    def table_names(self) -> tuple[str, ...]:
        return tuple(t.name for t in self.tables)

    @classmethod
    def from_dict(cls, data: Any) -> "ModelProposal":
        """
        Build a proposal from its camelCase dictionary form.

        Raises:
            MissingProposalError: if ``data`` is not a mapping or has no
                ``recommendedTables`` list.
        """
        if not isinstance(data, Mapping) or not isinstance(
            data.get("recommendedTables"), list
        ):
            raise MissingProposalError("Proposal has no recommendedTables array.")

        rels_raw = data.get("relationships")
        relationships = (
            tuple(RelationshipDef.from_dict(r) for r in rels_raw)
            if isinstance(rels_raw, list)
            else ()
        )
        meta = data.get("meta")
        business_type = data.get("businessType")
        return cls(
            business_type=str(business_type) if business_type else None,
            tables=tuple(TableDef.from_dict(t) for t in data["recommendedTables"]),
            relationships=relationships,
            meta=dict(meta) if isinstance(meta, Mapping) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "recommendedTables": [t.to_dict() for t in self.tables],
            "relationships": [r.to_dict() for r in self.relationships],
        }
        if self.business_type:
            out["businessType"] = self.business_type
        if self.meta:
            out["meta"] = {
                k: list(v) if isinstance(v, tuple) else v for k, v in self.meta.items()
            }
        return out


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of ``validate_proposal``; ``issues`` is empty when ok."""

    issues: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.issues


def validate_proposal(model: Any) -> ValidationResult:
    """
    Check the structural shape of a proposal.

    Accepts either a ModelProposal or its raw dictionary form (for example
    freshly decoded assist output). Reported issues:

    - missing or invalid ``recommendedTables``,
    - tables without a name or with a non-list ``fields``,
    - missing or invalid ``relationships``,
    - relationships without ``from`` or ``to``.
    """
    issues: list[str] = []

    if isinstance(model, ModelProposal):
        for t in model.tables:
            if not t.name:
                issues.append("Table missing name.")
        for r in model.relationships:
            if not r.source or not r.target:
                issues.append('Relationship missing "from" or "to".')
        return ValidationResult(tuple(issues))

    data = model if isinstance(model, Mapping) else {}

    tables = data.get("recommendedTables")
    if not isinstance(tables, list):
        issues.append("Missing or invalid recommendedTables.")
    else:
        for t in tables:
            t_map = t if isinstance(t, Mapping) else {}
            if not t_map.get("name"):
                issues.append("Table missing name.")
            if not isinstance(t_map.get("fields"), list):
                issues.append(f'Table "{t_map.get("name", "")}" has invalid fields array.')

    rels = data.get("relationships")
    if not isinstance(rels, list):
        issues.append("Missing or invalid relationships array.")
    else:
        for r in rels:
            r_map = r if isinstance(r, Mapping) else {}
            if not r_map.get("from") or not r_map.get("to"):
                issues.append('Relationship missing "from" or "to".')

    return ValidationResult(tuple(issues))
