# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Immutable edits of a ModelProposal.

Every function takes a proposal and returns a new one; the input is never
modified. Untouched tables and fields are shared between the old and the new
proposal (they are frozen), while the containers an edit touches are rebuilt.

Relationship integrity is kept across edits:

- ``rename_field`` rewrites every relationship endpoint, foreign-key
  reference and file column mapping that pointed at the old field name,
- ``remove_field`` drops every relationship that used the removed field,
- ``add_relationship`` ignores a relationship whose ``from`` and ``to`` are
  both already present.

Edits addressed to a table that does not exist return the proposal
unchanged.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any, Optional, Union

from .proposal import (
    FieldDef,
    FieldReference,
    FileMapping,
    ModelProposal,
    RelationshipDef,
    TableDef,
    parse_endpoint,
)

logger = logging.getLogger(__name__)

RelationshipMatcher = Union[
    Callable[[RelationshipDef], bool],
    Mapping[str, Optional[str]],
    RelationshipDef,
]


def _map_table(
    model: ModelProposal,
    table_name: str,
    fn: Callable[[TableDef], TableDef],
) -> tuple[TableDef, ...]:
    return tuple(fn(t) if t.name == table_name else t for t in model.tables)


def _rename_endpoint(endpoint: str, table_name: str, old: str, new: str) -> str:
    end = parse_endpoint(endpoint)
    if end.table == table_name and end.field == old:
        return f"{end.table}.{new}"
    return endpoint


def rename_field(
    model: ModelProposal,
    table_name: str,
    old_name: str,
    new_name: str,
) -> ModelProposal:
    """
    Rename a field of one table.

    A blank ``new_name``, a rename to the same name or to a name the table
    already has returns ``model`` unchanged. Relationship endpoints
    ``table_name.old_name`` become ``table_name.new_name``; so do foreign-key
    references from other tables and the file column mapping of the renamed
    table.
    """
    if not new_name or old_name == new_name:
        return model
    target = model.table(table_name)
    if target is not None and target.has_field(new_name):
        logger.debug("Field %s.%s already exists; rename skipped", table_name, new_name)
        return model

    def rename_in_table(t: TableDef) -> TableDef:
        fields = tuple(
            replace(f, name=new_name) if f.name == old_name else f for f in t.fields
        )
        mapping = t.file_mapping
        if mapping is not None and old_name in mapping.column_map.values():
            mapping = replace(
                mapping,
                column_map={
                    col: (new_name if target == old_name else target)
                    for col, target in mapping.column_map.items()
                },
            )
        return replace(t, fields=fields, file_mapping=mapping)

    def retarget_references(t: TableDef) -> TableDef:
        if not any(
            f.references is not None
            and f.references.table == table_name
            and f.references.field == old_name
            for f in t.fields
        ):
            return t
        return replace(
            t,
            fields=tuple(
                replace(f, references=FieldReference(table_name, new_name))
                if f.references is not None
                and f.references.table == table_name
                and f.references.field == old_name
                else f
                for f in t.fields
            ),
        )

    tables = tuple(
        retarget_references(rename_in_table(t) if t.name == table_name else t)
        for t in model.tables
    )
    relationships = tuple(
        replace(
            r,
            source=_rename_endpoint(r.source, table_name, old_name, new_name),
            target=_rename_endpoint(r.target, table_name, old_name, new_name),
        )
        for r in model.relationships
    )
    return replace(model, tables=tables, relationships=relationships)


def add_field(model: ModelProposal, table_name: str, field_def: FieldDef) -> ModelProposal:
    """Append a field to a table; a name already present is left as-is."""
    target = model.table(table_name)
    if target is None:
        return model
    if target.has_field(field_def.name):
        logger.debug("Field %s.%s already exists", table_name, field_def.name)
        return model
    return replace(
        model,
        tables=_map_table(
            model, table_name, lambda t: replace(t, fields=t.fields + (field_def,))
        ),
    )


def remove_field(model: ModelProposal, table_name: str, field_name: str) -> ModelProposal:
    """Drop a field and every relationship that references it."""

    def hits(endpoint: str) -> bool:
        end = parse_endpoint(endpoint)
        return end.table == table_name and end.field == field_name

    tables = _map_table(
        model,
        table_name,
        lambda t: replace(t, fields=tuple(f for f in t.fields if f.name != field_name)),
    )
    relationships = tuple(
        r for r in model.relationships if not (hits(r.source) or hits(r.target))
    )
    return replace(model, tables=tables, relationships=relationships)


def add_relationship(model: ModelProposal, rel: RelationshipDef) -> ModelProposal:
    """Append a relationship unless one with the same ``from`` and ``to`` exists."""
    if any(r.same_endpoints(rel) for r in model.relationships):
        return model
    return replace(model, relationships=model.relationships + (rel,))


def _matcher(predicate: RelationshipMatcher) -> Callable[[RelationshipDef], bool]:
    if isinstance(predicate, RelationshipDef):
        return predicate.same_endpoints
    if isinstance(predicate, Mapping):
        wanted_from = predicate.get("from")
        wanted_to = predicate.get("to")
        if not wanted_from and not wanted_to:
            return lambda r: False
        return lambda r: (not wanted_from or r.source == wanted_from) and (
            not wanted_to or r.target == wanted_to
        )
    return predicate


def remove_relationship(model: ModelProposal, predicate: RelationshipMatcher) -> ModelProposal:
    """
    Remove relationships matching ``predicate``.

    ``predicate`` is either a callable returning True for relationships to
    remove, a RelationshipDef (matched on ``from`` and ``to``), or a partial
    ``{"from": ..., "to": ...}`` mapping. With a mapping, a relationship is
    removed only when every provided key matches exactly; an empty mapping
    removes nothing.
    """
    match = _matcher(predicate)
    return replace(
        model,
        relationships=tuple(r for r in model.relationships if not match(r)),
    )


def upsert_file_mapping(
    model: ModelProposal,
    table_name: str,
    mapping: Union[FileMapping, Mapping[str, Any]],
) -> ModelProposal:
    """
    Create or merge the file mapping of a table.

    A new ``file_name`` replaces the old one; column maps are merged, with the
    new entries winning.
    """
    incoming = mapping if isinstance(mapping, FileMapping) else FileMapping.from_dict(mapping)
    if incoming is None:
        return model

    def merge(t: TableDef) -> TableDef:
        current = t.file_mapping or FileMapping()
        return replace(
            t,
            file_mapping=FileMapping(
                file_name=incoming.file_name or current.file_name,
                column_map={**current.column_map, **incoming.column_map},
            ),
        )

    return replace(model, tables=_map_table(model, table_name, merge))
