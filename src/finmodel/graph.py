# FinModel - Data normalization & KPI engine for SMB finance dashboards
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Graph projection of a business-model proposal.

``proposal_to_graph`` turns a ModelProposal into nodes (one per table) and
edges (one per relationship) for visualization. The graph is disposable: it
is recomputed on every proposal change and never edited directly.

Identifiers are deterministic:

- node id: ``table:<slug>`` where ``<slug>`` is the lower-cased table name
  with every run of non-alphanumeric characters replaced by a single hyphen
  and edge hyphens trimmed. When two tables share a slug, the later ones get
  a numeric suffix in table order (``table:co-op``, ``table:co-op-2``).
- edge id: ``rel:<index>:<slug(from)>:<slug(to)>``.

Relationships are not deduplicated here; duplicates are prevented when
relationships are added.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .proposal import (
    FieldDef,
    FieldReference,
    MissingProposalError,
    ModelProposal,
    RelationshipDef,
)

logger = logging.getLogger(__name__)

NODE_PREFIX = "table:"
FK_FIELD_TYPE = "fk"

# Initial layout: 4 columns, staggered so nodes do not overlap on first paint.
LAYOUT_COLUMNS = 4
LAYOUT_ORIGIN = (100, 100)
LAYOUT_STEP = (260, 220)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Lower-case, collapse non-alphanumeric runs to ``-`` and trim hyphens."""
    return _NON_ALNUM.sub("-", str(text or "").lower().strip()).strip("-")


def node_id_for_table(table_name: str) -> str:
    return f"{NODE_PREFIX}{slugify(table_name)}"


def edge_id(index: int, rel: RelationshipDef) -> str:
    return f"rel:{index}:{slugify(rel.source)}:{slugify(rel.target)}"


@dataclass(frozen=True)
class GraphNode:
    id: str
    label: str
    table: str
    fields: tuple[FieldDef, ...] = ()
    position: tuple[int, int] = (0, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "table": self.table,
            "fields": [f.to_dict() for f in self.fields],
            "position": {"x": self.position[0], "y": self.position[1]},
        }


@dataclass(frozen=True)
class GraphEdge:
    id: str
    source: str
    target: str
    from_field: Optional[str] = None
    to_field: Optional[str] = None
    rel: Optional[RelationshipDef] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "fromField": self.from_field,
            "toField": self.to_field,
            "rel": self.rel.to_dict() if self.rel is not None else None,
        }


@dataclass(frozen=True)
class Graph:
    nodes: tuple[GraphNode, ...] = field(default_factory=tuple)
    edges: tuple[GraphEdge, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.nodes and not self.edges

    def node(self, node_id: str) -> Optional[GraphNode]:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


def _position(index: int) -> tuple[int, int]:
    col, row = index % LAYOUT_COLUMNS, index // LAYOUT_COLUMNS
    return (
        LAYOUT_ORIGIN[0] + col * LAYOUT_STEP[0],
        LAYOUT_ORIGIN[1] + row * LAYOUT_STEP[1],
    )


def _assign_node_ids(proposal: ModelProposal) -> list[str]:
    """Node id per table, suffixing slug collisions in table order."""
    used: set[str] = set()
    ids: list[str] = []
    for t in proposal.tables:
        base = node_id_for_table(t.name)
        node_id = base
        n = 2
        while node_id in used:
            node_id = f"{base}-{n}"
            n += 1
        if node_id != base:
            logger.warning(
                "Table %r collides with another table on id %s; using %s",
                t.name,
                base,
                node_id,
            )
        used.add(node_id)
        ids.append(node_id)
    return ids


def proposal_to_graph(
    proposal: Union[ModelProposal, Mapping[str, Any], None],
    include_fk_field_hints: bool = True,
) -> Graph:
    """
    Convert a proposal into a graph of nodes and edges.

    Parameters
    ----------
    proposal:
        A ModelProposal or its dictionary form. A dictionary without a
        ``recommendedTables`` array (or None) yields an empty graph and a
        logged warning instead of an error.
    include_fk_field_hints:
        When True, every edge whose source table lacks the edge's
        ``from`` field gets a synthesized ``fk`` field on the node,
        referencing the target table. Only the graph's copy of the fields is
        extended; the proposal is left untouched.

    Returns
    -------
    Graph
    """
    if not isinstance(proposal, ModelProposal):
        try:
            proposal = ModelProposal.from_dict(proposal)
        except MissingProposalError:
            logger.warning("Proposal has no recommendedTables; returning an empty graph")
            return Graph()

    ids = _assign_node_ids(proposal)

    # Endpoint resolution: exact table name first, then slug.
    by_name: dict[str, str] = {}
    by_slug: dict[str, str] = {}
    for t, node_id in zip(proposal.tables, ids):
        by_name.setdefault(t.name, node_id)
        by_slug.setdefault(node_id_for_table(t.name), node_id)

    def resolve(table_name: str) -> str:
        if table_name in by_name:
            return by_name[table_name]
        base = node_id_for_table(table_name)
        return by_slug.get(base, base)

    edges: list[GraphEdge] = []
    for idx, rel in enumerate(proposal.relationships):
        src, dst = rel.source_end, rel.target_end
        edges.append(
            GraphEdge(
                id=edge_id(idx, rel),
                source=resolve(src.table),
                target=resolve(dst.table),
                from_field=src.field,
                to_field=dst.field,
                rel=rel,
            )
        )

    fields_by_id: dict[str, list[FieldDef]] = {
        node_id: list(t.fields) for t, node_id in zip(proposal.tables, ids)
    }

    if include_fk_field_hints:
        for e in edges:
            if not e.from_field or not e.to_field:
                continue
            node_fields = fields_by_id.get(e.source)
            if node_fields is None:
                continue
            if any(f.name == e.from_field for f in node_fields):
                continue
            target_table = (e.rel.target_end.table if e.rel else "") or e.target
            node_fields.append(
                FieldDef(
                    name=e.from_field,
                    type=FK_FIELD_TYPE,
                    references=FieldReference(table=target_table),
                )
            )

    nodes = tuple(
        GraphNode(
            id=node_id,
            label=t.name,
            table=t.name,
            fields=tuple(fields_by_id[node_id]),
            position=_position(i),
        )
        for i, (t, node_id) in enumerate(zip(proposal.tables, ids))
    )
    return Graph(nodes=nodes, edges=tuple(edges))
