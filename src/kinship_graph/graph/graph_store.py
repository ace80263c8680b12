"""In-memory relationship graph built from typed facts.

The graph is a read cache over the record store. A snapshot is built once
and then only read; refreshes build into a copy (see projection.py).
"""
from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator
from typing import Any

from ..logging import get_logger
from ..models.facts import (
    ROLE_ORDER,
    ChildFact,
    CustomFact,
    OrgParentFact,
    ParentFact,
    ParentRole,
    ParentSlot,
    RelationshipFacts,
    SiblingFact,
    SpouseFact,
    SpouseStatus,
    parent_field_for,
)
from ..models.relationship_types import RelationshipTypeRegistry
from .models import SYMMETRIC_EDGES, Edge, EdgeKey, EdgeType, GraphNode, UpsertRejection

logger = get_logger(__name__)

_SLOT_ORDER = {ParentSlot.FATHER: 0, ParentSlot.MOTHER: 1, ParentSlot.PARENT: 2}


class GraphModel:
    """Nodes plus typed, de-duplicated edges with per-record provenance.

    Example:
        >>> graph = GraphModel()
        >>> graph.ingest(adapter.parse(record))
        >>> [e.source_id for e in graph.parents("child-1")]
        ['father-1', 'mother-1']
    """

    def __init__(self, registry: RelationshipTypeRegistry | None = None) -> None:
        self.registry = registry if registry is not None else RelationshipTypeRegistry.with_defaults()
        self.version = 0
        self.rejections: list[UpsertRejection] = []
        self._nodes: dict[str, GraphNode] = {}
        self._edges: dict[EdgeKey, Edge] = {}
        # dicts used as ordered sets of edge keys
        self._out: dict[str, dict[EdgeKey, None]] = {}
        self._in: dict[str, dict[EdgeKey, None]] = {}
        self._asserted: dict[str, dict[EdgeKey, None]] = {}
        self._seq = 0

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def upsert_node(self, node: GraphNode) -> GraphNode:
        """Insert or replace a node's attributes. Edges are untouched."""
        self._nodes[node.node_id] = node
        return node

    def upsert_edge(
        self,
        source_id: str,
        target_id: str,
        edge_type: EdgeType,
        qualifier: str = "",
        *,
        asserted_by: str | None = None,
        properties: dict[str, Any] | None = None,
        symmetric: bool | None = None,
    ) -> Edge | UpsertRejection:
        """Add an edge, or count another declaration of an existing one.

        Self-loops are rejected and returned rather than raised. Symmetric
        edges are stored once with their endpoints in sorted order.
        """
        if source_id == target_id:
            rejection = UpsertRejection(
                record_id=asserted_by,
                source_id=source_id,
                target_id=target_id,
                edge_type=edge_type,
                reason="self-loop",
            )
            self.rejections.append(rejection)
            logger.debug("graph.upsert_rejected", source=source_id, edge_type=edge_type.value, reason="self-loop")
            return rejection

        if symmetric is None:
            symmetric = edge_type in SYMMETRIC_EDGES
        if symmetric and target_id < source_id:
            source_id, target_id = target_id, source_id

        key: EdgeKey = (source_id, target_id, edge_type.value, qualifier)
        edge = self._edges.get(key)
        if edge is None:
            self._seq += 1
            edge = Edge(
                source_id=source_id,
                target_id=target_id,
                edge_type=edge_type,
                qualifier=qualifier,
                seq=self._seq,
            )
            self._edges[key] = edge
            self._out.setdefault(source_id, {})[key] = None
            self._in.setdefault(target_id, {})[key] = None

        props = {name: value for name, value in (properties or {}).items() if value is not None}
        if asserted_by is not None:
            edge.asserted_by[asserted_by] = edge.asserted_by.get(asserted_by, 0) + 1
            edge.asserted_properties.setdefault(asserted_by, {}).update(props)
            self._asserted.setdefault(asserted_by, {})[key] = None
            edge.merge_properties()
        else:
            for name, value in props.items():
                edge.properties.setdefault(name, value)
        return edge

    def _drop_edge(self, key: EdgeKey) -> None:
        edge = self._edges.pop(key, None)
        if edge is None:
            return
        self._out.get(edge.source_id, {}).pop(key, None)
        self._in.get(edge.target_id, {}).pop(key, None)

    def ingest(self, facts: RelationshipFacts) -> list[UpsertRejection]:
        """Add one record's node and every edge its facts declare.

        Re-ingesting a record replaces what it asserted before.
        """
        owner = facts.owner
        if owner in self._nodes or owner in self._asserted:
            self.retract(owner)
        placeholders: dict[str, list] = {}
        for fact in facts.facts:
            if isinstance(fact, ParentFact) and not fact.parent.is_known:
                placeholders.setdefault(parent_field_for(fact.role, fact.slot), []).append(fact.parent)

        self.upsert_node(
            GraphNode(
                node_id=owner,
                name=facts.node.name or owner,
                kind=facts.node.kind,
                sex=facts.node.sex,
                born=facts.node.born,
                died=facts.node.died,
                is_root=facts.node.is_root,
                placeholders=placeholders,
                warnings=list(facts.warnings),
            )
        )

        rejections: list[UpsertRejection] = []
        for fact in facts.facts:
            result: Edge | UpsertRejection | None = None
            if isinstance(fact, ParentFact):
                if fact.parent.is_known and fact.parent.identifier:
                    result = self.upsert_edge(
                        fact.parent.identifier, owner, EdgeType.PARENT_OF, fact.role.value,
                        asserted_by=owner, properties={"slot": fact.slot.value},
                    )
            elif isinstance(fact, ChildFact):
                result = self.upsert_edge(owner, fact.child, EdgeType.PARENT_OF, fact.role.value, asserted_by=owner)
            elif isinstance(fact, SpouseFact):
                props = {k: (v.value if isinstance(v, SpouseStatus) else v) for k, v in fact.metadata().items()}
                result = self.upsert_edge(owner, fact.spouse, EdgeType.SPOUSE_OF, asserted_by=owner, properties=props)
            elif isinstance(fact, SiblingFact):
                result = self.upsert_edge(owner, fact.sibling, EdgeType.SIBLING_OF, asserted_by=owner)
            elif isinstance(fact, CustomFact):
                result = self.upsert_edge(
                    owner, fact.other, EdgeType.CUSTOM, fact.type_id,
                    asserted_by=owner,
                    properties=fact.metadata(),
                    symmetric=self.is_symmetric(EdgeType.CUSTOM, fact.type_id),
                )
            elif isinstance(fact, OrgParentFact):
                result = self.upsert_edge(fact.org, owner, EdgeType.PARENT_ORG_OF, asserted_by=owner)
            if isinstance(result, UpsertRejection):
                rejections.append(result)
        return rejections

    def ingest_all(self, batch: Iterable[RelationshipFacts]) -> int:
        count = 0
        for facts in batch:
            self.ingest(facts)
            count += 1
        return count

    def retract(self, record_id: str) -> None:
        """Remove a record's node and everything it asserted."""
        self._nodes.pop(record_id, None)
        for key in self._asserted.pop(record_id, {}):
            edge = self._edges.get(key)
            if edge is None:
                continue
            edge.asserted_by.pop(record_id, None)
            edge.asserted_properties.pop(record_id, None)
            if not edge.asserted_by:
                self._drop_edge(key)
            else:
                edge.merge_properties()
        self.rejections = [r for r in self.rejections if r.record_id != record_id]

    def copy(self) -> GraphModel:
        """Independent copy for building the next snapshot."""
        return copy.deepcopy(self, {id(self.registry): self.registry})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_node(self, node_id: str) -> GraphNode | None:
        return self._nodes.get(node_id)

    def nodes(self) -> Iterator[GraphNode]:
        return iter(list(self._nodes.values()))

    def edges(self, edge_types: Iterable[EdgeType] | None = None) -> Iterator[Edge]:
        wanted = set(edge_types) if edge_types is not None else None
        for edge in list(self._edges.values()):
            if wanted is None or edge.edge_type in wanted:
                yield edge

    def get_edge(
        self, source_id: str, target_id: str, edge_type: EdgeType, qualifier: str = ""
    ) -> Edge | None:
        edge = self._edges.get((source_id, target_id, edge_type.value, qualifier))
        if edge is None and self.is_symmetric(edge_type, qualifier):
            edge = self._edges.get((target_id, source_id, edge_type.value, qualifier))
        return edge

    def is_symmetric(self, edge_type: EdgeType, qualifier: str = "") -> bool:
        if edge_type in SYMMETRIC_EDGES:
            return True
        if edge_type == EdgeType.CUSTOM:
            definition = self.registry.get(qualifier)
            return bool(definition and definition.symmetric)
        return False

    def neighbors(
        self,
        node_id: str,
        edge_types: Iterable[EdgeType] | None = None,
        direction: str = "both",
        include_missing: bool = False,
    ) -> list[tuple[Edge, str]]:
        """Edges touching a node with the node at the other end.

        Ordered by edge insertion. Endpoints without a record are skipped
        unless ``include_missing`` is set.
        """
        wanted = set(edge_types) if edge_types is not None else None
        keys: dict[EdgeKey, None] = {}
        if direction in ("outgoing", "both"):
            keys.update(self._out.get(node_id, {}))
        if direction in ("incoming", "both"):
            keys.update(self._in.get(node_id, {}))

        result: list[tuple[Edge, str]] = []
        for key in keys:
            edge = self._edges.get(key)
            if edge is None:
                continue
            if wanted is not None and edge.edge_type not in wanted:
                continue
            other = edge.other(node_id)
            if not include_missing and other not in self._nodes:
                continue
            result.append((edge, other))
        result.sort(key=lambda pair: pair[0].seq)
        return result

    def parent_slot(self, edge: Edge) -> ParentSlot:
        """Slot of a parent edge, falling back to the parent's sex."""
        if edge.slot is not None:
            return edge.slot
        parent = self._nodes.get(edge.source_id)
        if parent is not None and parent.is_female:
            return ParentSlot.MOTHER
        if parent is not None and parent.is_male:
            return ParentSlot.FATHER
        return ParentSlot.PARENT

    def parents(self, node_id: str, roles: Iterable[ParentRole | str] | None = None) -> list[Edge]:
        """Parent edges of a node: by role precedence, then slot, then insertion."""
        allowed = {ParentRole(r) for r in roles} if roles is not None else None
        edges = [
            edge
            for edge, _ in self.neighbors(node_id, [EdgeType.PARENT_OF], direction="incoming")
            if allowed is None or edge.role in allowed
        ]
        edges.sort(key=lambda e: (ROLE_ORDER[e.role], _SLOT_ORDER[self.parent_slot(e)], e.seq))
        return edges

    def children(self, node_id: str, roles: Iterable[ParentRole | str] | None = None) -> list[Edge]:
        allowed = {ParentRole(r) for r in roles} if roles is not None else None
        edges = [
            edge
            for edge, _ in self.neighbors(node_id, [EdgeType.PARENT_OF], direction="outgoing")
            if allowed is None or edge.role in allowed
        ]
        edges.sort(key=lambda e: (ROLE_ORDER[e.role], e.seq))
        return edges

    def parents_by_role(self, node_id: str) -> dict[ParentRole, list[str]]:
        """Adjacency view of a node's parents keyed by role-class."""
        view: dict[ParentRole, list[str]] = {}
        for edge in self.parents(node_id):
            view.setdefault(edge.role, []).append(edge.source_id)
        return view

    def spouses(self, node_id: str) -> list[str]:
        return [other for _, other in self.neighbors(node_id, [EdgeType.SPOUSE_OF])]

    def siblings(self, node_id: str) -> list[str]:
        return [other for _, other in self.neighbors(node_id, [EdgeType.SIBLING_OF])]

    def stats(self) -> dict[str, int]:
        counts: dict[str, int] = {"nodes": len(self._nodes), "edges": len(self._edges)}
        for edge in self._edges.values():
            counts[edge.edge_type.value] = counts.get(edge.edge_type.value, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        """Read-only view for renderers: nodes and typed edges only."""
        return {
            "version": self.version,
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "edges": [edge.to_dict() for edge in self._edges.values()],
        }
