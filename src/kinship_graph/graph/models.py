"""Node and edge models for the in-memory relationship graph."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, computed_field

from ..dates import FuzzyDate
from ..models.facts import NodeKind, ParentRef, ParentRole, ParentSlot, ParseWarning


class EdgeType(str, Enum):
    """Types of edges in the relationship graph."""
    PARENT_OF = "PARENT_OF"  # source is the parent
    SPOUSE_OF = "SPOUSE_OF"
    SIBLING_OF = "SIBLING_OF"
    CUSTOM = "CUSTOM"  # qualifier holds the relationship type id
    PARENT_ORG_OF = "PARENT_ORG_OF"  # source is the parent organization


SYMMETRIC_EDGES = frozenset({EdgeType.SPOUSE_OF, EdgeType.SIBLING_OF})

EdgeKey = tuple[str, str, str, str]


@dataclass
class GraphNode:
    """A person or organization in the graph."""
    node_id: str
    name: str = ""
    kind: NodeKind = NodeKind.PERSON
    sex: str | None = None
    born: FuzzyDate | None = None
    died: FuzzyDate | None = None
    is_root: bool = False
    # Parent slots without a known parent, keyed by parent field name
    placeholders: dict[str, list[ParentRef]] = field(default_factory=dict)
    warnings: list[ParseWarning] = field(default_factory=list)

    @property
    def is_female(self) -> bool:
        return (self.sex or "").upper().startswith("F")

    @property
    def is_male(self) -> bool:
        return (self.sex or "").upper().startswith("M")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "node_id": self.node_id,
            "name": self.name,
            "kind": self.kind.value,
            "sex": self.sex,
            "born": str(self.born) if self.born else None,
            "died": str(self.died) if self.died else None,
            "is_root": self.is_root,
            "placeholders": {
                name: [ref.status.value for ref in refs] for name, refs in self.placeholders.items()
            },
        }


@dataclass
class Edge:
    """A typed relationship between two nodes.

    One edge exists per identity triple; repeated declarations are counted
    per asserting record instead of creating parallel edges. Each asserting
    record keeps its own metadata (two spouses may record different
    marriage dates); ``properties`` is the merged view, earliest asserter
    first.
    """
    source_id: str
    target_id: str
    edge_type: EdgeType
    qualifier: str = ""  # parent role or custom type id
    properties: dict[str, Any] = field(default_factory=dict)
    asserted_by: dict[str, int] = field(default_factory=dict)
    asserted_properties: dict[str, dict[str, Any]] = field(default_factory=dict)
    seq: int = 0  # insertion order

    @property
    def key(self) -> EdgeKey:
        return (self.source_id, self.target_id, self.edge_type.value, self.qualifier)

    @property
    def role(self) -> ParentRole | None:
        if self.edge_type != EdgeType.PARENT_OF:
            return None
        return ParentRole(self.qualifier)

    @property
    def slot(self) -> ParentSlot | None:
        raw = self.properties.get("slot")
        return ParentSlot(raw) if raw else None

    def other(self, node_id: str) -> str:
        return self.target_id if node_id == self.source_id else self.source_id

    def properties_for(self, record_id: str) -> dict[str, Any]:
        """Metadata as declared by one asserting record."""
        return dict(self.asserted_properties.get(record_id, {}))

    def merge_properties(self) -> None:
        merged: dict[str, Any] = {}
        for props in self.asserted_properties.values():
            for name, value in props.items():
                merged.setdefault(name, value)
        self.properties = merged

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "source_id": self.source_id,
            "target_id": self.target_id,
            "edge_type": self.edge_type.value,
            "qualifier": self.qualifier,
            "properties": dict(self.properties),
            "asserted_properties": {k: dict(v) for k, v in self.asserted_properties.items()},
            "asserted_by": sorted(self.asserted_by),
        }


@dataclass(frozen=True)
class UpsertRejection:
    """An edge the graph refused to store."""
    record_id: str | None
    source_id: str
    target_id: str
    edge_type: EdgeType
    reason: str


class ProjectionStatus(str, Enum):
    """Status of the graph projection."""
    SYNCED = "synced"
    SYNCING = "syncing"
    STALE = "stale"
    ERROR = "error"


class ProjectionMetadata(BaseModel):
    """Metadata about the current graph snapshot."""
    status: ProjectionStatus = ProjectionStatus.STALE
    last_sync_at: datetime | None = None
    version: int = 0
    total_nodes: int = 0
    total_edges: int = 0
    records_skipped: int = 0
    sync_duration_ms: float = 0.0
    error_message: str | None = None

    @computed_field
    @property
    def is_current(self) -> bool:
        return self.status == ProjectionStatus.SYNCED

    def touch(self) -> None:
        self.last_sync_at = datetime.now(UTC)
