"""Lineage tracking: named lines of descent from a root person.

A lineage follows every child (``all``), only children whose father is the
current person (``patrilineal``), or only those whose mother is
(``matrilineal``). Members are stored back on the records as a ``lineage``
list so a person can belong to several lines.
"""
from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..exceptions import NodeNotFoundError, RecordNotFoundError
from ..graph.graph_store import GraphModel
from ..graph.models import GraphNode
from ..logging import get_logger
from ..models.facts import ParentRole, ParentSlot

if TYPE_CHECKING:
    from ..sync.store import RecordStore

logger = get_logger(__name__)

LINEAGE_FIELD = "lineage"


class LineageType(str, Enum):
    ALL = "all"
    PATRILINEAL = "patrilineal"  # father to child
    MATRILINEAL = "matrilineal"  # mother to child


_FOLLOWS = {LineageType.PATRILINEAL: ParentSlot.FATHER, LineageType.MATRILINEAL: ParentSlot.MOTHER}


@dataclass(frozen=True)
class LineageMember:
    node_id: str
    name: str
    generation: int  # 0 for the root
    path: tuple[str, ...]  # node ids from the root to this member


@dataclass
class Lineage:
    """Members of one named line of descent."""
    name: str
    root: str
    lineage_type: LineageType
    members: list[LineageMember] = field(default_factory=list)

    @property
    def max_generation(self) -> int:
        return max((m.generation for m in self.members), default=0)

    @property
    def member_ids(self) -> list[str]:
        return [m.node_id for m in self.members]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "root": self.root,
            "type": self.lineage_type.value,
            "total": len(self.members),
            "max_generation": self.max_generation,
            "members": [
                {"node_id": m.node_id, "name": m.name, "generation": m.generation, "path": list(m.path)}
                for m in self.members
            ],
        }


def suggest_name(node: GraphNode) -> str:
    """Default lineage name: the root's surname, e.g. "Smith Line"."""
    parts = (node.name or node.node_id).split()
    return f"{parts[-1] if parts else node.node_id} Line"


class LineageTracker:
    """Trace lines of descent over a graph snapshot.

    Example:
        >>> tracker = LineageTracker(graph)
        >>> tracker.trace("john-smith", LineageType.PATRILINEAL).member_ids
        ['john-smith', 'william-smith']
    """

    def __init__(
        self, graph: GraphModel, roles: Iterable[ParentRole | str] | None = (ParentRole.BIOLOGICAL,)
    ) -> None:
        self.graph = graph
        self.roles = tuple(ParentRole(r) for r in roles) if roles is not None else None

    def trace(
        self,
        root: str,
        lineage_type: LineageType | str = LineageType.ALL,
        name: str | None = None,
    ) -> Lineage:
        """Breadth-first descent from ``root``; each person is counted once."""
        lineage_type = LineageType(lineage_type)
        root_node = self.graph.find_node(root)
        if root_node is None:
            raise NodeNotFoundError(root)

        lineage = Lineage(name or suggest_name(root_node), root, lineage_type)
        follow = _FOLLOWS.get(lineage_type)
        queue: deque[tuple[GraphNode, int, tuple[str, ...]]] = deque([(root_node, 0, (root,))])
        seen: set[str] = set()
        while queue:
            node, generation, path = queue.popleft()
            if node.node_id in seen:
                continue
            seen.add(node.node_id)
            lineage.members.append(LineageMember(node.node_id, node.name, generation, path))

            for edge in self.graph.children(node.node_id, self.roles):
                if follow is not None and self.graph.parent_slot(edge) != follow:
                    continue
                child = self.graph.find_node(edge.target_id)
                if child is None or child.node_id in seen:
                    continue
                queue.append((child, generation + 1, path + (child.node_id,)))

        logger.info(
            "lineage.traced",
            lineage=lineage.name,
            root=root,
            type=lineage_type.value,
            members=len(lineage.members),
        )
        return lineage

    def trace_roots(self, lineage_type: LineageType | str = LineageType.ALL) -> list[Lineage]:
        """One lineage per node marked as a root person."""
        return [self.trace(node.node_id, lineage_type) for node in self.graph.nodes() if node.is_root]


# ----------------------------------------------------------------------
# Record storage
# ----------------------------------------------------------------------


def lineages_of(record: Mapping[str, Any]) -> list[str]:
    """Lineage names on a record; a single string counts as one."""
    value = record.get(LINEAGE_FIELD)
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []


def assign_lineage(store: RecordStore, lineage: Lineage) -> int:
    """Add the lineage name to every member's record. Returns records changed."""
    changed = 0
    for member in lineage.members:
        record = store.read(member.node_id)
        names = lineages_of(record)
        if lineage.name in names:
            continue
        record[LINEAGE_FIELD] = names + [lineage.name]
        store.write(member.node_id, record)
        changed += 1
    logger.info("lineage.assigned", lineage=lineage.name, changed=changed)
    return changed


def remove_lineage(store: RecordStore, name: str) -> int:
    """Drop a lineage name from every record that carries it."""
    removed = 0
    for identifier, record in list(store.scan()):
        names = lineages_of(record)
        if name not in names:
            continue
        names = [n for n in names if n != name]
        if names:
            record[LINEAGE_FIELD] = names
        else:
            record.pop(LINEAGE_FIELD, None)
        store.write(identifier, record)
        removed += 1
    logger.info("lineage.removed", lineage=name, removed=removed)
    return removed


def all_lineages(store: RecordStore) -> list[str]:
    names: set[str] = set()
    for _, record in store.scan():
        names.update(lineages_of(record))
    return sorted(names)


def members_of(store: RecordStore, name: str) -> list[str]:
    return [identifier for identifier, record in store.scan() if name in lineages_of(record)]


def common_lineages(store: RecordStore, a: str, b: str) -> list[str]:
    """Lineages both people belong to, in the first person's order."""
    try:
        first = lineages_of(store.read(a))
        second = set(lineages_of(store.read(b)))
    except RecordNotFoundError:
        return []
    return [name for name in first if name in second]
