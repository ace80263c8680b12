"""Genealogical reference numbers for a root person.

Ahnentafel numbers ancestors (root 1, father 2n, mother 2n + 1). The
d'Aboville (1, 1.1, 1.1.2) and Henry (1, 11, 112, with A, B, ... from the
tenth child on) systems number descendants, children ordered by birth date
and then name. A person reached twice keeps the first number assigned.
"""
from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..exceptions import NodeNotFoundError
from ..graph.graph_store import GraphModel
from ..graph.models import GraphNode
from ..logging import get_logger
from ..models.facts import ParentRole, ParentSlot

if TYPE_CHECKING:
    from ..sync.store import RecordStore

logger = get_logger(__name__)


class NumberingSystem(str, Enum):
    """Supported numbering systems; the value is the record field written."""
    AHNENTAFEL = "ahnentafel"
    DABOVILLE = "daboville"
    HENRY = "henry"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    NumberingSystem.AHNENTAFEL: "Ahnentafel (ancestors: self=1, father=2, mother=3, ...)",
    NumberingSystem.DABOVILLE: "d'Aboville (descendants: 1, 1.1, 1.2, 1.1.1, ...)",
    NumberingSystem.HENRY: "Henry (compact descendants: 1, 11, 12, 111, ...)",
}


@dataclass(frozen=True)
class NumberAssignment:
    node_id: str
    name: str
    number: int | str


@dataclass
class NumberingResult:
    """Numbers assigned from one root in one system."""
    system: NumberingSystem
    root: str
    assignments: list[NumberAssignment] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.assignments)

    def number_of(self, node_id: str) -> int | str | None:
        for assignment in self.assignments:
            if assignment.node_id == node_id:
                return assignment.number
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "system": self.system.value,
            "root": self.root,
            "total": self.total,
            "assignments": [
                {"node_id": a.node_id, "name": a.name, "number": a.number} for a in self.assignments
            ],
        }


def henry_digit(position: int) -> str:
    """Henry digit for a 1-based child position: 1-9, then A, B, ..."""
    if position < 10:
        return str(position)
    return chr(ord("A") + position - 10)


def _birth_key(node: GraphNode) -> tuple:
    born = node.born
    if born is None:
        return (1, 0, 0, 0, node.name)
    return (0, born.year, born.month or 0, born.day or 0, node.name)


def children_by_birth(
    graph: GraphModel, node_id: str, roles: Iterable[ParentRole | str] | None = None
) -> list[GraphNode]:
    """A node's children, undated ones last, each child once."""
    children: dict[str, GraphNode] = {}
    for edge in graph.children(node_id, roles):
        child = graph.find_node(edge.target_id)
        if child is not None:
            children.setdefault(child.node_id, child)
    return sorted(children.values(), key=_birth_key)


class ReferenceNumbering:
    """Assign reference numbers over a graph snapshot.

    Example:
        >>> numbering = ReferenceNumbering(graph)
        >>> numbering.ahnentafel("me").number_of("my-mother")
        3
    """

    def __init__(
        self, graph: GraphModel, roles: Iterable[ParentRole | str] | None = (ParentRole.BIOLOGICAL,)
    ) -> None:
        self.graph = graph
        self.roles = tuple(ParentRole(r) for r in roles) if roles is not None else None

    def _root(self, node_id: str) -> GraphNode:
        node = self.graph.find_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def assign(self, system: NumberingSystem | str, root: str) -> NumberingResult:
        system = NumberingSystem(system)
        if system == NumberingSystem.AHNENTAFEL:
            return self.ahnentafel(root)
        if system == NumberingSystem.DABOVILLE:
            return self.daboville(root)
        return self.henry(root)

    def _father_and_mother(self, node_id: str) -> tuple[str | None, str | None]:
        father = mother = None
        loose: list[str] = []
        for edge in self.graph.parents(node_id, self.roles):
            slot = self.graph.parent_slot(edge)
            if slot == ParentSlot.FATHER and father is None:
                father = edge.source_id
            elif slot == ParentSlot.MOTHER and mother is None:
                mother = edge.source_id
            elif slot == ParentSlot.PARENT:
                loose.append(edge.source_id)
        # Gender-neutral parents fill whichever position is still open
        for parent in loose:
            if father is None and parent != mother:
                father = parent
            elif mother is None and parent != father:
                mother = parent
        return father, mother

    def ahnentafel(self, root: str) -> NumberingResult:
        """Number the root's ancestors breadth first."""
        result = NumberingResult(NumberingSystem.AHNENTAFEL, root)
        self._root(root)
        queue: deque[tuple[str, int]] = deque([(root, 1)])
        seen: set[str] = set()
        while queue:
            node_id, number = queue.popleft()
            if node_id in seen:
                continue
            seen.add(node_id)
            node = self.graph.find_node(node_id)
            result.assignments.append(NumberAssignment(node_id, node.name if node else node_id, number))
            father, mother = self._father_and_mother(node_id)
            if father is not None and father not in seen:
                queue.append((father, number * 2))
            if mother is not None and mother not in seen:
                queue.append((mother, number * 2 + 1))
        logger.info("numbering.assigned", system="ahnentafel", root=root, count=result.total)
        return result

    def _descendants(self, system: NumberingSystem, root: str) -> NumberingResult:
        result = NumberingResult(system, root)
        node = self._root(root)
        stack: list[tuple[GraphNode, str]] = [(node, "1")]
        seen: set[str] = set()
        while stack:
            node, number = stack.pop()
            if node.node_id in seen:
                continue
            seen.add(node.node_id)
            result.assignments.append(NumberAssignment(node.node_id, node.name, number))
            children = children_by_birth(self.graph, node.node_id, self.roles)
            numbered = []
            for position, child in enumerate(children, start=1):
                if system == NumberingSystem.DABOVILLE:
                    numbered.append((child, f"{number}.{position}"))
                else:
                    numbered.append((child, f"{number}{henry_digit(position)}"))
            # Reversed so the eldest is numbered (and descended into) first
            stack.extend(reversed(numbered))
        logger.info("numbering.assigned", system=system.value, root=root, count=result.total)
        return result

    def daboville(self, root: str) -> NumberingResult:
        """Number the root's descendants depth first, dot separated."""
        return self._descendants(NumberingSystem.DABOVILLE, root)

    def henry(self, root: str) -> NumberingResult:
        """Number the root's descendants depth first, one digit per generation."""
        return self._descendants(NumberingSystem.HENRY, root)


def write_numbers(store: RecordStore, result: NumberingResult) -> int:
    """Store each assigned number in the person's record, under the system's field."""
    name = result.system.value
    for assignment in result.assignments:
        record = store.read(assignment.node_id)
        record[name] = assignment.number
        store.write(assignment.node_id, record)
    logger.info("numbering.written", system=name, count=result.total)
    return result.total


def clear_numbers(store: RecordStore, system: NumberingSystem | str) -> int:
    """Remove one system's numbers from every record. Returns how many were cleared."""
    name = NumberingSystem(system).value
    cleared = 0
    for identifier, record in list(store.scan()):
        if name not in record:
            continue
        del record[name]
        store.write(identifier, record)
        cleared += 1
    logger.info("numbering.cleared", system=name, count=cleared)
    return cleared
