"""Relationship validator: a read-only structural pass over a graph snapshot."""
from __future__ import annotations

from collections.abc import Callable, Iterable

from ..config import CONFIG, EngineConfig
from ..graph.graph_store import GraphModel
from ..graph.models import Edge, EdgeType
from ..logging import get_logger
from ..models.facts import ParentRole, ParentSlot, ParentStatus, parent_field_for
from .models import (
    Cycle,
    DanglingReference,
    DuplicateEdge,
    ExcessParents,
    ImplausibleTimeline,
    MissingReciprocal,
    ParseIssue,
    SelfRelationship,
    Severity,
    UnknownParentWithoutPlaceholder,
    ValidationReport,
)

logger = get_logger(__name__)

# Record field each edge type is declared in, from the given endpoint's side
_FIELD_FOR = {
    EdgeType.SPOUSE_OF: "spouses",
    EdgeType.SIBLING_OF: "sibling_id",
    EdgeType.CUSTOM: "relationships",
    EdgeType.PARENT_ORG_OF: "parent_org",
}

_WHITE, _GRAY, _BLACK = 0, 1, 2


class _Cancelled(Exception):
    pass


def _label(edge: Edge) -> str:
    return f"{edge.edge_type.value}:{edge.qualifier}" if edge.qualifier else edge.edge_type.value


# Date bounds are None for "before"/"after" dates; an open bound never proves anything.

def _precedes(latest: int | None, earliest: int | None) -> bool:
    return latest is not None and earliest is not None and latest < earliest


def _span(start: int | None, end: int | None) -> int | None:
    if start is None or end is None:
        return None
    return end - start


def _gap(start: int | None, end: int | None) -> int:
    return _span(start, end) or 0


class RelationshipValidator:
    """Produce typed findings for a graph. Never mutates it.

    Example:
        >>> report = RelationshipValidator(projection.snapshot).validate()
        >>> [f.kind for f in report.errors]
        ['cycle']
    """

    def __init__(self, graph: GraphModel, config: EngineConfig | None = None) -> None:
        self.graph = graph
        self.registry = graph.registry
        self.config = config or CONFIG

    def validate(self, cancel: Callable[[], bool] | None = None) -> ValidationReport:
        """Run every check.

        Args:
            cancel: Polled between units of work; returning True stops the
                pass and yields a partial report with ``complete=False``
        """
        report = ValidationReport(graph_version=self.graph.version)
        checks = (
            self._check_parse_issues,
            self._check_self_relationships,
            self._check_edges,
            self._check_parents,
            self._check_cycles,
            self._check_timeline,
        )
        try:
            for check in checks:
                check(report, cancel)
        except _Cancelled:
            report.complete = False
            logger.info("validation.cancelled", findings=len(report.findings))
        report.nodes_checked = len(self.graph)
        logger.info("validation.complete", findings=len(report.findings), complete=report.complete)
        return report

    @staticmethod
    def _poll(cancel: Callable[[], bool] | None) -> None:
        if cancel is not None and cancel():
            raise _Cancelled()

    def _field_for(self, edge: Edge, node_id: str) -> str:
        """Field on ``node_id``'s record that declares this edge."""
        if edge.edge_type == EdgeType.PARENT_OF:
            if node_id == edge.source_id:
                return "children_id"
            return parent_field_for(edge.role, self.graph.parent_slot(edge))
        return _FIELD_FOR[edge.edge_type]

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_parse_issues(self, report, cancel) -> None:
        for node in self.graph.nodes():
            self._poll(cancel)
            for w in node.warnings:
                report.findings.append(
                    ParseIssue(
                        node_id=node.node_id,
                        field=w.source_field,
                        message=w.message,
                        value=w.value,
                        severity=Severity.WARNING if w.dropped else Severity.INFO,
                    )
                )

    def _check_self_relationships(self, report, cancel) -> None:
        for rejection in self.graph.rejections:
            self._poll(cancel)
            report.findings.append(
                SelfRelationship(
                    node_id=rejection.source_id,
                    edge_type=rejection.edge_type.value,
                    message=f"{rejection.source_id} is related to itself ({rejection.edge_type.value})",
                )
            )

    def _check_edges(self, report, cancel) -> None:
        for edge in self.graph.edges():
            self._poll(cancel)
            missing = [n for n in (edge.source_id, edge.target_id) if n not in self.graph]
            if missing:
                for to_id in missing:
                    for from_id in edge.asserted_by:
                        if from_id == to_id:
                            continue
                        report.findings.append(
                            DanglingReference(
                                node_id=from_id,
                                field=self._field_for(edge, from_id),
                                from_id=from_id,
                                to_id=to_id,
                                edge_type=_label(edge),
                                message=f"{from_id} references missing record {to_id}",
                            )
                        )
                continue

            for asserter, count in edge.asserted_by.items():
                if count > 1:
                    report.findings.append(
                        DuplicateEdge(
                            node_id=asserter,
                            field=self._field_for(edge, asserter),
                            from_id=edge.source_id,
                            to_id=edge.target_id,
                            edge_type=_label(edge),
                            count=count,
                            message=f"{asserter} declares {_label(edge)} with {edge.other(asserter)} {count} times",
                        )
                    )

            for from_id, to_id, field in self._missing_reciprocals(edge):
                report.findings.append(
                    MissingReciprocal(
                        node_id=to_id,
                        field=field,
                        from_id=from_id,
                        to_id=to_id,
                        edge_type=_label(edge),
                        message=f"{from_id} declares {_label(edge)} with {to_id}, but {to_id} does not",
                    )
                )

    def _missing_reciprocals(self, edge: Edge) -> Iterable[tuple[str, str, str]]:
        if edge.edge_type == EdgeType.PARENT_ORG_OF:
            return []
        if edge.edge_type == EdgeType.CUSTOM and not self.graph.is_symmetric(edge.edge_type, edge.qualifier):
            inverse = self.registry.inverse_of(edge.qualifier)
            if inverse is None or edge.source_id not in edge.asserted_by:
                return []
            back = self.graph.get_edge(edge.target_id, edge.source_id, EdgeType.CUSTOM, inverse)
            if back is not None and edge.target_id in back.asserted_by:
                return []
            return [(edge.source_id, edge.target_id, "relationships")]

        # Both endpoints declare the same edge
        ends = (edge.source_id, edge.target_id)
        declared = [n for n in ends if n in edge.asserted_by]
        if len(declared) != 1:
            return []
        from_id = declared[0]
        to_id = edge.other(from_id)
        return [(from_id, to_id, self._field_for(edge, to_id))]

    def _check_parents(self, report, cancel) -> None:
        for node in self.graph.nodes():
            self._poll(cancel)
            edges_by_role: dict[ParentRole, list[Edge]] = {}
            for edge in self.graph.parents(node.node_id):
                edges_by_role.setdefault(edge.role, []).append(edge)

            for role, edges in edges_by_role.items():
                parents = [e.source_id for e in edges]
                if role != ParentRole.GUARDIAN and len(parents) > 2:
                    report.findings.append(
                        ExcessParents(
                            node_id=node.node_id,
                            field=parent_field_for(role, ParentSlot.FATHER),
                            role=role.value,
                            parents=parents,
                            message=f"{node.node_id} has {len(parents)} {role.value} parents",
                        )
                    )

            biological = edges_by_role.get(ParentRole.BIOLOGICAL, [])
            if len(biological) != 1:
                continue
            known = biological[0]
            slot = self.graph.parent_slot(known)
            if slot == ParentSlot.FATHER:
                candidates = [ParentSlot.MOTHER]
            elif slot == ParentSlot.MOTHER:
                candidates = [ParentSlot.FATHER]
            else:
                candidates = [ParentSlot.FATHER, ParentSlot.MOTHER]
            for other in candidates:
                field = parent_field_for(ParentRole.BIOLOGICAL, other)
                refs = node.placeholders.get(field, [])
                if any(r.status == ParentStatus.UNKNOWN or r.flagged for r in refs):
                    continue
                report.findings.append(
                    UnknownParentWithoutPlaceholder(
                        node_id=node.node_id,
                        field=field,
                        known_parent=known.source_id,
                        message=f"{node.node_id} has one known parent and no status for {field}",
                    )
                )
                break

    def _check_cycles(self, report, cancel) -> None:
        seen: set[tuple[str, ...]] = set()
        parent_edges = list(self.graph.edges([EdgeType.PARENT_OF]))
        classes: list[tuple[str, EdgeType, set[str] | None]] = [
            (role.value, EdgeType.PARENT_OF, {role.value}) for role in ParentRole
        ]
        classes.append(("mixed", EdgeType.PARENT_OF, None))
        classes.append(("organization", EdgeType.PARENT_ORG_OF, None))

        for name, edge_type, qualifiers in classes:
            if edge_type == EdgeType.PARENT_OF:
                edges = [e for e in parent_edges if qualifiers is None or e.qualifier in qualifiers]
            else:
                edges = list(self.graph.edges([edge_type]))
            for path in self._find_cycles(edges, cancel):
                canonical = self._canonical(path)
                if canonical in seen:
                    continue
                seen.add(canonical)
                field = "parent_org" if edge_type == EdgeType.PARENT_ORG_OF else None
                report.findings.append(
                    Cycle(
                        node_id=path[0],
                        field=field,
                        path=path,
                        role=name,
                        message="ancestry loop: " + " -> ".join(path + [path[0]]),
                    )
                )

    @staticmethod
    def _canonical(path: list[str]) -> tuple[str, ...]:
        start = path.index(min(path))
        return tuple(path[start:] + path[:start])

    def _find_cycles(self, edges: list[Edge], cancel) -> list[list[str]]:
        """Iterative DFS with a visiting set; a back-edge to a node on the path is a cycle."""
        adjacency: dict[str, list[str]] = {}
        for edge in edges:
            adjacency.setdefault(edge.source_id, []).append(edge.target_id)

        color: dict[str, int] = {}
        cycles: list[list[str]] = []
        for root in adjacency:
            if color.get(root, _WHITE) != _WHITE:
                continue
            self._poll(cancel)
            path: list[str] = [root]
            stack = [iter(adjacency.get(root, []))]
            color[root] = _GRAY
            while stack:
                child = next(stack[-1], None)
                if child is None:
                    color[path.pop()] = _BLACK
                    stack.pop()
                    continue
                state = color.get(child, _WHITE)
                if state == _GRAY:
                    cycles.append(path[path.index(child):])
                elif state == _WHITE:
                    color[child] = _GRAY
                    path.append(child)
                    stack.append(iter(adjacency.get(child, [])))
        return cycles

    def _check_timeline(self, report, cancel) -> None:
        min_age = self.config.min_parent_age
        max_life = self.config.max_lifespan

        for node in self.graph.nodes():
            self._poll(cancel)
            born, died = node.born, node.died
            if born and died:
                if _precedes(died.latest_year, born.earliest_year):
                    report.findings.append(
                        ImplausibleTimeline(
                            node_id=node.node_id,
                            field="died",
                            severity=Severity.ERROR,
                            message=f"{node.name} died ({died}) before being born ({born})",
                        )
                    )
                elif _gap(born.latest_year, died.earliest_year) > max_life:
                    report.findings.append(
                        ImplausibleTimeline(
                            node_id=node.node_id,
                            field="died",
                            message=f"{node.name} lived more than {max_life} years",
                        )
                    )

        for edge in self.graph.edges([EdgeType.PARENT_OF]):
            self._poll(cancel)
            if edge.role != ParentRole.BIOLOGICAL:
                continue
            parent = self.graph.find_node(edge.source_id)
            child = self.graph.find_node(edge.target_id)
            if parent is None or child is None or child.born is None:
                continue
            if parent.born is not None:
                if _precedes(child.born.latest_year, parent.born.earliest_year):
                    report.findings.append(
                        ImplausibleTimeline(
                            node_id=child.node_id,
                            field="born",
                            other_id=parent.node_id,
                            severity=Severity.ERROR,
                            message=f"{child.name} born before parent {parent.name}",
                        )
                    )
                    continue
                age = _span(parent.born.earliest_year, child.born.latest_year)
                if age is not None and age < min_age:
                    report.findings.append(
                        ImplausibleTimeline(
                            node_id=child.node_id,
                            field="born",
                            other_id=parent.node_id,
                            message=f"{parent.name} was younger than {min_age} when {child.name} was born",
                        )
                    )
            # A father may die before the birth, but not by more than a year
            if parent.died is not None and _gap(parent.died.latest_year, child.born.earliest_year) > 1:
                report.findings.append(
                    ImplausibleTimeline(
                        node_id=child.node_id,
                        field="born",
                        other_id=parent.node_id,
                        message=f"{child.name} born after parent {parent.name} died",
                    )
                )
