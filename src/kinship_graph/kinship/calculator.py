"""Relationship calculator: name how two people in the graph are related.

The search is a layered breadth-first search over parent, child, sibling
and spouse steps. Among equally short paths the one with the fewest spouse
steps wins (blood relation over in-law framing); remaining ties go to the
path explored first, where parents are explored before children, children
before siblings, siblings before spouses, and parents in role precedence
then father before mother then insertion order.

The chosen path is decomposed into an up-run to a pivot and a down-run to
the target, and the (up, down) pair is classified into the usual terms:
parent, sibling, aunt/uncle, first cousin once removed, and so on.
"""
from __future__ import annotations

from dataclasses import dataclass

from ..config import CONFIG, EngineConfig
from ..graph.graph_store import GraphModel
from ..logging import get_logger
from ..models.facts import ParentRole
from .models import NotRelated, PathStep, RelationshipResult, StepType

logger = get_logger(__name__)

_ORDINALS = {
    1: "first", 2: "second", 3: "third", 4: "fourth", 5: "fifth",
    6: "sixth", 7: "seventh", 8: "eighth", 9: "ninth", 10: "tenth",
}
_ROLE_ADJECTIVE = {
    ParentRole.ADOPTIVE: "adoptive",
    ParentRole.STEP: "step",
    ParentRole.FOSTER: "foster",
    ParentRole.GUARDIAN: "guardianship",
}
_FLIP = {StepType.PARENT: StepType.CHILD, StepType.CHILD: StepType.PARENT}

Step = tuple[StepType, "str | None"]


def ordinal(n: int) -> str:
    if n in _ORDINALS:
        return _ORDINALS[n]
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def removal_text(n: int) -> str:
    if n == 1:
        return "once removed"
    if n == 2:
        return "twice removed"
    return f"{n} times removed"


def blood_label(up: int, down: int) -> str:
    """Neutral term for B, ``up`` generations above A's line and ``down`` below the pivot."""
    if up == 0 and down == 0:
        return "self"
    if down == 0:
        if up == 1:
            return "parent"
        return "great-" * (up - 2) + "grandparent"
    if up == 0:
        if down == 1:
            return "child"
        return "great-" * (down - 2) + "grandchild"
    if up == 1 and down == 1:
        return "sibling"
    if up == 1:
        if down == 2:
            return "niece/nephew"
        return "great-" * (down - 3) + "grand-niece/nephew"
    if down == 1:
        if up == 2:
            return "aunt/uncle"
        return "great-" * (up - 3) + "grand-aunt/uncle"
    degree = min(up, down) - 1
    removal = abs(up - down)
    label = f"{ordinal(degree)} cousin"
    if removal:
        label += f" {removal_text(removal)}"
    return label


@dataclass
class _Classification:
    relationship: str
    up: int | None = None
    down: int | None = None
    common_ancestor: str | None = None
    cousin_degree: int | None = None
    removal: int | None = None
    is_half: bool = False
    is_in_law: bool = False
    is_step: bool = False


class RelationshipCalculator:
    """Compute the relationship between two nodes of a graph snapshot.

    Example:
        >>> calc = RelationshipCalculator(graph)
        >>> calc.relationship_between("alice", "bob").relationship
        'first cousin once removed'
    """

    def __init__(self, graph: GraphModel, config: EngineConfig | None = None) -> None:
        self.graph = graph
        self.config = config or CONFIG
        roles = []
        for name in self.config.parent_roles:
            try:
                roles.append(ParentRole(name))
            except ValueError:
                logger.warning("kinship.unknown_role", role=name)
        self.roles: tuple[ParentRole, ...] = tuple(roles) or (ParentRole.BIOLOGICAL,)
        self.max_depth = max(1, self.config.max_depth)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _expand(self, node_id: str) -> list[tuple[str, StepType, str | None]]:
        """Neighbors in exploration order."""
        out: list[tuple[str, StepType, str | None]] = []
        for edge in self.graph.parents(node_id, self.roles):
            out.append((edge.source_id, StepType.PARENT, edge.qualifier))
        for edge in self.graph.children(node_id, self.roles):
            out.append((edge.target_id, StepType.CHILD, edge.qualifier))
        if self.config.use_sibling_edges:
            for other in self.graph.siblings(node_id):
                out.append((other, StepType.SIBLING, None))
        for other in self.graph.spouses(node_id):
            out.append((other, StepType.SPOUSE, None))
        return out

    def find_path(self, start: str, goal: str) -> tuple[list[str], list[Step]] | None:
        """Shortest path by (edges, spouse steps), or None within max_depth."""
        best: dict[str, tuple[int, int]] = {start: (0, 0)}
        pred: dict[str, tuple[str, StepType, str | None]] = {}
        frontier = [start]
        depth = 0

        while frontier and goal not in best and depth < self.max_depth:
            depth += 1
            following: list[str] = []
            for node in frontier:
                spouses_so_far = best[node][1]
                for other, step, role in self._expand(node):
                    cost = (depth, spouses_so_far + (1 if step == StepType.SPOUSE else 0))
                    known = best.get(other)
                    if known is None:
                        best[other] = cost
                        pred[other] = (node, step, role)
                        following.append(other)
                    elif known[0] == depth and cost[1] < known[1]:
                        best[other] = cost
                        pred[other] = (node, step, role)
            frontier = following

        if goal not in best:
            return None
        nodes = [goal]
        steps: list[Step] = []
        current = goal
        while current != start:
            previous, step, role = pred[current]
            steps.append((step, role))
            nodes.append(previous)
            current = previous
        nodes.reverse()
        steps.reverse()
        return nodes, steps

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _parent_ids(self, node_id: str) -> set[str]:
        return {e.source_id for e in self.graph.parents(node_id, self.roles)}

    def _is_half(self, left: str, right: str) -> bool:
        """Exactly one shared parent, and at least one side has another known parent."""
        a, b = self._parent_ids(left), self._parent_ids(right)
        shared = a & b
        return len(shared) == 1 and (len(a) > 1 or len(b) > 1)

    def _classify(self, nodes: list[str], steps: list[Step]) -> _Classification:
        kinds = [s for s, _ in steps]
        n = len(kinds)
        if n == 0:
            return _Classification("self", 0, 0, common_ancestor=nodes[0])
        spouse_steps = kinds.count(StepType.SPOUSE)

        lead = 0
        while lead < n and kinds[lead] == StepType.SPOUSE:
            lead += 1
        trail = 0
        while trail < n - lead and kinds[n - 1 - trail] == StepType.SPOUSE:
            trail += 1
        core = kinds[lead:n - trail]
        core_nodes = nodes[lead:len(nodes) - trail]

        if not core:
            if spouse_steps == 1:
                return _Classification("spouse")
            return _Classification("relative by marriage", is_in_law=True)

        i = 0
        while i < len(core) and core[i] == StepType.PARENT:
            i += 1
        up = i
        lateral = i < len(core) and core[i] == StepType.SIBLING
        if lateral:
            i += 1
        j = i
        while j < len(core) and core[j] == StepType.CHILD:
            j += 1
        down = j - i

        if j != len(core):
            if core == [StepType.CHILD, StepType.PARENT] and not spouse_steps:
                return _Classification("co-parent")
            if core == [StepType.PARENT, StepType.SPOUSE, StepType.CHILD] and not (lead or trail):
                return _Classification("step-sibling", is_step=True)
            if spouse_steps:
                return _Classification("relative by marriage", is_in_law=True)
            return _Classification("distant relative")

        result = _Classification("")
        if lateral:
            branch: tuple[str, str] | None = (core_nodes[up], core_nodes[up + 1])
            up, down = up + 1, down + 1
        else:
            result.common_ancestor = core_nodes[up]
            branch = (core_nodes[up - 1], core_nodes[up + 1]) if up and down else None
        result.up, result.down = up, down
        if up >= 2 and down >= 2:
            result.cousin_degree = min(up, down) - 1
            result.removal = abs(up - down)

        label = blood_label(up, down)
        if branch is not None and self._is_half(*branch):
            result.is_half = True
            label = ("half " if " " in label else "half-") + label

        if not self.config.collapse_roles:
            label = self._qualify(label, steps)

        if lead == 0 and trail == 0:
            result.relationship = label
        elif lead == 0 and trail == 1 and (up, down) == (1, 0):
            result.relationship, result.is_step = "step-parent", True
        elif lead == 1 and trail == 0 and (up, down) == (0, 1):
            result.relationship, result.is_step = "stepchild", True
        elif lead <= 1 and trail <= 1:
            result.relationship, result.is_in_law = label + "-in-law", True
        else:
            result.relationship, result.is_in_law = "relative by marriage", True

        if any(role == ParentRole.STEP.value for _, role in steps):
            result.is_step = True
        return result

    @staticmethod
    def _qualify(label: str, steps: list[Step]) -> str:
        """Prefix the first non-biological role on the path, e.g. "adoptive parent"."""
        for kind, role in steps:
            if kind not in (StepType.PARENT, StepType.CHILD) or role is None:
                continue
            parent_role = ParentRole(role)
            if parent_role == ParentRole.BIOLOGICAL:
                continue
            if parent_role == ParentRole.GUARDIAN and label in ("parent", "child"):
                return "guardian" if label == "parent" else "ward"
            return f"{_ROLE_ADJECTIVE[parent_role]} {label}"
        return label

    @staticmethod
    def _reverse(nodes: list[str], steps: list[Step]) -> tuple[list[str], list[Step]]:
        return list(reversed(nodes)), [(_FLIP.get(kind, kind), role) for kind, role in reversed(steps)]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def relationship_between(self, a: str, b: str) -> RelationshipResult | NotRelated:
        """How ``b`` is related to ``a``.

        The search always runs from the smaller identifier, so (a, b) and
        (b, a) describe the same path with the roles swapped.
        """
        for node_id in (a, b):
            if self.graph.find_node(node_id) is None:
                return NotRelated(a, b, reason=f"unknown node {node_id}")

        if a <= b:
            found = self.find_path(a, b)
        else:
            found = self.find_path(b, a)
            if found is not None:
                found = self._reverse(*found)
        if found is None:
            logger.debug("kinship.not_related", a=a, b=b, max_depth=self.max_depth)
            return NotRelated(a, b, reason=f"no path within {self.max_depth} steps")

        nodes, steps = found
        forward = self._classify(nodes, steps)
        backward = self._classify(*self._reverse(nodes, steps))

        path = [PathStep(nodes[0], StepType.START)]
        for node_id, (kind, role) in zip(nodes[1:], steps):
            path.append(PathStep(node_id, kind, role))

        node_a = self.graph.find_node(a)
        node_b = self.graph.find_node(b)
        return RelationshipResult(
            person_a=a,
            person_b=b,
            relationship=forward.relationship,
            path=path,
            common_ancestor=forward.common_ancestor,
            generations_up=forward.up,
            generations_down=forward.down,
            cousin_degree=forward.cousin_degree,
            removal=forward.removal,
            is_half=forward.is_half,
            is_in_law=forward.is_in_law,
            is_step=forward.is_step,
            spouse_steps=sum(1 for kind, _ in steps if kind == StepType.SPOUSE),
            inverse_relationship=backward.relationship,
            sex_a=node_a.sex if node_a else None,
            sex_b=node_b.sex if node_b else None,
        )

    def gendered_relationship(self, a: str, b: str) -> str:
        result = self.relationship_between(a, b)
        if isinstance(result, NotRelated):
            return result.relationship
        return result.gendered_relationship
