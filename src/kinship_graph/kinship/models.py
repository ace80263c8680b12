"""Result models for relationship computation."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class StepType(str, Enum):
    """How a path moves from one node to the next."""
    START = "start"
    PARENT = "parent"  # to a parent of the current node
    CHILD = "child"
    SPOUSE = "spouse"
    SIBLING = "sibling"


@dataclass(frozen=True)
class PathStep:
    """One node on a relationship path and the step that reached it."""
    node_id: str
    step: StepType
    role: str | None = None  # parent role of the edge used, for parent/child steps

    def to_dict(self) -> dict[str, Any]:
        return {"node_id": self.node_id, "step": self.step.value, "role": self.role}


# Neutral term -> (male, female)
_GENDERED = {
    "step-parent": ("stepfather", "stepmother"),
    "step-sibling": ("stepbrother", "stepsister"),
}
_GENDERED_TERMS = (
    ("grandparent", ("grandfather", "grandmother")),
    ("grandchild", ("grandson", "granddaughter")),
    ("aunt/uncle", ("uncle", "aunt")),
    ("niece/nephew", ("nephew", "niece")),
    ("parent", ("father", "mother")),
    ("child", ("son", "daughter")),
    ("sibling", ("brother", "sister")),
    ("spouse", ("husband", "wife")),
)


def gendered(label: str, sex: str | None) -> str:
    """Gendered form of a neutral label; unchanged when sex is unknown."""
    marker = (sex or "").strip().upper()[:1]
    if marker not in ("M", "F"):
        return label
    index = 0 if marker == "M" else 1
    if label in _GENDERED:
        return _GENDERED[label][index]
    if label.startswith("co-"):
        return label
    for term, forms in _GENDERED_TERMS:
        if term in label:
            return label.replace(term, forms[index], 1)
    return label


@dataclass
class RelationshipResult:
    """How ``person_b`` is related to ``person_a``.

    ``relationship`` names B from A's point of view ("uncle" means B is
    A's uncle); ``inverse_relationship`` names A from B's.
    """
    person_a: str
    person_b: str
    relationship: str
    path: list[PathStep] = field(default_factory=list)
    common_ancestor: str | None = None
    generations_up: int | None = None
    generations_down: int | None = None
    cousin_degree: int | None = None
    removal: int | None = None
    is_half: bool = False
    is_in_law: bool = False
    is_step: bool = False
    spouse_steps: int = 0
    inverse_relationship: str = ""
    sex_a: str | None = None
    sex_b: str | None = None

    @property
    def distance(self) -> int:
        """Number of edges on the path."""
        return max(0, len(self.path) - 1)

    @property
    def is_direct_line(self) -> bool:
        return (
            self.spouse_steps == 0
            and self.generations_up is not None
            and self.generations_down is not None
            and (self.generations_up == 0 or self.generations_down == 0)
            and not any(s.step == StepType.SIBLING for s in self.path)
        )

    @property
    def is_blood_relation(self) -> bool:
        return self.spouse_steps == 0 and self.generations_up is not None and not self.is_step

    @property
    def gendered_relationship(self) -> str:
        return gendered(self.relationship, self.sex_b)

    @property
    def gendered_inverse(self) -> str:
        return gendered(self.inverse_relationship, self.sex_a)

    @property
    def node_ids(self) -> list[str]:
        return [s.node_id for s in self.path]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "person_a": self.person_a,
            "person_b": self.person_b,
            "relationship": self.relationship,
            "inverse_relationship": self.inverse_relationship,
            "path": [s.to_dict() for s in self.path],
            "common_ancestor": self.common_ancestor,
            "generations_up": self.generations_up,
            "generations_down": self.generations_down,
            "cousin_degree": self.cousin_degree,
            "removal": self.removal,
            "is_half": self.is_half,
            "is_in_law": self.is_in_law,
            "is_step": self.is_step,
            "distance": self.distance,
        }


@dataclass(frozen=True)
class NotRelated:
    """No path connects the two nodes. A valid answer, not an error."""
    person_a: str
    person_b: str
    reason: str = "no path between the two nodes"

    relationship = "not related"

    def to_dict(self) -> dict[str, Any]:
        return {"person_a": self.person_a, "person_b": self.person_b, "relationship": self.relationship, "reason": self.reason}
