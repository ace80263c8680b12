"""Typed relationship facts produced at the record boundary.

A record's loosely-typed relationship fields are parsed once into a closed
set of fact variants. Everything downstream (graph building, validation,
synchronization) works on these models, never on raw field bags.
"""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from ..dates import FuzzyDate

if TYPE_CHECKING:
    from .relationship_types import RelationshipTypeRegistry


class NodeKind(str, Enum):
    """Kinds of entities a record can describe."""
    PERSON = "person"
    ORGANIZATION = "organization"


class ParentRole(str, Enum):
    """Role-class of a parent-child edge, in tie-break precedence order."""
    BIOLOGICAL = "biological"
    ADOPTIVE = "adoptive"
    STEP = "step"
    FOSTER = "foster"
    GUARDIAN = "guardian"


ROLE_ORDER: dict[ParentRole, int] = {role: i for i, role in enumerate(ParentRole)}


class ParentSlot(str, Enum):
    """Which parent field a parent fact occupies."""
    FATHER = "father"
    MOTHER = "mother"
    PARENT = "parent"  # Guardians have no gendered slot


class ParentStatus(str, Enum):
    KNOWN = "known"
    UNKNOWN = "unknown"  # Known to exist, not identified
    NOT_RESEARCHED = "not_researched"  # No data yet


class SpouseStatus(str, Enum):
    CURRENT = "current"
    DIVORCED = "divorced"
    WIDOWED = "widowed"
    SEPARATED = "separated"


class ParentRef(BaseModel):
    """A parent reference: Known(id), UnknownButExists, or NotResearched."""

    model_config = ConfigDict(frozen=True)

    status: ParentStatus
    identifier: str | None = None
    flagged: bool = False  # explicit "still researching" marker

    @classmethod
    def known(cls, identifier: str) -> ParentRef:
        return cls(status=ParentStatus.KNOWN, identifier=identifier)

    @classmethod
    def unknown(cls) -> ParentRef:
        return cls(status=ParentStatus.UNKNOWN)

    @classmethod
    def not_researched(cls, flagged: bool = False) -> ParentRef:
        return cls(status=ParentStatus.NOT_RESEARCHED, flagged=flagged)

    @property
    def is_known(self) -> bool:
        return self.status == ParentStatus.KNOWN


class _Fact(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: str  # record the fact was declared on
    source_field: str

    @property
    def target(self) -> str | None:
        raise NotImplementedError

    @property
    def key(self) -> tuple[str, ...]:
        raise NotImplementedError

    def metadata(self) -> dict[str, Any]:
        """Sub-fields that travel with the relationship to its reciprocal."""
        return {}

    def reciprocal(
        self,
        registry: RelationshipTypeRegistry,
        owner_sex: str | None = None,
    ) -> Fact | None:
        """The inverse fact as it must appear on the target's record."""
        return None


class ParentFact(_Fact):
    """Declared on a child: ``parent`` is my parent in ``role``."""

    kind: Literal["parent"] = "parent"
    parent: ParentRef
    role: ParentRole = ParentRole.BIOLOGICAL
    slot: ParentSlot = ParentSlot.PARENT

    @property
    def target(self) -> str | None:
        return self.parent.identifier

    @property
    def key(self) -> tuple[str, ...]:
        if self.parent.is_known:
            return ("parent", self.role.value, self.parent.identifier or "")
        return ("parent", self.role.value, self.slot.value, self.parent.status.value)

    def reciprocal(self, registry, owner_sex=None):
        if not self.parent.is_known or self.parent.identifier is None:
            return None
        return ChildFact(
            owner=self.parent.identifier,
            source_field="children_id",
            child=self.owner,
            role=self.role,
        )


class ChildFact(_Fact):
    """Declared on a parent: ``child`` is my child in ``role``."""

    kind: Literal["child"] = "child"
    child: str
    role: ParentRole = ParentRole.BIOLOGICAL

    @property
    def target(self) -> str | None:
        return self.child

    @property
    def key(self) -> tuple[str, ...]:
        return ("child", self.role.value, self.child)

    def reciprocal(self, registry, owner_sex=None):
        if self.role == ParentRole.GUARDIAN:
            slot = ParentSlot.PARENT
        elif (owner_sex or "").upper().startswith("F"):
            slot = ParentSlot.MOTHER
        else:
            slot = ParentSlot.FATHER
        return ParentFact(
            owner=self.child,
            source_field=parent_field_for(self.role, slot),
            parent=ParentRef.known(self.owner),
            role=self.role,
            slot=slot,
        )


class SpouseFact(_Fact):
    """One side of a marriage, with that side's own temporal metadata."""

    kind: Literal["spouse"] = "spouse"
    spouse: str
    marriage_date: str | None = None
    divorce_date: str | None = None
    status: SpouseStatus | None = None
    location: str | None = None
    ordinal: int | None = None

    @property
    def target(self) -> str | None:
        return self.spouse

    @property
    def key(self) -> tuple[str, ...]:
        return ("spouse", self.spouse)

    def metadata(self) -> dict[str, Any]:
        return {
            "marriage_date": self.marriage_date,
            "divorce_date": self.divorce_date,
            "status": self.status,
            "location": self.location,
        }

    def reciprocal(self, registry, owner_sex=None):
        return SpouseFact(
            owner=self.spouse,
            source_field="spouses",
            spouse=self.owner,
            **self.metadata(),
        )


class SiblingFact(_Fact):
    """Explicit sibling link, used when parents are not recorded."""

    kind: Literal["sibling"] = "sibling"
    sibling: str

    @property
    def target(self) -> str | None:
        return self.sibling

    @property
    def key(self) -> tuple[str, ...]:
        return ("sibling", self.sibling)

    def reciprocal(self, registry, owner_sex=None):
        return SiblingFact(owner=self.sibling, source_field="sibling_id", sibling=self.owner)


class CustomFact(_Fact):
    """A custom typed relationship from the type registry."""

    kind: Literal["custom"] = "custom"
    type_id: str
    other: str
    target_link: str | None = None  # original wikilink text, kept for write-back
    from_date: str | None = None
    to_date: str | None = None
    notes: str | None = None

    @property
    def target(self) -> str | None:
        return self.other

    @property
    def key(self) -> tuple[str, ...]:
        return ("custom", self.type_id, self.other)

    def metadata(self) -> dict[str, Any]:
        return {"from_date": self.from_date, "to_date": self.to_date}

    def reciprocal(self, registry, owner_sex=None):
        inverse = registry.inverse_of(self.type_id)
        if inverse is None:
            return None
        return CustomFact(
            owner=self.other,
            source_field="relationships",
            type_id=inverse,
            other=self.owner,
            **self.metadata(),
        )


class OrgParentFact(_Fact):
    """Organization hierarchy: ``org`` is my parent organization."""

    kind: Literal["org_parent"] = "org_parent"
    org: str

    @property
    def target(self) -> str | None:
        return self.org

    @property
    def key(self) -> tuple[str, ...]:
        return ("org_parent", self.org)


Fact = Annotated[
    Union[ParentFact, ChildFact, SpouseFact, SiblingFact, CustomFact, OrgParentFact],
    Field(discriminator="kind"),
]


PARENT_FIELDS: dict[str, tuple[ParentRole, ParentSlot]] = {
    "father_id": (ParentRole.BIOLOGICAL, ParentSlot.FATHER),
    "mother_id": (ParentRole.BIOLOGICAL, ParentSlot.MOTHER),
    "adoptive_father_id": (ParentRole.ADOPTIVE, ParentSlot.FATHER),
    "adoptive_mother_id": (ParentRole.ADOPTIVE, ParentSlot.MOTHER),
    "stepfather_id": (ParentRole.STEP, ParentSlot.FATHER),
    "stepmother_id": (ParentRole.STEP, ParentSlot.MOTHER),
    "foster_father_id": (ParentRole.FOSTER, ParentSlot.FATHER),
    "foster_mother_id": (ParentRole.FOSTER, ParentSlot.MOTHER),
    "guardian_id": (ParentRole.GUARDIAN, ParentSlot.PARENT),
}


def parent_field_for(role: ParentRole, slot: ParentSlot) -> str:
    for name, (r, s) in PARENT_FIELDS.items():
        if r == role and s == slot:
            return name
    return "guardian_id"


class ParseWarning(BaseModel):
    """A recoverable problem found while parsing a record field."""

    model_config = ConfigDict(frozen=True)

    record_id: str | None
    source_field: str
    message: str
    value: str | None = None
    dropped: bool = True  # the entry was skipped, not just flagged


class NodeAttributes(BaseModel):
    """Non-relationship attributes of the entity a record describes."""

    name: str = ""
    kind: NodeKind = NodeKind.PERSON
    sex: str | None = None
    born: FuzzyDate | None = None
    died: FuzzyDate | None = None
    is_root: bool = False


class RelationshipFacts(BaseModel):
    """Everything the adapter extracted from one record."""

    owner: str
    node: NodeAttributes = Field(default_factory=NodeAttributes)
    facts: list[Fact] = Field(default_factory=list)
    warnings: list[ParseWarning] = Field(default_factory=list)

    def unique(self) -> dict[tuple[str, ...], Fact]:
        """Facts keyed by identity, see merge_duplicates."""
        return merge_duplicates(self.facts)

    def reciprocable(self) -> dict[tuple[str, ...], Fact]:
        """Unique facts whose target identifier is known."""
        return {k: f for k, f in self.unique().items() if f.target}


def merge_duplicates(facts: list[Fact]) -> dict[tuple[str, ...], Fact]:
    """Key facts by identity; repeated declarations merge into the first.

    A later duplicate only fills metadata the first one left empty.
    """
    merged: dict[tuple[str, ...], Fact] = {}
    for fact in facts:
        existing = merged.get(fact.key)
        if existing is None:
            merged[fact.key] = fact
            continue
        current = existing.metadata()
        fill = {k: v for k, v in fact.metadata().items() if v is not None and current.get(k) is None}
        if fill:
            merged[fact.key] = existing.model_copy(update=fill)
    return merged
