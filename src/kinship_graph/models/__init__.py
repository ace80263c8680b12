"""Typed facts and relationship type definitions."""
from .facts import (
    PARENT_FIELDS,
    ROLE_ORDER,
    ChildFact,
    CustomFact,
    Fact,
    NodeAttributes,
    NodeKind,
    OrgParentFact,
    ParentFact,
    ParentRef,
    ParentRole,
    ParentSlot,
    ParentStatus,
    ParseWarning,
    RelationshipFacts,
    SiblingFact,
    SpouseFact,
    SpouseStatus,
    merge_duplicates,
    parent_field_for,
)
from .relationship_types import (
    DEFAULT_RELATIONSHIP_TYPES,
    RelationshipCategory,
    RelationshipTypeDefinition,
    RelationshipTypeRegistry,
)

__all__ = [
    # Facts
    "Fact",
    "ParentFact",
    "ChildFact",
    "SpouseFact",
    "SiblingFact",
    "CustomFact",
    "OrgParentFact",
    "ParentRef",
    "ParentRole",
    "ParentSlot",
    "ParentStatus",
    "SpouseStatus",
    "NodeKind",
    "NodeAttributes",
    "ParseWarning",
    "RelationshipFacts",
    "PARENT_FIELDS",
    "ROLE_ORDER",
    "parent_field_for",
    "merge_duplicates",
    # Type registry
    "RelationshipCategory",
    "RelationshipTypeDefinition",
    "RelationshipTypeRegistry",
    "DEFAULT_RELATIONSHIP_TYPES",
]
