"""Custom relationship type registry.

Custom types cover non-familial relationships (mentor, godparent, liege,
...) between person records. Every type is either symmetric or asymmetric;
asymmetric types may name an inverse type that must appear on the other
endpoint's record.
"""
from __future__ import annotations

from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from ..exceptions import RegistryError
from ..logging import get_logger

logger = get_logger(__name__)


class RelationshipCategory(str, Enum):
    """Category of relationship for grouping."""
    LEGAL = "legal"  # Guardian, adoptive parent, foster parent
    RELIGIOUS = "religious"  # Godparent, mentor, disciple
    PROFESSIONAL = "professional"  # Master, apprentice, employer
    SOCIAL = "social"  # Witness, neighbor, companion
    FEUDAL = "feudal"  # Liege, vassal, ally, rival
    CUSTOM = "custom"


class RelationshipTypeDefinition(BaseModel):
    """Definition of a custom relationship type."""

    id: str = Field(pattern=r"^[a-z][a-z0-9_]*$")
    name: str
    category: RelationshipCategory = RelationshipCategory.CUSTOM
    symmetric: bool = False
    inverse: str | None = None
    built_in: bool = False


def _pair(a: str, a_name: str, b: str, b_name: str, category: RelationshipCategory) -> list[RelationshipTypeDefinition]:
    return [
        RelationshipTypeDefinition(id=a, name=a_name, category=category, inverse=b, built_in=True),
        RelationshipTypeDefinition(id=b, name=b_name, category=category, inverse=a, built_in=True),
    ]


def _symmetric(type_id: str, name: str, category: RelationshipCategory) -> RelationshipTypeDefinition:
    return RelationshipTypeDefinition(id=type_id, name=name, category=category, symmetric=True, built_in=True)


DEFAULT_RELATIONSHIP_TYPES: list[RelationshipTypeDefinition] = [
    *_pair("guardian", "Guardian", "ward", "Ward", RelationshipCategory.LEGAL),
    *_pair("adoptive_parent", "Adoptive parent", "adopted_child", "Adopted child", RelationshipCategory.LEGAL),
    *_pair("foster_parent", "Foster parent", "foster_child", "Foster child", RelationshipCategory.LEGAL),
    *_pair("godparent", "Godparent", "godchild", "Godchild", RelationshipCategory.RELIGIOUS),
    *_pair("mentor", "Mentor", "disciple", "Disciple", RelationshipCategory.RELIGIOUS),
    *_pair("master", "Master", "apprentice", "Apprentice", RelationshipCategory.PROFESSIONAL),
    *_pair("employer", "Employer", "employee", "Employee", RelationshipCategory.PROFESSIONAL),
    RelationshipTypeDefinition(
        id="witness", name="Witness", category=RelationshipCategory.SOCIAL, built_in=True
    ),
    _symmetric("neighbor", "Neighbor", RelationshipCategory.SOCIAL),
    _symmetric("companion", "Companion", RelationshipCategory.SOCIAL),
    _symmetric("betrothed", "Betrothed", RelationshipCategory.SOCIAL),
    *_pair("liege", "Liege lord", "vassal", "Vassal", RelationshipCategory.FEUDAL),
    _symmetric("ally", "Ally", RelationshipCategory.FEUDAL),
    _symmetric("rival", "Rival", RelationshipCategory.FEUDAL),
]


class RelationshipTypeRegistry:
    """Registry of custom relationship type definitions.

    Example:
        >>> registry = RelationshipTypeRegistry.with_defaults()
        >>> registry.inverse_of("mentor")
        'disciple'
    """

    def __init__(self, definitions: list[RelationshipTypeDefinition] | None = None) -> None:
        self._types: dict[str, RelationshipTypeDefinition] = {}
        if definitions:
            self.register_many(definitions)

    @classmethod
    def with_defaults(cls) -> RelationshipTypeRegistry:
        return cls(DEFAULT_RELATIONSHIP_TYPES)

    def __contains__(self, type_id: object) -> bool:
        return type_id in self._types

    def __len__(self) -> int:
        return len(self._types)

    def get(self, type_id: str) -> RelationshipTypeDefinition | None:
        return self._types.get(type_id)

    def all(self) -> list[RelationshipTypeDefinition]:
        return list(self._types.values())

    def by_category(self, category: RelationshipCategory) -> list[RelationshipTypeDefinition]:
        return [t for t in self._types.values() if t.category == category]

    def inverse_of(self, type_id: str) -> str | None:
        """Type id the other endpoint must carry, or None if there is none."""
        definition = self._types.get(type_id)
        if definition is None:
            return None
        if definition.symmetric:
            return definition.id
        return definition.inverse

    def register(self, definition: RelationshipTypeDefinition) -> None:
        """Register a single definition.

        Raises:
            RegistryError: if the definition conflicts with a built-in type or
                names an inverse that is registered with a different inverse.
        """
        self.register_many([definition])

    def register_many(self, definitions: list[RelationshipTypeDefinition]) -> None:
        """Register definitions as one batch so mutual inverses can reference each other."""
        staged = dict(self._types)
        for definition in definitions:
            existing = staged.get(definition.id)
            if existing is not None and existing.built_in and not definition.built_in:
                raise RegistryError(f"Cannot override built-in relationship type '{definition.id}'")
            if definition.symmetric and definition.inverse not in (None, definition.id):
                raise RegistryError(f"Symmetric type '{definition.id}' cannot name inverse '{definition.inverse}'")
            staged[definition.id] = definition

        for definition in staged.values():
            if definition.symmetric or definition.inverse is None:
                continue
            inverse = staged.get(definition.inverse)
            if inverse is None:
                raise RegistryError(
                    f"Type '{definition.id}' names unknown inverse '{definition.inverse}'"
                )
            if inverse.inverse != definition.id:
                raise RegistryError(
                    f"Inverse of '{definition.id}' is '{inverse.id}', "
                    f"but '{inverse.id}' names '{inverse.inverse}' as its inverse"
                )

        self._types = staged

    def load_from_yaml(self, path: Path | str) -> list[RelationshipTypeDefinition]:
        """Load custom type definitions from a YAML file.

        The file holds either a list of definitions or a mapping with a
        ``relationship_types`` list.
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or []

        if isinstance(data, dict):
            data = data.get("relationship_types", [])
        if not isinstance(data, list):
            raise RegistryError(f"{path}: expected a list of relationship types")

        definitions = [RelationshipTypeDefinition(**entry) for entry in data]
        self.register_many(definitions)
        logger.info("relationship_types.loaded", path=str(path), count=len(definitions))
        return definitions
