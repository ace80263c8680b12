"""Tests for the custom relationship type registry."""
from __future__ import annotations

import json
import logging

import pytest

from kinship_graph.exceptions import RegistryError
from kinship_graph.logging import configure_logging
from kinship_graph.models import (
    RelationshipCategory,
    RelationshipTypeDefinition,
    RelationshipTypeRegistry,
)


class TestDefaults:
    """Tests for built-in types."""

    def test_asymmetric_pairs(self, registry):
        assert registry.inverse_of("mentor") == "disciple"
        assert registry.inverse_of("disciple") == "mentor"
        assert registry.inverse_of("liege") == "vassal"

    def test_symmetric_is_its_own_inverse(self, registry):
        assert registry.inverse_of("ally") == "ally"
        assert registry.get("ally").symmetric

    def test_type_without_inverse(self, registry):
        assert "witness" in registry
        assert registry.inverse_of("witness") is None

    def test_unknown_type(self, registry):
        assert registry.inverse_of("nemesis") is None

    def test_by_category(self, registry):
        feudal = {t.id for t in registry.by_category(RelationshipCategory.FEUDAL)}
        assert {"liege", "vassal", "ally", "rival"} <= feudal


class TestRegistration:
    """Tests for registering user types."""

    def test_register_mutual_pair(self, registry):
        registry.register_many(
            [
                RelationshipTypeDefinition(id="patron", name="Patron", inverse="client"),
                RelationshipTypeDefinition(id="client", name="Client", inverse="patron"),
            ]
        )
        assert registry.inverse_of("patron") == "client"

    def test_unknown_inverse_rejected(self, registry):
        with pytest.raises(RegistryError):
            registry.register(RelationshipTypeDefinition(id="patron", name="Patron", inverse="client"))
        assert "patron" not in registry

    def test_mismatched_inverse_rejected(self, registry):
        with pytest.raises(RegistryError):
            registry.register(RelationshipTypeDefinition(id="pupil", name="Pupil", inverse="mentor"))

    def test_cannot_override_built_in(self, registry):
        with pytest.raises(RegistryError):
            registry.register(RelationshipTypeDefinition(id="ally", name="Friend", symmetric=True))

    def test_symmetric_with_foreign_inverse_rejected(self):
        registry = RelationshipTypeRegistry()
        with pytest.raises(RegistryError):
            registry.register(RelationshipTypeDefinition(id="twin", name="Twin", symmetric=True, inverse="other"))

    def test_load_from_yaml(self, registry, tmp_path):
        path = tmp_path / "types.yaml"
        path.write_text(
            "relationship_types:\n"
            "  - id: patron\n"
            "    name: Patron\n"
            "    category: professional\n"
            "    inverse: client\n"
            "  - id: client\n"
            "    name: Client\n"
            "    category: professional\n"
            "    inverse: patron\n"
            "  - id: shipmate\n"
            "    name: Shipmate\n"
            "    symmetric: true\n"
        )

        loaded = registry.load_from_yaml(path)

        assert [d.id for d in loaded] == ["patron", "client", "shipmate"]
        assert registry.inverse_of("client") == "patron"
        assert registry.inverse_of("shipmate") == "shipmate"

    def test_load_is_logged_through_package_logging(self, registry, tmp_path, caplog):
        configure_logging("INFO")
        path = tmp_path / "types.yaml"
        path.write_text("- id: shipmate\n  name: Shipmate\n  symmetric: true\n")

        with caplog.at_level(logging.INFO, logger="kinship_graph.models.relationship_types"):
            registry.load_from_yaml(path)

        [message] = [r.getMessage() for r in caplog.records if "relationship_types.loaded" in r.getMessage()]
        assert json.loads(message)["count"] == 1
