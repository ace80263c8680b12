"""Tests for the record adapter."""
from __future__ import annotations

from datetime import date

import pytest
import yaml

from kinship_graph.adapter import LinkError, RecordAdapter, merge_fields, parse_link
from kinship_graph.exceptions import RecordParseError
from kinship_graph.models import (
    ChildFact,
    CustomFact,
    NodeKind,
    OrgParentFact,
    ParentFact,
    ParentRole,
    ParentSlot,
    ParentStatus,
    SiblingFact,
    SpouseFact,
    SpouseStatus,
)


def _of(facts, kind):
    return [f for f in facts.facts if isinstance(f, kind)]


def _known_parents(facts):
    return {(f.role, f.slot): f.parent.identifier for f in _of(facts, ParentFact) if f.parent.is_known}


class TestParseLink:
    """Tests for link normalization."""

    def test_bare_identifier(self):
        assert parse_link("abc-123") == "abc-123"

    def test_wikilink_with_alias_and_path(self):
        assert parse_link("[[People/John Smith.md|John]]") == "John Smith"

    def test_unquoted_yaml_wikilink(self):
        value = yaml.safe_load("father_id: [[John Smith]]")["father_id"]
        assert value == [["John Smith"]]
        assert parse_link(value) == "John Smith"

    def test_resolver_maps_names_to_ids(self):
        resolver = {"People/John Smith": "js-1"}.get
        assert parse_link("[[People/John Smith]]", resolver) == "js-1"

    @pytest.mark.parametrize("value", ["[[broken", "broken]]", "[[]]", "", "  ", None, 3.5, {"id": "x"}])
    def test_malformed(self, value):
        with pytest.raises(LinkError):
            parse_link(value)


class TestParseParents:
    """Tests for parent fields."""

    def test_biological_parents(self, adapter):
        facts = adapter.parse({"cr_id": "c", "father_id": "f", "mother_id": "[[m]]"})
        assert _known_parents(facts) == {
            (ParentRole.BIOLOGICAL, ParentSlot.FATHER): "f",
            (ParentRole.BIOLOGICAL, ParentSlot.MOTHER): "m",
        }

    def test_missing_biological_slot_is_not_researched(self, adapter):
        facts = adapter.parse({"cr_id": "c", "father_id": "f"})
        mother = [f for f in _of(facts, ParentFact) if f.slot == ParentSlot.MOTHER]
        assert len(mother) == 1
        assert mother[0].parent.status == ParentStatus.NOT_RESEARCHED
        assert not mother[0].parent.flagged

    def test_unknown_sentinel(self, adapter):
        facts = adapter.parse({"cr_id": "c", "father_id": "Unknown"})
        father = [f for f in _of(facts, ParentFact) if f.slot == ParentSlot.FATHER][0]
        assert father.parent.status == ParentStatus.UNKNOWN
        assert father.target is None

    def test_research_flag(self, adapter):
        facts = adapter.parse({"cr_id": "c", "father_id": "f", "research_pending": ["mother"]})
        mother = [f for f in _of(facts, ParentFact) if f.slot == ParentSlot.MOTHER][0]
        assert mother.parent.status == ParentStatus.NOT_RESEARCHED
        assert mother.parent.flagged

    def test_researching_sentinel(self, adapter):
        facts = adapter.parse({"cr_id": "c", "mother_id": "TBD"})
        mother = [f for f in _of(facts, ParentFact) if f.slot == ParentSlot.MOTHER][0]
        assert mother.parent.flagged

    def test_legacy_keys(self, adapter):
        facts = adapter.parse({"cr_id": "c", "father": "f", "mother": "m"})
        assert set(_known_parents(facts).values()) == {"f", "m"}

    def test_canonical_key_wins_over_legacy(self, adapter):
        facts = adapter.parse({"cr_id": "c", "father_id": "f1", "father": "f2"})
        assert set(_known_parents(facts).values()) == {"f1"}

    def test_non_biological_roles(self, adapter):
        facts = adapter.parse(
            {"cr_id": "c", "adoptive_mother_id": "am", "stepfather_id": "sf", "guardian_id": "g"}
        )
        assert _known_parents(facts) == {
            (ParentRole.ADOPTIVE, ParentSlot.MOTHER): "am",
            (ParentRole.STEP, ParentSlot.FATHER): "sf",
            (ParentRole.GUARDIAN, ParentSlot.PARENT): "g",
        }

    def test_empty_non_biological_slots_emit_nothing(self, adapter):
        facts = adapter.parse({"cr_id": "c"})
        assert {f.role for f in _of(facts, ParentFact)} == {ParentRole.BIOLOGICAL}

    def test_self_parent_is_kept_for_validation(self, adapter):
        facts = adapter.parse({"cr_id": "c", "father_id": "c"})
        assert _known_parents(facts)[(ParentRole.BIOLOGICAL, ParentSlot.FATHER)] == "c"


class TestParseRelationships:
    """Tests for children, spouses, siblings and custom types."""

    def test_children_single_and_list(self, adapter):
        assert [f.child for f in _of(adapter.parse({"cr_id": "p", "children_id": "k"}), ChildFact)] == ["k"]
        facts = adapter.parse({"cr_id": "p", "children_id": ["k1", "[[k2]]"]})
        assert [f.child for f in _of(facts, ChildFact)] == ["k1", "k2"]

    def test_child_with_role(self, adapter):
        facts = adapter.parse({"cr_id": "p", "children_id": [{"id": "k", "role": "adoptive"}]})
        child = _of(facts, ChildFact)[0]
        assert child.role == ParentRole.ADOPTIVE

    def test_structured_spouses(self, adapter):
        facts = adapter.parse(
            {
                "cr_id": "a",
                "spouses": [
                    {"id": "b", "marriage_date": date(1950, 6, 1), "status": "divorced", "location": "Leeds"},
                    {"id": "c"},
                ],
            }
        )
        b, c = _of(facts, SpouseFact)
        assert b.spouse == "b"
        assert b.marriage_date == "1950-06-01"
        assert b.status == SpouseStatus.DIVORCED
        assert b.location == "Leeds"
        assert (b.ordinal, c.ordinal) == (1, 2)

    def test_indexed_legacy_spouses(self, adapter):
        facts = adapter.parse(
            {
                "cr_id": "a",
                "spouse1": "[[b]]",
                "spouse1_marriage_date": "1950",
                "spouse2_id": "c",
                "spouse2_marriage_status": "widowed",
            }
        )
        b, c = _of(facts, SpouseFact)
        assert (b.spouse, b.marriage_date) == ("b", "1950")
        assert (c.spouse, c.status) == ("c", SpouseStatus.WIDOWED)

    def test_plain_legacy_spouse(self, adapter):
        facts = adapter.parse({"cr_id": "a", "spouse": ["b", "c"]})
        assert [f.spouse for f in _of(facts, SpouseFact)] == ["b", "c"]

    def test_marriage_details_without_spouse_warn(self, adapter):
        facts = adapter.parse({"cr_id": "a", "spouse2_marriage_date": "1950"})
        assert not _of(facts, SpouseFact)
        assert facts.warnings[0].source_field == "spouse2_marriage_date"

    def test_siblings(self, adapter):
        facts = adapter.parse({"cr_id": "a", "sibling_id": ["b", "", None]})
        assert [f.sibling for f in _of(facts, SiblingFact)] == ["b"]

    def test_custom_relationship(self, adapter):
        facts = adapter.parse(
            {"cr_id": "a", "relationships": [{"type": "Mentor", "target": "[[b]]", "from": "1900", "notes": "x"}]}
        )
        custom = _of(facts, CustomFact)[0]
        assert (custom.type_id, custom.other, custom.from_date) == ("mentor", "b", "1900")

    def test_unknown_custom_type_warns(self, adapter):
        facts = adapter.parse({"cr_id": "a", "relationships": [{"type": "nemesis", "target": "b"}]})
        assert not _of(facts, CustomFact)
        assert facts.warnings[0].message == "unknown relationship type"

    def test_org_parent_only_on_organizations(self, adapter):
        org = adapter.parse({"cr_id": "o", "type": "organization", "parent_org": "[[holding]]"})
        assert org.node.kind == NodeKind.ORGANIZATION
        assert _of(org, OrgParentFact)[0].org == "holding"

        person = adapter.parse({"cr_id": "p", "parent_org": "holding"})
        assert not _of(person, OrgParentFact)
        assert person.warnings


class TestParseRobustness:
    """Malformed input never fails the record."""

    def test_missing_identifier(self, adapter):
        with pytest.raises(RecordParseError):
            adapter.parse({"name": "Nobody"})

    def test_identifier_argument_is_fallback(self, adapter):
        assert adapter.parse({"name": "x"}, "note-7").owner == "note-7"

    def test_malformed_link_becomes_warning(self, adapter):
        facts = adapter.parse({"cr_id": "a", "children_id": ["ok", "[[broken"]})
        assert [f.child for f in _of(facts, ChildFact)] == ["ok"]
        assert len(facts.warnings) == 1
        assert facts.warnings[0].source_field == "children_id"
        assert facts.warnings[0].dropped

    def test_bad_relationship_date_is_kept(self, adapter):
        facts = adapter.parse({"cr_id": "a", "spouses": [{"id": "b", "marriage_date": "sometime"}]})
        assert _of(facts, SpouseFact)[0].marriage_date == "sometime"
        assert not facts.warnings[0].dropped

    def test_bad_vital_date(self, adapter):
        facts = adapter.parse({"cr_id": "a", "born": "long ago"})
        assert facts.node.born is None
        assert facts.warnings[0].source_field == "born"

    def test_mapping_resolver(self):
        adapter = RecordAdapter(resolver={"John Smith": "js-1"})
        facts = adapter.parse({"cr_id": "a", "father_id": "[[John Smith]]"})
        assert "js-1" in _known_parents(facts).values()


class TestSerialize:
    """Tests for write-back serialization."""

    def test_round_trip_preserves_facts(self, adapter):
        record = {
            "cr_id": "a",
            "father_id": "f",
            "mother_id": "unknown",
            "adoptive_mother_id": "am",
            "children_id": ["k1", {"id": "k2", "role": "step"}],
            "spouses": [{"id": "s", "marriage_date": "1950", "status": "current"}],
            "sibling_id": ["b"],
            "relationships": [{"type": "mentor", "target_id": "m", "from": "1900"}],
            "research_pending": ["foster_father_id"],
        }
        facts = adapter.parse(record)

        again = adapter.parse(merge_fields(record, adapter.serialize(facts, original=record)))

        def view(parsed):
            return {k: f.metadata() for k, f in parsed.unique().items()}

        assert view(again) == view(facts)

    def test_legacy_keys_are_replaced(self, adapter):
        record = {"cr_id": "a", "father": "f", "spouse1": "b", "spouse1_marriage_date": "1950"}
        fields = adapter.serialize(adapter.parse(record), original=record)

        assert fields["father_id"] == "f"
        assert fields["spouses"] == [{"id": "b", "marriage_date": "1950"}]
        assert fields["father"] is None
        assert fields["spouse1"] is None
        assert fields["spouse1_marriage_date"] is None

        merged = merge_fields(record, fields)
        assert "spouse1" not in merged
        assert merged["cr_id"] == "a"

    def test_duplicate_declarations_merge(self, adapter):
        facts = adapter.parse({"cr_id": "a", "spouse": "b", "spouses": [{"id": "b", "marriage_date": "1950"}]})
        assert adapter.serialize(facts)["spouses"] == [{"id": "b", "marriage_date": "1950"}]
