"""Tests for the relationship validator."""
from __future__ import annotations

from conftest import build_graph, person

from kinship_graph.validation import RelationshipValidator, Severity, ValidationReport


def _validate(records, config=None, **kwargs) -> ValidationReport:
    return RelationshipValidator(build_graph(records), config).validate(**kwargs)


class TestCycles:
    """Tests for ancestry loop detection."""

    def test_two_node_cycle(self, config):
        report = _validate([person("A", father_id="B"), person("B", father_id="A")], config)

        cycles = report.of_kind("cycle")
        assert len(cycles) == 1
        assert sorted(cycles[0].path) == ["A", "B"]
        assert cycles[0].role == "biological"
        assert cycles[0].severity == Severity.ERROR
        assert not report.is_valid

    def test_longer_cycle_reported_once(self, config):
        report = _validate(
            [person("A", father_id="C"), person("B", father_id="A"), person("C", father_id="B")],
            config,
        )
        cycles = report.of_kind("cycle")
        assert len(cycles) == 1
        assert len(cycles[0].path) == 3

    def test_mixed_role_cycle(self, config):
        report = _validate([person("A", adoptive_father_id="B"), person("B", father_id="A")], config)
        assert [c.role for c in report.of_kind("cycle")] == ["mixed"]

    def test_organization_cycle(self, config):
        report = _validate(
            [
                person("O1", type="organization", parent_org="O2"),
                person("O2", type="organization", parent_org="O1"),
            ],
            config,
        )
        cycles = report.of_kind("cycle")
        assert [c.role for c in cycles] == ["organization"]
        assert cycles[0].field == "parent_org"

    def test_tree_has_no_cycles(self, cousins, config):
        assert _validate(cousins, config).of_kind("cycle") == []


class TestReferences:
    """Tests for dangling, duplicate and one-sided edges."""

    def test_dangling_reference(self, config):
        report = _validate([person("A", spouses=[{"id": "ghost"}])], config)
        [finding] = report.of_kind("dangling_reference")
        assert (finding.node_id, finding.field, finding.to_id) == ("A", "spouses", "ghost")

    def test_missing_reciprocal_spouse(self, config):
        report = _validate([person("A", spouses=[{"id": "B"}]), person("B")], config)
        [finding] = report.of_kind("missing_reciprocal")
        assert (finding.node_id, finding.field, finding.from_id) == ("B", "spouses", "A")

    def test_missing_reciprocal_parent_points_at_child_field(self, config):
        report = _validate([person("F", sex="M", children_id=["C"]), person("C")], config)
        [finding] = report.of_kind("missing_reciprocal")
        assert (finding.node_id, finding.field) == ("C", "father_id")

    def test_missing_custom_inverse(self, config):
        report = _validate(
            [person("A", relationships=[{"type": "mentor", "target_id": "B"}]), person("B")], config
        )
        [finding] = report.of_kind("missing_reciprocal")
        assert (finding.node_id, finding.field) == ("B", "relationships")

    def test_custom_inverse_present(self, config):
        report = _validate(
            [
                person("A", relationships=[{"type": "mentor", "target_id": "B"}]),
                person("B", relationships=[{"type": "disciple", "target_id": "A"}]),
            ],
            config,
        )
        assert report.of_kind("missing_reciprocal") == []

    def test_reciprocated_edges_are_clean(self, config):
        report = _validate(
            [
                person("F", sex="M", children_id=["C"], spouses=[{"id": "M"}]),
                person("M", sex="F", children_id=["C"], spouses=[{"id": "F"}]),
                person("C", father_id="F", mother_id="M"),
            ],
            config,
        )
        assert report.findings == []
        assert report.is_valid
        assert report.nodes_checked == 3

    def test_duplicate_edge(self, config):
        report = _validate([person("A", sibling_id=["B", "B"]), person("B", sibling_id=["A"])], config)
        [finding] = report.of_kind("duplicate_edge")
        assert (finding.node_id, finding.count) == ("A", 2)


class TestParents:
    """Tests for parent-slot checks."""

    def test_one_known_parent_without_placeholder(self, config):
        report = _validate([person("C", father_id="F"), person("F", children_id=["C"])], config)
        [finding] = report.of_kind("unknown_parent_without_placeholder")
        assert (finding.node_id, finding.field, finding.known_parent) == ("C", "mother_id", "F")

    def test_unknown_marker_satisfies_check(self, config):
        report = _validate(
            [person("C", father_id="F", mother_id="unknown"), person("F", children_id=["C"])], config
        )
        assert report.of_kind("unknown_parent_without_placeholder") == []

    def test_research_flag_satisfies_check(self, config):
        report = _validate(
            [person("C", father_id="F", research_pending=["mother_id"]), person("F", children_id=["C"])],
            config,
        )
        assert report.of_kind("unknown_parent_without_placeholder") == []

    def test_excess_parents(self, config):
        report = _validate(
            [person("C", father_id=["F1", "F2"], mother_id="M"), person("F1"), person("F2"), person("M")],
            config,
        )
        [finding] = report.of_kind("excess_parents")
        assert finding.parents == ["F1", "F2", "M"]

    def test_self_relationship(self, config):
        report = _validate([person("A", father_id="A")], config)
        [finding] = report.of_kind("self_relationship")
        assert finding.node_id == "A"
        assert finding.severity == Severity.ERROR


class TestTimeline:
    """Tests for date plausibility."""

    def test_death_before_birth(self, config):
        report = _validate([person("A", born="1900", died="1890")], config)
        [finding] = report.of_kind("implausible_timeline")
        assert finding.severity == Severity.ERROR

    def test_lifespan(self, config):
        report = _validate([person("A", born="1800", died="1950")], config)
        [finding] = report.of_kind("implausible_timeline")
        assert finding.severity == Severity.WARNING

    def test_child_born_before_parent(self, config):
        report = _validate(
            [person("P", born="1900", children_id=["C"]), person("C", born="1890", father_id="P")], config
        )
        [finding] = report.of_kind("implausible_timeline")
        assert (finding.node_id, finding.other_id, finding.severity) == ("C", "P", Severity.ERROR)

    def test_young_parent(self, config):
        report = _validate(
            [person("P", born="1900", children_id=["C"]), person("C", born="1905", father_id="P")], config
        )
        [finding] = report.of_kind("implausible_timeline")
        assert finding.severity == Severity.WARNING

    def test_born_long_after_parent_died(self, config):
        report = _validate(
            [
                person("P", born="1850", died="1880", children_id=["C"]),
                person("C", born="1885", father_id="P"),
            ],
            config,
        )
        [finding] = report.of_kind("implausible_timeline")
        assert finding.other_id == "P"

    def test_approximate_dates_are_given_the_benefit_of_the_doubt(self, config):
        report = _validate(
            [
                person("P", born="1880s", children_id=["C"]),
                person("C", born="c. 1900", father_id="P"),
            ],
            config,
        )
        assert report.of_kind("implausible_timeline") == []

    def test_before_and_after_are_open_bounds(self, config):
        report = _validate(
            [
                person("P", born="bef 1900", children_id=["C"]),
                person("C", born="1905", died="aft 1950", father_id="P"),
            ],
            config,
        )
        assert report.of_kind("implausible_timeline") == []

    def test_estimated_range_keeps_its_end(self, config):
        report = _validate(
            [
                person("P", born="1840", died="abt 1880-1890", children_id=["C"]),
                person("C", born="1889", father_id="P"),
            ],
            config,
        )
        assert report.of_kind("implausible_timeline") == []


class TestReport:
    """Tests for report handling."""

    def test_parse_issues_are_findings(self, config):
        report = _validate([person("A", children_id=["[[broken"])], config)
        [finding] = report.of_kind("parse_issue")
        assert (finding.node_id, finding.field) == ("A", "children_id")

    def test_cancel_returns_partial_report(self, cousins, config):
        report = _validate(cousins, config, cancel=lambda: True)
        assert not report.complete
        assert report.findings == []

    def test_report_is_serializable(self, config):
        report = _validate([person("A", father_id="B"), person("B", father_id="A")], config)
        data = report.model_dump(mode="json")
        assert data["is_valid"] is False
        assert {f["kind"] for f in data["findings"]} >= {"cycle"}
        assert report.counts()["cycle"] == 1
        assert set(report.by_node()) >= {"A", "B"}
