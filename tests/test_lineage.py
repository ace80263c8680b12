"""Tests for lineage tracking."""
from __future__ import annotations

import pytest
from conftest import build_graph, person

from kinship_graph.exceptions import NodeNotFoundError
from kinship_graph.kinship import (
    LineageTracker,
    LineageType,
    all_lineages,
    assign_lineage,
    common_lineages,
    lineages_of,
    members_of,
    remove_lineage,
)
from kinship_graph.sync import InMemoryRecordStore


@pytest.fixture
def smiths():
    """john -> will, mary; will -> tom; mary -> ann."""
    return [
        person("john", name="John Smith", sex="M", root=True),
        person("will", sex="M", father_id="john"),
        person("mary", sex="F", father_id="john"),
        person("tom", father_id="will"),
        person("ann", mother_id="mary"),
    ]


@pytest.fixture
def tracker(smiths):
    return LineageTracker(build_graph(smiths))


class TestTrace:
    """Tests for following lines of descent."""

    def test_all_descendants(self, tracker):
        lineage = tracker.trace("john")

        assert lineage.name == "Smith Line"
        assert lineage.member_ids == ["john", "will", "mary", "tom", "ann"]
        assert lineage.max_generation == 2
        assert lineage.members[-1].path == ("john", "mary", "ann")

    def test_patrilineal(self, tracker):
        lineage = tracker.trace("john", LineageType.PATRILINEAL, name="Smiths")
        assert lineage.member_ids == ["john", "will", "mary", "tom"]

    def test_matrilineal(self, tracker):
        assert tracker.trace("john", "matrilineal").member_ids == ["john"]
        assert tracker.trace("mary", "matrilineal").member_ids == ["mary", "ann"]

    def test_root_markers(self, tracker):
        [lineage] = tracker.trace_roots()
        assert lineage.root == "john"

    def test_unknown_root(self, tracker):
        with pytest.raises(NodeNotFoundError):
            tracker.trace("nobody")


class TestStoredLineages:
    """Tests for lineage names on records."""

    def test_lineages_of(self):
        assert lineages_of({"lineage": "A Line"}) == ["A Line"]
        assert lineages_of({"lineage": ["A", 3, "B"]}) == ["A", "B"]
        assert lineages_of({}) == []

    def test_assign_query_and_remove(self, smiths, tracker):
        store = InMemoryRecordStore({r["cr_id"]: r for r in smiths})

        assert assign_lineage(store, tracker.trace("john")) == 5
        assert assign_lineage(store, tracker.trace("john")) == 0
        assign_lineage(store, tracker.trace("mary", "matrilineal", name="Mary Line"))

        assert store.read("ann")["lineage"] == ["Smith Line", "Mary Line"]
        assert all_lineages(store) == ["Mary Line", "Smith Line"]
        assert members_of(store, "Mary Line") == ["mary", "ann"]
        assert common_lineages(store, "tom", "ann") == ["Smith Line"]
        assert common_lineages(store, "tom", "nobody") == []

        assert remove_lineage(store, "Mary Line") == 2
        assert store.read("ann")["lineage"] == ["Smith Line"]
        assert remove_lineage(store, "Smith Line") == 5
        assert "lineage" not in store.read("ann")
