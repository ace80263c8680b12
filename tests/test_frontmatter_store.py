"""Tests for the markdown frontmatter record store."""
from __future__ import annotations

import pytest

from kinship_graph.adapter import RecordAdapter
from kinship_graph.exceptions import RecordNotFoundError
from kinship_graph.sync import (
    BidirectionalSynchronizer,
    FrontmatterRecordStore,
    RecordStore,
    render_frontmatter,
    split_frontmatter,
)


def _note(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def vault(tmp_path):
    _note(
        tmp_path / "People" / "John Smith.md",
        "---\ncr_id: js\nname: John Smith\nsex: M\nspouses:\n  - id: '[[Mary Jones]]'\n    marriage_date: 1950-06-01\n---\n# John\n\nNotes.\n",
    )
    _note(tmp_path / "People" / "Mary Jones.md", "---\ncr_id: mj\nname: Mary Jones\nsex: F\n---\nBody text\n")
    _note(tmp_path / "scratch.md", "no frontmatter here\n")
    _note(tmp_path / "bad.md", "---\n: : :\n  - [\n---\n")
    return tmp_path


class TestFrontmatter:
    """Tests for splitting and rendering notes."""

    def test_split(self):
        data, body = split_frontmatter("---\ncr_id: a\n---\nhello\n")
        assert data == {"cr_id": "a"}
        assert body == "hello\n"

    def test_no_frontmatter(self):
        assert split_frontmatter("plain") == ({}, "plain")

    def test_render_round_trip(self):
        text = render_frontmatter({"cr_id": "a", "children_id": ["b"]}, "body\n")
        assert split_frontmatter(text) == ({"cr_id": "a", "children_id": ["b"]}, "body\n")


class TestFrontmatterRecordStore:
    """Tests for the folder-backed store."""

    def test_is_a_record_store(self, vault):
        assert isinstance(FrontmatterRecordStore(vault), RecordStore)

    def test_scan_skips_notes_without_records(self, vault):
        store = FrontmatterRecordStore(vault)
        assert sorted(identifier for identifier, _ in store.scan()) == ["js", "mj"]

    def test_read_missing(self, vault):
        with pytest.raises(RecordNotFoundError):
            FrontmatterRecordStore(vault).read("nobody")

    def test_write_keeps_body(self, vault):
        store = FrontmatterRecordStore(vault)
        record = store.read("mj")
        record["sibling_id"] = ["x"]
        store.write("mj", record)

        text = (vault / "People" / "Mary Jones.md").read_text(encoding="utf-8")
        assert text.endswith("Body text\n")
        assert store.read("mj")["sibling_id"] == ["x"]

    def test_write_new_record(self, vault):
        store = FrontmatterRecordStore(vault)
        store.write("new", {"cr_id": "new"})
        assert (vault / "new.md").exists()
        assert store.read("new") == {"cr_id": "new"}

    def test_link_resolver(self, vault):
        names = FrontmatterRecordStore(vault).link_resolver()
        assert names["Mary Jones"] == "mj"
        assert names["People/John Smith"] == "js"

    @pytest.mark.asyncio
    async def test_reconcile_writes_reciprocal_to_note(self, vault):
        store = FrontmatterRecordStore(vault)
        adapter = RecordAdapter(resolver=store.link_resolver())
        sync = BidirectionalSynchronizer(store, adapter)

        report = await sync.reconcile("js")

        assert report.targets_written == ["mj"]
        mary = store.read("mj")
        assert mary["spouses"] == [{"id": "js", "marriage_date": "1950-06-01"}]
        assert (vault / "People" / "Mary Jones.md").read_text(encoding="utf-8").endswith("Body text\n")
