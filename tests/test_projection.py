"""Tests for the graph projection over a record store."""
from __future__ import annotations

import asyncio

import pytest
from conftest import person

from kinship_graph.exceptions import ProjectionError, RecordStoreError
from kinship_graph.graph import EdgeType, GraphProjection, ProjectionStatus
from kinship_graph.sync import InMemoryRecordStore


class _FailingStore(InMemoryRecordStore):
    def scan(self):
        raise RecordStoreError("*", "disk on fire")


@pytest.fixture
def store(cousins):
    return InMemoryRecordStore({r["cr_id"]: r for r in cousins})


class TestSync:
    """Tests for snapshot rebuilds."""

    @pytest.mark.asyncio
    async def test_full_rebuild(self, store, adapter):
        projection = GraphProjection(store, adapter, batch_size=2)
        meta = await projection.sync(full_rebuild=True)

        assert meta.status == ProjectionStatus.SYNCED
        assert meta.is_current
        assert meta.total_nodes == 7
        assert meta.total_edges == 7
        assert meta.version == 1
        assert projection.snapshot.version == 1

    @pytest.mark.asyncio
    async def test_snapshot_is_swapped_not_mutated(self, store, adapter):
        projection = GraphProjection(store, adapter)
        await projection.sync(full_rebuild=True)
        before = projection.snapshot

        store.write("d", person("d", father_id="c"))
        await projection.sync()

        assert projection.snapshot is not before
        assert "d" not in before
        assert "d" in projection.snapshot
        assert projection.metadata.version == 2

    @pytest.mark.asyncio
    async def test_incremental_sync_drops_deleted_records(self, cousins, adapter):
        store = InMemoryRecordStore({r["cr_id"]: r for r in cousins})
        projection = GraphProjection(store, adapter)
        await projection.sync(full_rebuild=True)

        smaller = InMemoryRecordStore({r["cr_id"]: r for r in cousins if r["cr_id"] != "c"})
        projection.store = smaller
        await projection.sync()

        assert "c" not in projection.snapshot
        assert projection.snapshot.get_edge("b", "c", EdgeType.PARENT_OF, "biological") is None

    @pytest.mark.asyncio
    async def test_unparseable_record_is_skipped(self, store, adapter):
        store.write("", {"name": "no id"})
        projection = GraphProjection(store, adapter)
        meta = await projection.sync(full_rebuild=True)

        assert meta.records_skipped == 1
        assert meta.total_nodes == 7

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_snapshot(self, store, adapter):
        projection = GraphProjection(store, adapter)
        await projection.sync(full_rebuild=True)
        good = projection.snapshot

        projection.store = _FailingStore()
        with pytest.raises(ProjectionError):
            await projection.sync(full_rebuild=True)

        assert projection.snapshot is good
        assert projection.metadata.status == ProjectionStatus.ERROR
        assert "disk on fire" in projection.metadata.error_message

    @pytest.mark.asyncio
    async def test_cancelled_rebuild_keeps_previous_snapshot(self, adapter):
        records = {f"n{i:04d}": person(f"n{i:04d}") for i in range(200)}
        store = InMemoryRecordStore(records)
        projection = GraphProjection(store, adapter, batch_size=1)
        await projection.sync(full_rebuild=True)
        good = projection.snapshot

        task = asyncio.create_task(projection.sync(full_rebuild=True))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert projection.snapshot is good
        assert projection.metadata.status == ProjectionStatus.SYNCED

    @pytest.mark.asyncio
    async def test_sync_without_store(self):
        with pytest.raises(ProjectionError):
            await GraphProjection().sync()


class TestLoadAndApply:
    """Tests for facts-only loading and single-record changes."""

    @pytest.mark.asyncio
    async def test_load_facts(self, cousins, adapter):
        projection = GraphProjection(adapter=adapter)
        await projection.load_facts([adapter.parse(r) for r in cousins])

        assert len(projection.snapshot) == 7
        assert projection.metadata.is_current

    @pytest.mark.asyncio
    async def test_apply_change(self, store, adapter):
        projection = GraphProjection(store, adapter)
        await projection.sync(full_rebuild=True)

        await projection.apply_change("a", person("a", sex="F", father_id="p2"))
        assert [e.source_id for e in projection.snapshot.parents("a")] == ["p2"]

        await projection.apply_change("a", None)
        assert "a" not in projection.snapshot
