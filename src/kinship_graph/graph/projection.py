"""Graph projection: keep a GraphModel snapshot in step with the record store.

The record store is the source of truth; the graph is a read projection of
it. Every refresh computes into a new snapshot and swaps it in only when
complete, so a cancelled or failed rebuild leaves the previous snapshot
current and readers never see a half-built graph.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ..adapter import RecordAdapter
from ..config import CONFIG
from ..exceptions import ProjectionError, RecordParseError
from ..logging import get_logger
from ..models.facts import RelationshipFacts
from .graph_store import GraphModel
from .models import ProjectionMetadata, ProjectionStatus

if TYPE_CHECKING:
    from ..sync.store import RecordStore

logger = get_logger(__name__)


def fingerprint(record: Mapping[str, Any]) -> str:
    """Stable digest of a record's content."""
    payload = json.dumps(record, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class GraphProjection:
    """Projection manager for the relationship graph.

    Example:
        >>> projection = GraphProjection(store)
        >>> await projection.sync(full_rebuild=True)
        >>> projection.metadata.status
        <ProjectionStatus.SYNCED: 'synced'>
        >>> graph = projection.snapshot
    """

    def __init__(
        self,
        store: RecordStore | None = None,
        adapter: RecordAdapter | None = None,
        batch_size: int | None = None,
    ) -> None:
        """Initialize projection manager.

        Args:
            store: Record store to scan (optional for facts-only loading)
            adapter: Record adapter; its registry is shared with the graph
            batch_size: Records processed between cancellation checkpoints
        """
        self.store = store
        self.adapter = adapter or RecordAdapter()
        self.batch_size = max(1, batch_size or CONFIG.projection_batch_size)
        self._snapshot = GraphModel(self.adapter.registry)
        self._metadata = ProjectionMetadata()
        self._seen: dict[str, str] = {}
        self._lock = asyncio.Lock()

    @property
    def snapshot(self) -> GraphModel:
        """The current, complete graph. Treat it as read-only."""
        return self._snapshot

    @property
    def metadata(self) -> ProjectionMetadata:
        return self._metadata

    def _swap(self, graph: GraphModel, seen: dict[str, str] | None = None) -> None:
        graph.version = self._snapshot.version + 1
        self._snapshot = graph
        if seen is not None:
            self._seen = seen
        stats = graph.stats()
        self._metadata.version = graph.version
        self._metadata.total_nodes = stats["nodes"]
        self._metadata.total_edges = stats["edges"]
        self._metadata.status = ProjectionStatus.SYNCED
        self._metadata.error_message = None
        self._metadata.touch()

    async def sync(self, full_rebuild: bool = False) -> ProjectionMetadata:
        """Re-scan the store and refresh the snapshot.

        Args:
            full_rebuild: Rebuild from an empty graph instead of re-parsing
                only the records whose content changed since the last scan

        Returns:
            Updated projection metadata
        """
        if self.store is None:
            raise ProjectionError("projection has no record store to scan")

        async with self._lock:
            start = datetime.now(UTC)
            previous_status = self._metadata.status
            self._metadata.status = ProjectionStatus.SYNCING
            logger.info("projection.rebuild_started", full_rebuild=full_rebuild, version=self._snapshot.version)
            try:
                records = await asyncio.to_thread(lambda: list(self.store.scan()))
                graph, seen, skipped = await self._build(records, full_rebuild)
            except asyncio.CancelledError:
                self._metadata.status = previous_status
                logger.info("projection.rebuild_cancelled", version=self._snapshot.version)
                raise
            except Exception as e:
                self._metadata.status = ProjectionStatus.ERROR
                self._metadata.error_message = str(e)
                logger.exception("projection.rebuild_failed")
                raise ProjectionError(str(e)) from e

            self._swap(graph, seen)
            self._metadata.records_skipped = skipped
            self._metadata.sync_duration_ms = (datetime.now(UTC) - start).total_seconds() * 1000
            logger.info(
                "projection.rebuild_complete",
                version=graph.version,
                nodes=self._metadata.total_nodes,
                edges=self._metadata.total_edges,
                skipped=skipped,
                duration_ms=round(self._metadata.sync_duration_ms, 2),
            )
            return self._metadata

    async def _build(
        self, records: list[tuple[str, dict[str, Any]]], full_rebuild: bool
    ) -> tuple[GraphModel, dict[str, str], int]:
        graph = GraphModel(self.adapter.registry) if full_rebuild else self._snapshot.copy()
        previous = {} if full_rebuild else self._seen
        seen: dict[str, str] = {}
        skipped = 0

        for index, (identifier, record) in enumerate(records, start=1):
            digest = fingerprint(record)
            try:
                facts = self.adapter.parse(record, identifier)
            except RecordParseError as e:
                skipped += 1
                logger.warning("projection.record_skipped", identifier=identifier, reason=str(e))
                continue
            seen[facts.owner] = digest
            if previous.get(facts.owner) != digest:
                graph.ingest(facts)
            if index % self.batch_size == 0:
                await asyncio.sleep(0)

        for gone in set(previous) - set(seen):
            graph.retract(gone)
        return graph, seen, skipped

    async def load_facts(
        self, batch: Iterable[RelationshipFacts], replace: bool = False
    ) -> ProjectionMetadata:
        """Bulk-load pre-normalized facts, bypassing the record adapter."""
        async with self._lock:
            graph = GraphModel(self.adapter.registry) if replace else self._snapshot.copy()
            count = 0
            for facts in batch:
                graph.ingest(facts)
                count += 1
                if count % self.batch_size == 0:
                    await asyncio.sleep(0)
            self._swap(graph, {} if replace else None)
            logger.info("projection.facts_loaded", records=count, version=graph.version)
            return self._metadata

    async def apply_change(
        self, identifier: str, record: Mapping[str, Any] | None
    ) -> GraphModel:
        """Refresh one record in a new snapshot; ``None`` means it was deleted."""
        async with self._lock:
            graph = self._snapshot.copy()
            seen = dict(self._seen)
            graph.retract(identifier)
            seen.pop(identifier, None)
            if record is not None:
                try:
                    facts = self.adapter.parse(record, identifier)
                except RecordParseError as e:
                    logger.warning("projection.record_skipped", identifier=identifier, reason=str(e))
                else:
                    graph.ingest(facts)
                    seen[facts.owner] = fingerprint(record)
            self._swap(graph, seen)
            return graph
