"""Bidirectional synchronizer: keep both ends of every relationship in step.

When a record's relationship fields change, the added and removed facts
are diffed and each one's inverse is ensured on (or removed from) the
target record. Two rules keep this safe on user-authored data:

* Removal is additive-biased. An inverse is only deleted when this
  synchronizer wrote it; inverses the target declared itself are kept
  and reported.
* Our own writes are remembered per target as a fingerprint of the
  relationship state written. When the store reports that state back as
  a change event it is acknowledged as an echo and produces no writes,
  which breaks the write-observe-write loop. An older user edit that
  arrives after such a write is still diffed, minus the facts we wrote.

Each target is updated with a single write of its complete new state,
after the serialized record has been re-parsed and verified.
"""
from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..adapter import RecordAdapter, merge_fields, relationship_fields
from ..config import CONFIG
from ..exceptions import RecordParseError, RecordStoreError
from ..graph.projection import fingerprint
from ..logging import get_logger
from ..models.facts import Fact, ParentFact, ParentSlot, ParentStatus, RelationshipFacts, parent_field_for
from .locks import KeyedLock
from .models import ChangeEvent, RetainedFact, SyncConflict, SyncFailure, SyncReport, SyncWrite
from .store import RecordStore

if TYPE_CHECKING:
    from ..graph.projection import GraphProjection

logger = get_logger(__name__)

FactKey = tuple[str, ...]


def relationship_state(record: Mapping[str, Any]) -> str:
    """Fingerprint of the relationship-bearing fields of a record."""
    return fingerprint(relationship_fields(record))


@dataclass(frozen=True)
class _Op:
    action: str  # "ensure" or "remove"
    fact: Fact  # the inverse, as it belongs on the target
    previous: Fact | None = None  # inverse of the source's previous version


class BidirectionalSynchronizer:
    """Propagate relationship edits to the records on the other end.

    Example:
        >>> sync = BidirectionalSynchronizer(store)
        >>> report = await sync.on_record_changed("A", before, after)
        >>> report.targets_written
        ['B']
    """

    def __init__(
        self,
        store: RecordStore,
        adapter: RecordAdapter | None = None,
        *,
        max_concurrency: int | None = None,
        projection: GraphProjection | None = None,
    ) -> None:
        self.store = store
        self.adapter = adapter or RecordAdapter()
        self.registry = self.adapter.registry
        self.max_concurrency = max(1, max_concurrency or CONFIG.sync_max_concurrency)
        self.projection = projection
        self._locks = KeyedLock()
        self._written: dict[str, str] = {}
        self._authored: dict[str, set[FactKey]] = {}

    def authored(self, target: str) -> frozenset[FactKey]:
        """Keys of the inverse facts this synchronizer added to ``target``."""
        return frozenset(self._authored.get(target, ()))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def on_record_changed(
        self,
        identifier: str,
        previous: Mapping[str, Any] | None,
        current: Mapping[str, Any] | None,
    ) -> SyncReport:
        """Handle a change notification for one record."""
        report = SyncReport(identifier=identifier)
        skip: frozenset[FactKey] = frozenset()
        latest = current

        written = self._written.get(identifier)
        if current is not None and written is not None:
            if relationship_state(current) == written:
                self._written.pop(identifier, None)
                report.echo = True
                logger.debug("sync.echo_ignored", identifier=identifier)
                return report
            stored = await self._read_quietly(identifier)
            if stored is not None and relationship_state(stored) == written:
                # A write we made after this edit is already in the store.
                # The user's own changes still propagate; what we wrote does not.
                report.superseded = True
                skip = self.authored(identifier)
                latest = stored
                logger.info("sync.event_superseded", identifier=identifier, skipped=len(skip))
            else:
                self._written.pop(identifier, None)

        await self._sync(identifier, previous, current, report, skip=skip, latest=latest)
        return report

    async def reconcile(self, identifier: str) -> SyncReport:
        """Ensure every reciprocal of a record's current facts exists.

        Nothing is removed, so running this over a consistent store
        produces no writes.
        """
        report = SyncReport(identifier=identifier)
        try:
            current = await asyncio.to_thread(self.store.read, identifier)
        except RecordStoreError as e:
            self._fail(report, identifier, identifier, "cr_id", e.reason)
            return report
        await self._sync(identifier, None, current, report)
        return report

    async def process(
        self, events: Iterable[ChangeEvent | tuple[str, Mapping | None, Mapping | None]]
    ) -> list[SyncReport]:
        """Handle change events in arrival order."""
        reports: list[SyncReport] = []
        for event in events:
            if not isinstance(event, ChangeEvent):
                event = ChangeEvent(*event)
            reports.append(await self.on_record_changed(event.identifier, event.previous, event.current))
        return reports

    # ------------------------------------------------------------------
    # Diff and plan
    # ------------------------------------------------------------------

    def _parse(self, record: Mapping[str, Any] | None, identifier: str) -> RelationshipFacts:
        if record is None:
            return RelationshipFacts(owner=identifier)
        return self.adapter.parse(record, identifier)

    def _plan(
        self,
        identifier: str,
        before: RelationshipFacts,
        after: RelationshipFacts,
        skip: frozenset[FactKey] = frozenset(),
    ) -> dict[str, list[_Op]]:
        prev = {k: f for k, f in before.reciprocable().items() if k not in skip}
        cur = {k: f for k, f in after.reciprocable().items() if k not in skip}
        plan: dict[str, list[_Op]] = {}

        for key, fact in cur.items():
            old = prev.get(key)
            if old is not None and old.metadata() == fact.metadata():
                continue
            inverse = fact.reciprocal(self.registry, after.node.sex)
            if inverse is None or fact.target == identifier:
                continue
            previous = old.reciprocal(self.registry, before.node.sex) if old is not None else None
            plan.setdefault(fact.target, []).append(_Op("ensure", inverse, previous))

        for key, fact in prev.items():
            if key in cur:
                continue
            inverse = fact.reciprocal(self.registry, before.node.sex)
            if inverse is None or fact.target == identifier:
                continue
            plan.setdefault(fact.target, []).append(_Op("remove", inverse))
        return plan

    async def _sync(
        self,
        identifier: str,
        previous: Mapping[str, Any] | None,
        current: Mapping[str, Any] | None,
        report: SyncReport,
        *,
        skip: frozenset[FactKey] = frozenset(),
        latest: Mapping[str, Any] | None = None,
    ) -> None:
        try:
            before = self._parse(previous, identifier)
            after = self._parse(current, identifier)
        except RecordParseError as e:
            self._fail(report, identifier, identifier, "cr_id", str(e))
            return

        plan = self._plan(identifier, before, after, skip)
        if plan:
            sem = asyncio.Semaphore(self.max_concurrency)

            async def run(target: str, ops: list[_Op]) -> None:
                async with sem:
                    async with self._locks.hold(target):
                        await self._apply(identifier, target, ops, report)

            await asyncio.gather(*(run(target, ops) for target, ops in plan.items()))

        if self.projection is not None:
            await self._refresh_projection(identifier, latest if latest is not None else current, report)

    # ------------------------------------------------------------------
    # Per-target update
    # ------------------------------------------------------------------

    async def _apply(self, source: str, target: str, ops: list[_Op], report: SyncReport) -> None:
        """Read, update, verify and write one target. All or nothing."""
        field = ops[0].fact.source_field
        try:
            record = await asyncio.to_thread(self.store.read, target)
        except RecordStoreError as e:
            self._fail(report, source, target, field, e.reason)
            return
        try:
            facts = self.adapter.parse(record, target)
        except RecordParseError as e:
            self._fail(report, source, target, field, str(e))
            return

        existing: dict[FactKey, Fact] = dict(facts.unique())
        authored = set(self._authored.get(target, ()))
        added: list[FactKey] = []
        updated: list[FactKey] = []
        removed: list[FactKey] = []

        for op in ops:
            key = op.fact.key
            if op.action == "remove":
                if key not in existing:
                    continue
                if key in authored:
                    del existing[key]
                    authored.discard(key)
                    removed.append(key)
                else:
                    report.retained.append(RetainedFact(source=source, target=target, key=key))
                    logger.info("sync.retained", source=source, target=target, key=list(key))
                continue

            current = existing.get(key)
            if current is None:
                inverse = op.fact
                if isinstance(inverse, ParentFact):
                    inverse = self._place_parent(inverse, existing)
                    if inverse is None:
                        self._fail(report, source, target, op.fact.source_field, "both parent slots hold other parents")
                        continue
                existing[key] = inverse
                authored.add(key)
                added.append(key)
                continue

            update = self._merge_metadata(source, target, op, current, report)
            if update:
                existing[key] = current.model_copy(update=update)
                updated.append(key)

        if not (added or updated or removed):
            return

        fields = self.adapter.serialize(list(existing.values()), original=record)
        lossy = sorted({w.source_field for w in facts.warnings if w.dropped} & set(fields))
        if lossy:
            self._fail(report, source, target, lossy[0], "target has unparseable entries a rewrite would drop")
            return
        new_record = merge_fields(record, fields)
        reason = self._verify(target, new_record, existing)
        if reason is not None:
            self._fail(report, source, target, field, reason)
            return

        try:
            await asyncio.to_thread(self.store.write, target, new_record)
        except RecordStoreError as e:
            self._fail(report, source, target, field, e.reason)
            return

        self._authored[target] = authored
        self._written[target] = relationship_state(new_record)
        report.writes.append(
            SyncWrite(
                source=source,
                target=target,
                fields=fields,
                added=tuple(added),
                updated=tuple(updated),
                removed=tuple(removed),
            )
        )
        logger.info(
            "sync.write",
            source=source,
            target=target,
            fields=sorted(fields),
            added=len(added),
            updated=len(updated),
            removed=len(removed),
        )

    def _merge_metadata(
        self, source: str, target: str, op: _Op, current: Fact, report: SyncReport
    ) -> dict[str, Any]:
        """Sub-field updates for an existing inverse; the incoming value wins."""
        have = current.metadata()
        before = op.previous.metadata() if op.previous is not None else {}
        update: dict[str, Any] = {}
        for name, value in op.fact.metadata().items():
            theirs = have.get(name)
            if theirs == value:
                continue
            if value is None and before.get(name) is None:
                # Source never had it; leave the target's own value alone
                continue
            if theirs is not None and theirs != before.get(name):
                report.conflicts.append(
                    SyncConflict(
                        source=source,
                        target=target,
                        field=name,
                        key=current.key,
                        target_value=theirs,
                        incoming_value=value,
                    )
                )
                logger.warning(
                    "sync.conflict", source=source, target=target, field=name, kept=str(value), replaced=str(theirs)
                )
            update[name] = value
        return update

    @staticmethod
    def _place_parent(fact: ParentFact, existing: dict[FactKey, Fact]) -> ParentFact | None:
        """Put a new parent into its preferred slot, or the other one if taken."""
        if fact.slot == ParentSlot.PARENT:
            return fact
        other = ParentSlot.MOTHER if fact.slot == ParentSlot.FATHER else ParentSlot.FATHER
        for slot in (fact.slot, other):
            taken = any(
                isinstance(f, ParentFact) and f.parent.is_known and f.role == fact.role and f.slot == slot
                for f in existing.values()
            )
            if taken:
                continue
            for status in (ParentStatus.UNKNOWN, ParentStatus.NOT_RESEARCHED):
                existing.pop(("parent", fact.role.value, slot.value, status.value), None)
            if slot == fact.slot:
                return fact
            return fact.model_copy(update={"slot": slot, "source_field": parent_field_for(fact.role, slot)})
        return None

    def _verify(self, target: str, record: Mapping[str, Any], expected: dict[FactKey, Fact]) -> str | None:
        """Re-parse a serialized record and compare it with what was intended."""
        try:
            reparsed = self.adapter.parse(record, target)
        except (RecordParseError, ValueError) as e:
            return f"updated record does not parse: {e}"
        want = {k: f.metadata() for k, f in expected.items() if f.target}
        got = {k: f.metadata() for k, f in reparsed.reciprocable().items()}
        if want != got:
            return "updated record does not round-trip"
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail(self, report: SyncReport, source: str, target: str, field: str, reason: str) -> None:
        report.failures.append(SyncFailure(source=source, target=target, field=field, reason=reason))
        logger.warning("sync.failure", source=source, target=target, field=field, reason=reason)

    async def _read_quietly(self, identifier: str) -> dict[str, Any] | None:
        try:
            return await asyncio.to_thread(self.store.read, identifier)
        except RecordStoreError:
            return None

    async def _refresh_projection(
        self, identifier: str, current: Mapping[str, Any] | None, report: SyncReport
    ) -> None:
        await self.projection.apply_change(identifier, current)
        for write in report.writes:
            record = await self._read_quietly(write.target)
            if record is not None:
                await self.projection.apply_change(write.target, record)
