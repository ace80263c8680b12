"""Record Adapter: external field bags <-> typed relationship facts.

Records are plain mappings (usually YAML frontmatter). Relationship data in
them has accumulated several shapes over time: bare ids or wikilinks,
single values or lists, legacy ``spouse``/``spouseN`` keys next to the
structured ``spouses`` list. All of that is normalized here, once, and
nothing downstream ever sees a raw field bag.
"""
from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from typing import Any

from ..dates import FuzzyDate, parse_date
from ..exceptions import RecordParseError
from ..logging import get_logger
from ..models.facts import (
    PARENT_FIELDS,
    ChildFact,
    CustomFact,
    Fact,
    NodeAttributes,
    NodeKind,
    OrgParentFact,
    ParentFact,
    ParentRef,
    ParentRole,
    ParentStatus,
    ParseWarning,
    RelationshipFacts,
    SiblingFact,
    SpouseFact,
    SpouseStatus,
    merge_duplicates,
    parent_field_for,
)
from ..models.relationship_types import RelationshipTypeRegistry

logger = get_logger(__name__)

UNKNOWN_SENTINELS = frozenset({"unknown", "?", "unk"})
RESEARCHING_SENTINELS = frozenset({"researching", "tbd", "todo"})

CHILDREN_FIELD = "children_id"
SPOUSES_FIELD = "spouses"
SIBLING_FIELD = "sibling_id"
CUSTOM_FIELD = "relationships"
ORG_PARENT_FIELD = "parent_org"
RESEARCH_FIELD = "research_pending"

LEGACY_PARENT_FIELDS = {"father": "father_id", "mother": "mother_id"}
LEGACY_SPOUSE_FIELDS = ("spouse_id", "spouse")

CANONICAL_FIELDS = (
    *PARENT_FIELDS,
    CHILDREN_FIELD,
    SPOUSES_FIELD,
    SIBLING_FIELD,
    CUSTOM_FIELD,
    ORG_PARENT_FIELD,
    RESEARCH_FIELD,
)

_INDEXED_SPOUSE = re.compile(r"^spouse(\d+)(_id)?$")
_INDEXED_SPOUSE_META = re.compile(
    r"^spouse(\d+)_(marriage_date|divorce_date|marriage_status|marriage_location)$"
)
_WIKILINK = re.compile(r"^\[\[([^\[\]]*)\]\]$")

Resolver = Callable[[str], "str | None"]


class LinkError(ValueError):
    """A link value cannot be turned into an identifier."""


def is_relationship_field(name: str) -> bool:
    """True for every key the adapter reads relationships from."""
    if name in CANONICAL_FIELDS or name in LEGACY_PARENT_FIELDS or name in LEGACY_SPOUSE_FIELDS:
        return True
    return bool(_INDEXED_SPOUSE.match(name) or _INDEXED_SPOUSE_META.match(name))


def relationship_fields(record: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.items() if is_relationship_field(k)}


def merge_fields(record: Mapping[str, Any], fields: Mapping[str, Any]) -> dict[str, Any]:
    """Apply serialized relationship fields to a record; ``None`` deletes a key."""
    merged = dict(record)
    for key, value in fields.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


def parse_link(value: Any, resolver: Resolver | None = None) -> str:
    """Turn a bare identifier or ``[[Path|alias]]`` wikilink into an identifier.

    Unquoted wikilinks come out of YAML as nested lists (``[["Path"]]``),
    so a one-element list holding one string is read as a wikilink too.
    """
    if isinstance(value, list) and len(value) == 1 and isinstance(value[0], list):
        value = value[0]
    if isinstance(value, list) and len(value) == 1 and isinstance(value[0], str):
        value = f"[[{value[0]}]]"
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise LinkError(f"not a link: {value!r}")
    text = str(value).strip()
    if not text:
        raise LinkError("empty link")

    if text.startswith("[[") or text.endswith("]]"):
        m = _WIKILINK.match(text)
        if not m:
            raise LinkError(f"unbalanced wikilink: {text!r}")
        path = m.group(1).split("|", 1)[0].strip()
        if path.endswith(".md"):
            path = path[:-3]
        if not path:
            raise LinkError("empty wikilink")
        name = path.rsplit("/", 1)[-1].strip()
        if resolver is not None:
            for candidate in (path, name):
                resolved = resolver(candidate)
                if resolved:
                    return str(resolved)
        return name

    if "[" in text or "]" in text:
        raise LinkError(f"unbalanced wikilink: {text!r}")
    return text


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return all(_is_blank(v) for v in value)
    return False


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1", "y"}
    return bool(value)


def _text(value: Any) -> str | None:
    """Scalar -> trimmed string, keeping YAML-native dates as ISO text."""
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    text = str(value).strip()
    return text or None


class _Context:
    """Per-record parse state."""

    def __init__(self, owner: str):
        self.owner = owner
        self.warnings: list[ParseWarning] = []

    def warn(self, field: str, message: str, value: Any = None, dropped: bool = True) -> None:
        self.warnings.append(
            ParseWarning(
                record_id=self.owner,
                source_field=field,
                message=message,
                value=None if value is None else str(value),
                dropped=dropped,
            )
        )


class RecordAdapter:
    """Parse records into RelationshipFacts and serialize facts back.

    ``resolver`` maps wikilink paths/names to identifiers. It may be a
    callable or a plain mapping.
    """

    def __init__(
        self,
        registry: RelationshipTypeRegistry | None = None,
        resolver: Resolver | Mapping[str, str] | None = None,
    ):
        self.registry = registry if registry is not None else RelationshipTypeRegistry.with_defaults()
        if isinstance(resolver, Mapping):
            self.resolver: Resolver | None = resolver.get
        else:
            self.resolver = resolver

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, record: Mapping[str, Any], identifier: str | None = None) -> RelationshipFacts:
        """Extract every relationship fact a record declares.

        Malformed fields never fail the record; they are skipped and
        reported as warnings. A record without any identifier is an error.
        """
        owner = _text(record.get("cr_id")) or _text(identifier)
        if not owner:
            raise RecordParseError("record has no cr_id")

        ctx = _Context(owner)
        node = self._parse_node(record, ctx)
        facts: list[Fact] = []
        facts.extend(self._parse_parents(record, ctx))
        facts.extend(self._parse_children(record, ctx))
        facts.extend(self._parse_spouses(record, ctx))
        facts.extend(self._parse_siblings(record, ctx))
        facts.extend(self._parse_custom(record, ctx))
        facts.extend(self._parse_org(record, node, ctx))

        for w in ctx.warnings:
            logger.debug("adapter.parse_warning", record_id=owner, field=w.source_field, message=w.message)
        return RelationshipFacts(owner=owner, node=node, facts=facts, warnings=ctx.warnings)

    def _link(self, value: Any, field: str, ctx: _Context) -> str | None:
        try:
            target = parse_link(value, self.resolver)
        except LinkError as e:
            ctx.warn(field, str(e), value)
            return None
        if target == ctx.owner and field not in PARENT_FIELDS:
            # Self references are kept for parent fields so the validator can report them
            ctx.warn(field, "relationship to self ignored", value)
            return None
        return target

    def _date(self, value: Any, field: str, ctx: _Context) -> str | None:
        """Validate a relationship date; the raw text is kept either way."""
        text = _text(value)
        if text is None:
            return None
        try:
            parse_date(value)
        except ValueError:
            ctx.warn(field, "unparseable date", text, dropped=False)
        return text

    def _parse_node(self, record: Mapping[str, Any], ctx: _Context) -> NodeAttributes:
        kind = NodeKind.PERSON
        raw_type = _text(record.get("type"))
        if raw_type and raw_type.lower() in {"organization", "organisation", "org"}:
            kind = NodeKind.ORGANIZATION

        born: FuzzyDate | None = None
        died: FuzzyDate | None = None
        for field in ("born", "died"):
            raw = record.get(field)
            if _is_blank(raw):
                continue
            try:
                parsed = parse_date(raw)
            except ValueError:
                ctx.warn(field, "unparseable date", raw)
                continue
            if field == "born":
                born = parsed
            else:
                died = parsed

        return NodeAttributes(
            name=_text(record.get("name")) or ctx.owner,
            kind=kind,
            sex=_text(record.get("sex")),
            born=born,
            died=died,
            is_root=_truthy(record.get("root", False)),
        )

    def _research_flags(self, record: Mapping[str, Any], ctx: _Context) -> set[str]:
        flags: set[str] = set()
        for item in _as_list(record.get(RESEARCH_FIELD)):
            name = _text(item)
            if name is None:
                continue
            name = LEGACY_PARENT_FIELDS.get(name, name)
            if name not in PARENT_FIELDS and f"{name}_id" in PARENT_FIELDS:
                name = f"{name}_id"
            if name not in PARENT_FIELDS:
                ctx.warn(RESEARCH_FIELD, "not a parent field", item)
                continue
            flags.add(name)
        return flags

    def _parent_ref(self, value: Any, field: str, ctx: _Context) -> ParentRef | None:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in UNKNOWN_SENTINELS:
                return ParentRef.unknown()
            if lowered in RESEARCHING_SENTINELS:
                return ParentRef.not_researched(flagged=True)
        target = self._link(value, field, ctx)
        if target is None:
            return None
        return ParentRef.known(target)

    def _parse_parents(self, record: Mapping[str, Any], ctx: _Context) -> list[ParentFact]:
        flags = self._research_flags(record, ctx)
        legacy = {canonical: name for name, canonical in LEGACY_PARENT_FIELDS.items()}
        facts: list[ParentFact] = []

        for field, (role, slot) in PARENT_FIELDS.items():
            value = record.get(field)
            source = field
            if _is_blank(value) and field in legacy:
                value = record.get(legacy[field])
                source = legacy[field]

            refs: list[ParentRef] = []
            for item in _as_list(value):
                if _is_blank(item):
                    continue
                ref = self._parent_ref(item, source, ctx)
                if ref is not None:
                    refs.append(ref)

            if not refs:
                flagged = field in flags
                # Biological slots always carry a status; other roles only when flagged
                if role == ParentRole.BIOLOGICAL or flagged:
                    refs.append(ParentRef.not_researched(flagged=flagged))

            for ref in refs:
                facts.append(ParentFact(owner=ctx.owner, source_field=field, parent=ref, role=role, slot=slot))
        return facts

    def _parse_children(self, record: Mapping[str, Any], ctx: _Context) -> list[ChildFact]:
        facts: list[ChildFact] = []
        for item in _as_list(record.get(CHILDREN_FIELD)):
            role = ParentRole.BIOLOGICAL
            value = item
            if isinstance(item, Mapping):
                value = item.get("id") or item.get("target_id") or item.get("target") or item.get("link")
                raw_role = _text(item.get("role"))
                if raw_role:
                    try:
                        role = ParentRole(raw_role.lower())
                    except ValueError:
                        ctx.warn(CHILDREN_FIELD, "unknown parent role", raw_role)
                        continue
            child = self._link(value, CHILDREN_FIELD, ctx)
            if child is not None:
                facts.append(ChildFact(owner=ctx.owner, source_field=CHILDREN_FIELD, child=child, role=role))
        return facts

    def _status(self, value: Any, field: str, ctx: _Context) -> SpouseStatus | None:
        text = _text(value)
        if text is None:
            return None
        try:
            return SpouseStatus(text.lower())
        except ValueError:
            ctx.warn(field, "unknown marriage status", text)
            return None

    def _parse_spouses(self, record: Mapping[str, Any], ctx: _Context) -> list[SpouseFact]:
        facts: list[SpouseFact] = []

        # Structured list, the canonical shape
        for index, item in enumerate(_as_list(record.get(SPOUSES_FIELD)), start=1):
            if not isinstance(item, Mapping):
                spouse = self._link(item, SPOUSES_FIELD, ctx)
                if spouse is not None:
                    facts.append(SpouseFact(owner=ctx.owner, source_field=SPOUSES_FIELD, spouse=spouse, ordinal=index))
                continue
            value = item.get("id") or item.get("target_id") or item.get("spouse") or item.get("target")
            spouse = self._link(value, SPOUSES_FIELD, ctx)
            if spouse is None:
                continue
            order = item.get("order")
            facts.append(
                SpouseFact(
                    owner=ctx.owner,
                    source_field=SPOUSES_FIELD,
                    spouse=spouse,
                    marriage_date=self._date(item.get("marriage_date"), SPOUSES_FIELD, ctx),
                    divorce_date=self._date(item.get("divorce_date"), SPOUSES_FIELD, ctx),
                    status=self._status(item.get("status"), SPOUSES_FIELD, ctx),
                    location=_text(item.get("location")),
                    ordinal=order if isinstance(order, int) and not isinstance(order, bool) else index,
                )
            )

        # Indexed legacy keys: spouse1 / spouse1_id and spouse1_marriage_date etc.
        indexes: set[int] = set()
        for key in record:
            m = _INDEXED_SPOUSE.match(key) or _INDEXED_SPOUSE_META.match(key)
            if m:
                indexes.add(int(m.group(1)))
        for n in sorted(indexes):
            id_field = f"spouse{n}_id"
            value = record.get(id_field)
            if _is_blank(value):
                id_field = f"spouse{n}"
                value = record.get(id_field)
            if _is_blank(value):
                meta = sorted(k for k in record if _INDEXED_SPOUSE_META.match(k) and k.startswith(f"spouse{n}_"))
                ctx.warn(meta[0] if meta else f"spouse{n}", "marriage details without a spouse")
                continue
            spouse = self._link(value, id_field, ctx)
            if spouse is None:
                continue
            facts.append(
                SpouseFact(
                    owner=ctx.owner,
                    source_field=id_field,
                    spouse=spouse,
                    marriage_date=self._date(record.get(f"spouse{n}_marriage_date"), f"spouse{n}_marriage_date", ctx),
                    divorce_date=self._date(record.get(f"spouse{n}_divorce_date"), f"spouse{n}_divorce_date", ctx),
                    status=self._status(record.get(f"spouse{n}_marriage_status"), f"spouse{n}_marriage_status", ctx),
                    location=_text(record.get(f"spouse{n}_marriage_location")),
                    ordinal=n,
                )
            )

        # Plain legacy spouse_id / spouse, single or list
        for field in LEGACY_SPOUSE_FIELDS:
            for item in _as_list(record.get(field)):
                if _is_blank(item):
                    continue
                spouse = self._link(item, field, ctx)
                if spouse is not None:
                    facts.append(SpouseFact(owner=ctx.owner, source_field=field, spouse=spouse))
        return facts

    def _parse_siblings(self, record: Mapping[str, Any], ctx: _Context) -> list[SiblingFact]:
        facts: list[SiblingFact] = []
        for item in _as_list(record.get(SIBLING_FIELD)):
            if _is_blank(item):
                continue
            sibling = self._link(item, SIBLING_FIELD, ctx)
            if sibling is not None:
                facts.append(SiblingFact(owner=ctx.owner, source_field=SIBLING_FIELD, sibling=sibling))
        return facts

    def _parse_custom(self, record: Mapping[str, Any], ctx: _Context) -> list[CustomFact]:
        facts: list[CustomFact] = []
        for item in _as_list(record.get(CUSTOM_FIELD)):
            if not isinstance(item, Mapping):
                ctx.warn(CUSTOM_FIELD, "relationship entry is not a mapping", item)
                continue
            type_id = _text(item.get("type"))
            if type_id is None:
                ctx.warn(CUSTOM_FIELD, "relationship entry has no type")
                continue
            type_id = type_id.lower()
            if type_id not in self.registry:
                ctx.warn(CUSTOM_FIELD, "unknown relationship type", type_id)
                continue

            link_text = _text(item.get("target")) if isinstance(item.get("target"), str) else None
            value = item.get("target_id") or item.get("target")
            other = self._link(value, CUSTOM_FIELD, ctx)
            if other is None:
                continue
            facts.append(
                CustomFact(
                    owner=ctx.owner,
                    source_field=CUSTOM_FIELD,
                    type_id=type_id,
                    other=other,
                    target_link=link_text,
                    from_date=self._date(item.get("from"), CUSTOM_FIELD, ctx),
                    to_date=self._date(item.get("to"), CUSTOM_FIELD, ctx),
                    notes=_text(item.get("notes")),
                )
            )
        return facts

    def _parse_org(
        self, record: Mapping[str, Any], node: NodeAttributes, ctx: _Context
    ) -> list[OrgParentFact]:
        value = record.get(ORG_PARENT_FIELD)
        if _is_blank(value):
            return []
        if node.kind != NodeKind.ORGANIZATION:
            ctx.warn(ORG_PARENT_FIELD, "parent_org on a record that is not an organization", value)
            return []
        org = self._link(value, ORG_PARENT_FIELD, ctx)
        if org is None:
            return []
        return [OrgParentFact(owner=ctx.owner, source_field=ORG_PARENT_FIELD, org=org)]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(
        self,
        facts: RelationshipFacts | Iterable[Fact],
        original: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Render facts as canonical relationship fields for write-back.

        Only relationship-bearing keys are returned. Legacy keys present in
        ``original`` map to ``None`` so merge_fields drops them.
        """
        items = facts.facts if isinstance(facts, RelationshipFacts) else list(facts)
        unique = merge_duplicates(items)

        out: dict[str, Any] = {}
        parents: dict[str, list[str]] = {}
        research: set[str] = set()
        children: list[Any] = []
        spouses: list[SpouseFact] = []
        siblings: list[str] = []
        customs: list[dict[str, Any]] = []
        org: str | None = None

        for fact in unique.values():
            if isinstance(fact, ParentFact):
                field = parent_field_for(fact.role, fact.slot)
                if fact.parent.is_known and fact.parent.identifier:
                    parents.setdefault(field, []).append(fact.parent.identifier)
                elif fact.parent.status == ParentStatus.UNKNOWN:
                    parents.setdefault(field, []).append("unknown")
                elif fact.parent.flagged:
                    research.add(field)
            elif isinstance(fact, ChildFact):
                if fact.role == ParentRole.BIOLOGICAL:
                    children.append(fact.child)
                else:
                    children.append({"id": fact.child, "role": fact.role.value})
            elif isinstance(fact, SpouseFact):
                spouses.append(fact)
            elif isinstance(fact, SiblingFact):
                siblings.append(fact.sibling)
            elif isinstance(fact, CustomFact):
                customs.append(self._custom_entry(fact))
            elif isinstance(fact, OrgParentFact):
                org = fact.org

        for field in PARENT_FIELDS:
            values = parents.get(field)
            if values:
                out[field] = values[0] if len(values) == 1 else values
        if children:
            out[CHILDREN_FIELD] = children
        if spouses:
            ordered = sorted(spouses, key=lambda s: (s.ordinal is None, s.ordinal or 0))
            out[SPOUSES_FIELD] = [self._spouse_entry(s) for s in ordered]
        if siblings:
            out[SIBLING_FIELD] = siblings
        if customs:
            out[CUSTOM_FIELD] = customs
        if org:
            out[ORG_PARENT_FIELD] = org
        if research:
            out[RESEARCH_FIELD] = sorted(research)

        if original:
            for key in original:
                if key not in out and is_relationship_field(key):
                    out[key] = None
        return out

    @staticmethod
    def _spouse_entry(fact: SpouseFact) -> dict[str, Any]:
        entry: dict[str, Any] = {"id": fact.spouse}
        if fact.marriage_date:
            entry["marriage_date"] = fact.marriage_date
        if fact.divorce_date:
            entry["divorce_date"] = fact.divorce_date
        if fact.status is not None:
            entry["status"] = fact.status.value
        if fact.location:
            entry["location"] = fact.location
        return entry

    @staticmethod
    def _custom_entry(fact: CustomFact) -> dict[str, Any]:
        entry: dict[str, Any] = {"type": fact.type_id, "target_id": fact.other}
        if fact.target_link:
            entry["target"] = fact.target_link
        if fact.from_date:
            entry["from"] = fact.from_date
        if fact.to_date:
            entry["to"] = fact.to_date
        if fact.notes:
            entry["notes"] = fact.notes
        return entry
