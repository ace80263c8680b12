"""Record stores: where records live between parses.

The engine never owns records; it reads field bags from a store and writes
relationship updates back through it. Two stores ship: an in-memory one
used by tests and bulk tooling, and a folder of markdown notes with YAML
frontmatter used by the CLI.
"""
from __future__ import annotations

import copy
import re
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from ..exceptions import RecordNotFoundError, RecordStoreError
from ..fs import atomic_write_text
from ..logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class RecordStore(Protocol):
    """Source of truth for records, keyed by stable identifier."""

    def read(self, identifier: str) -> dict[str, Any]:
        ...

    def write(self, identifier: str, record: Mapping[str, Any]) -> None:
        ...

    def scan(self) -> Iterator[tuple[str, dict[str, Any]]]:
        ...


class InMemoryRecordStore:
    """Dictionary-backed store. Reads and writes hand out copies."""

    def __init__(self, records: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._records: dict[str, dict[str, Any]] = {
            k: copy.deepcopy(dict(v)) for k, v in (records or {}).items()
        }
        self.write_log: list[str] = []

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._records

    def read(self, identifier: str) -> dict[str, Any]:
        try:
            return copy.deepcopy(self._records[identifier])
        except KeyError:
            raise RecordNotFoundError(identifier, "no such record") from None

    def write(self, identifier: str, record: Mapping[str, Any]) -> None:
        self._records[identifier] = copy.deepcopy(dict(record))
        self.write_log.append(identifier)

    def scan(self) -> Iterator[tuple[str, dict[str, Any]]]:
        for identifier in list(self._records):
            yield identifier, copy.deepcopy(self._records[identifier])


_FRONTMATTER = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*\r?$\n?", re.S | re.M)


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a markdown note into (frontmatter mapping, body)."""
    m = _FRONTMATTER.match(text)
    if not m:
        return {}, text
    data = yaml.safe_load(m.group(1)) or {}
    if not isinstance(data, dict):
        raise ValueError("frontmatter is not a mapping")
    return data, text[m.end():]


def render_frontmatter(data: Mapping[str, Any], body: str) -> str:
    dumped = yaml.safe_dump(dict(data), sort_keys=False, allow_unicode=True, default_flow_style=False)
    return f"---\n{dumped}---\n{body}"


class FrontmatterRecordStore:
    """A folder of markdown notes whose YAML frontmatter is the record.

    Notes are indexed by their ``cr_id``; notes without one are ignored.
    Writes replace the frontmatter atomically and keep the note body.
    """

    def __init__(self, root: str | Path, pattern: str = "*.md") -> None:
        self.root = Path(root)
        self.pattern = pattern
        self._paths: dict[str, Path] = {}

    def _load(self, path: Path) -> tuple[dict[str, Any], str]:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise RecordStoreError(str(path), f"unreadable: {e}") from e
        try:
            return split_frontmatter(text)
        except (yaml.YAMLError, ValueError) as e:
            raise RecordStoreError(str(path), f"invalid frontmatter: {e}") from e

    def scan(self) -> Iterator[tuple[str, dict[str, Any]]]:
        self._paths = {}
        for path in sorted(self.root.rglob(self.pattern)):
            try:
                data, _ = self._load(path)
            except RecordStoreError as e:
                logger.warning("store.note_skipped", path=str(path), reason=e.reason)
                continue
            identifier = data.get("cr_id")
            if not identifier:
                continue
            identifier = str(identifier).strip()
            if identifier in self._paths:
                logger.warning("store.duplicate_id", identifier=identifier, path=str(path))
                continue
            self._paths[identifier] = path
            yield identifier, data

    def path_for(self, identifier: str) -> Path | None:
        if identifier not in self._paths:
            for _ in self.scan():
                pass
        return self._paths.get(identifier)

    def read(self, identifier: str) -> dict[str, Any]:
        path = self.path_for(identifier)
        if path is None:
            raise RecordNotFoundError(identifier, "no note with this cr_id")
        data, _ = self._load(path)
        return data

    def write(self, identifier: str, record: Mapping[str, Any]) -> None:
        path = self.path_for(identifier)
        body = ""
        if path is None:
            path = self.root / f"{identifier}.md"
        else:
            _, body = self._load(path)
        try:
            atomic_write_text(path, render_frontmatter(record, body))
        except (OSError, yaml.YAMLError) as e:
            raise RecordStoreError(identifier, f"write failed: {e}") from e
        self._paths[identifier] = path

    def link_resolver(self) -> dict[str, str]:
        """Map note names and relative paths to ``cr_id`` for wikilinks."""
        if not self._paths:
            for _ in self.scan():
                pass
        names: dict[str, str] = {}
        for identifier, path in self._paths.items():
            relative = path.relative_to(self.root).with_suffix("")
            names.setdefault(path.stem, identifier)
            names[relative.as_posix()] = identifier
        return names
