"""Result types for bidirectional synchronization.

None of these are raised: conflicts and failures are data on a SyncReport,
so one bad target never stops the rest of an event from being processed.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ChangeEvent:
    """A record changed from ``previous`` to ``current`` (None = absent)."""
    identifier: str
    previous: Mapping[str, Any] | None
    current: Mapping[str, Any] | None


@dataclass(frozen=True)
class SyncWrite:
    """One committed write of reciprocal facts to a target record."""
    source: str
    target: str
    fields: dict[str, Any]
    added: tuple[tuple[str, ...], ...] = ()
    updated: tuple[tuple[str, ...], ...] = ()
    removed: tuple[tuple[str, ...], ...] = ()


@dataclass(frozen=True)
class SyncConflict:
    """Both endpoints edited the same relationship sub-field.

    The incoming value (from the record that triggered the sync) wins;
    ``target_value`` is what it replaced.
    """
    source: str
    target: str
    field: str
    key: tuple[str, ...]
    target_value: Any
    incoming_value: Any


@dataclass(frozen=True)
class SyncFailure:
    """A target could not be updated; nothing was written to it."""
    source: str
    target: str
    field: str
    reason: str


@dataclass(frozen=True)
class RetainedFact:
    """An inverse fact kept because the target record declared it itself."""
    source: str
    target: str
    key: tuple[str, ...]


@dataclass
class SyncReport:
    """Everything one change event caused."""
    identifier: str
    echo: bool = False  # the event was our own write coming back
    superseded: bool = False  # the event is older than a write we made since
    writes: list[SyncWrite] = field(default_factory=list)
    conflicts: list[SyncConflict] = field(default_factory=list)
    failures: list[SyncFailure] = field(default_factory=list)
    retained: list[RetainedFact] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def targets_written(self) -> list[str]:
        return [w.target for w in self.writes]

    def summary(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "echo": self.echo,
            "superseded": self.superseded,
            "writes": len(self.writes),
            "conflicts": len(self.conflicts),
            "failures": len(self.failures),
            "retained": len(self.retained),
        }
