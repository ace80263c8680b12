from __future__ import annotations

from dataclasses import dataclass


class KinshipGraphError(Exception):
    """Base class for engine errors."""


@dataclass
class RecordStoreError(KinshipGraphError):
    """Raised by a record store when a record cannot be read or written."""

    identifier: str
    reason: str

    def __str__(self) -> str:  # pragma: no cover - human readable
        return f"{self.identifier}: {self.reason}"


class RecordNotFoundError(RecordStoreError):
    """The store holds no record with this identifier."""


class RegistryError(KinshipGraphError):
    """A relationship type definition is invalid or inconsistent."""


class ProjectionError(KinshipGraphError):
    """A graph snapshot could not be built."""


class RecordParseError(KinshipGraphError):
    """A record cannot be parsed at all (for example it has no identifier)."""


class NodeNotFoundError(KinshipGraphError):
    """A graph query named a node the graph does not hold."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"no record with cr_id {node_id!r} in the graph")
        self.node_id = node_id
