"""Kinship Graph - family relationship graph engine.

Parses loosely-typed person records into typed relationship facts, builds
an in-memory relationship graph, keeps reciprocal relationships in sync
across records, validates the graph structurally, and names the
relationship between any two people.
"""

__version__ = "0.1.0"

from .adapter import RecordAdapter
from .config import CONFIG, EngineConfig
from .exceptions import (
    KinshipGraphError,
    NodeNotFoundError,
    ProjectionError,
    RecordNotFoundError,
    RecordParseError,
    RecordStoreError,
    RegistryError,
)
from .graph import GraphModel, GraphProjection
from .kinship import LineageTracker, NotRelated, ReferenceNumbering, RelationshipCalculator, RelationshipResult
from .models import RelationshipFacts, RelationshipTypeRegistry
from .sync import BidirectionalSynchronizer, FrontmatterRecordStore, InMemoryRecordStore, SyncReport
from .validation import RelationshipValidator, ValidationReport

__all__ = [
    "__version__",
    "BidirectionalSynchronizer",
    "CONFIG",
    "EngineConfig",
    "FrontmatterRecordStore",
    "GraphModel",
    "GraphProjection",
    "InMemoryRecordStore",
    "KinshipGraphError",
    "LineageTracker",
    "NodeNotFoundError",
    "NotRelated",
    "ProjectionError",
    "RecordAdapter",
    "RecordNotFoundError",
    "RecordParseError",
    "ReferenceNumbering",
    "RecordStoreError",
    "RegistryError",
    "RelationshipCalculator",
    "RelationshipFacts",
    "RelationshipResult",
    "RelationshipTypeRegistry",
    "RelationshipValidator",
    "SyncReport",
    "ValidationReport",
]
