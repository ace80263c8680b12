"""Record stores and the bidirectional relationship synchronizer."""
from .locks import KeyedLock
from .models import ChangeEvent, RetainedFact, SyncConflict, SyncFailure, SyncReport, SyncWrite
from .store import (
    FrontmatterRecordStore,
    InMemoryRecordStore,
    RecordStore,
    render_frontmatter,
    split_frontmatter,
)
from .synchronizer import BidirectionalSynchronizer, relationship_state

__all__ = [
    "BidirectionalSynchronizer",
    "ChangeEvent",
    "FrontmatterRecordStore",
    "InMemoryRecordStore",
    "KeyedLock",
    "RecordStore",
    "RetainedFact",
    "SyncConflict",
    "SyncFailure",
    "SyncReport",
    "SyncWrite",
    "relationship_state",
    "render_frontmatter",
    "split_frontmatter",
]
