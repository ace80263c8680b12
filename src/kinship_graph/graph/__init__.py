"""Relationship graph: model, snapshots, projection from the record store."""
from .graph_store import GraphModel
from .models import (
    Edge,
    EdgeType,
    GraphNode,
    ProjectionMetadata,
    ProjectionStatus,
    UpsertRejection,
)
from .projection import GraphProjection, fingerprint

__all__ = [
    "Edge",
    "EdgeType",
    "GraphModel",
    "GraphNode",
    "GraphProjection",
    "ProjectionMetadata",
    "ProjectionStatus",
    "UpsertRejection",
    "fingerprint",
]
