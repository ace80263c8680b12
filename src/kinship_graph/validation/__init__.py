from .models import (
    Cycle,
    DanglingReference,
    DuplicateEdge,
    ExcessParents,
    ImplausibleTimeline,
    MissingReciprocal,
    ParseIssue,
    SelfRelationship,
    Severity,
    UnknownParentWithoutPlaceholder,
    ValidationFinding,
    ValidationReport,
)
from .validator import RelationshipValidator

__all__ = [
    "Cycle",
    "DanglingReference",
    "DuplicateEdge",
    "ExcessParents",
    "ImplausibleTimeline",
    "MissingReciprocal",
    "ParseIssue",
    "RelationshipValidator",
    "SelfRelationship",
    "Severity",
    "UnknownParentWithoutPlaceholder",
    "ValidationFinding",
    "ValidationReport",
]
