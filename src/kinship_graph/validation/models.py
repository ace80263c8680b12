"""Validation findings.

Findings are data, never exceptions. Each one carries the node id and the
record field a caller needs to jump to the offending record.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, computed_field


class Severity(str, Enum):
    """Severity levels for validation findings."""

    ERROR = "error"  # Structurally impossible
    WARNING = "warning"  # Probably wrong, needs a look
    INFO = "info"  # Housekeeping


class _Finding(BaseModel):
    severity: Severity = Severity.WARNING
    node_id: str
    field: str | None = None
    message: str = ""


class Cycle(_Finding):
    """An ancestry loop within one role-class (or the organization hierarchy)."""

    kind: Literal["cycle"] = "cycle"
    severity: Severity = Severity.ERROR
    path: list[str]
    role: str  # parent role-class, "mixed", or "organization"


class DanglingReference(_Finding):
    kind: Literal["dangling_reference"] = "dangling_reference"
    from_id: str
    to_id: str
    edge_type: str


class DuplicateEdge(_Finding):
    kind: Literal["duplicate_edge"] = "duplicate_edge"
    severity: Severity = Severity.INFO
    from_id: str
    to_id: str
    edge_type: str
    count: int = 2


class MissingReciprocal(_Finding):
    """``from_id`` declares the relationship; ``to_id`` lacks the inverse."""

    kind: Literal["missing_reciprocal"] = "missing_reciprocal"
    from_id: str
    to_id: str
    edge_type: str


class UnknownParentWithoutPlaceholder(_Finding):
    """One biological parent is known and the other slot is silently empty."""

    kind: Literal["unknown_parent_without_placeholder"] = "unknown_parent_without_placeholder"
    severity: Severity = Severity.INFO
    known_parent: str


class SelfRelationship(_Finding):
    kind: Literal["self_relationship"] = "self_relationship"
    severity: Severity = Severity.ERROR
    edge_type: str


class ExcessParents(_Finding):
    kind: Literal["excess_parents"] = "excess_parents"
    severity: Severity = Severity.ERROR
    role: str
    parents: list[str]


class ImplausibleTimeline(_Finding):
    kind: Literal["implausible_timeline"] = "implausible_timeline"
    other_id: str | None = None


class ParseIssue(_Finding):
    kind: Literal["parse_issue"] = "parse_issue"
    value: str | None = None


ValidationFinding = Annotated[
    Union[
        Cycle,
        DanglingReference,
        DuplicateEdge,
        MissingReciprocal,
        UnknownParentWithoutPlaceholder,
        SelfRelationship,
        ExcessParents,
        ImplausibleTimeline,
        ParseIssue,
    ],
    Field(discriminator="kind"),
]


class ValidationReport(BaseModel):
    """Result of a validation pass."""

    findings: list[ValidationFinding] = Field(default_factory=list)
    complete: bool = True  # False when the pass was cancelled
    nodes_checked: int = 0
    graph_version: int = 0

    @computed_field
    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def errors(self) -> list[ValidationFinding]:
        return [f for f in self.findings if f.severity == Severity.ERROR]

    def of_kind(self, kind: str) -> list[ValidationFinding]:
        return [f for f in self.findings if f.kind == kind]

    def by_node(self) -> dict[str, list[ValidationFinding]]:
        grouped: dict[str, list[ValidationFinding]] = {}
        for finding in self.findings:
            grouped.setdefault(finding.node_id, []).append(finding)
        return grouped

    def counts(self) -> dict[str, int]:
        totals: dict[str, int] = {}
        for finding in self.findings:
            totals[finding.kind] = totals.get(finding.kind, 0) + 1
        return totals
