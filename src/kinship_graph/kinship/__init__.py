from .calculator import RelationshipCalculator, blood_label, ordinal
from .lineage import (
    Lineage,
    LineageMember,
    LineageTracker,
    LineageType,
    all_lineages,
    assign_lineage,
    common_lineages,
    lineages_of,
    members_of,
    remove_lineage,
    suggest_name,
)
from .models import NotRelated, PathStep, RelationshipResult, StepType, gendered
from .numbering import (
    NumberAssignment,
    NumberingResult,
    NumberingSystem,
    ReferenceNumbering,
    children_by_birth,
    clear_numbers,
    henry_digit,
    write_numbers,
)

__all__ = [
    "Lineage",
    "LineageMember",
    "LineageTracker",
    "LineageType",
    "NotRelated",
    "NumberAssignment",
    "NumberingResult",
    "NumberingSystem",
    "PathStep",
    "ReferenceNumbering",
    "RelationshipCalculator",
    "RelationshipResult",
    "StepType",
    "all_lineages",
    "assign_lineage",
    "blood_label",
    "children_by_birth",
    "clear_numbers",
    "common_lineages",
    "gendered",
    "henry_digit",
    "lineages_of",
    "members_of",
    "ordinal",
    "remove_lineage",
    "suggest_name",
    "write_numbers",
]
