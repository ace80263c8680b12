from .record_adapter import (
    LinkError,
    RecordAdapter,
    is_relationship_field,
    merge_fields,
    parse_link,
    relationship_fields,
)

__all__ = [
    "LinkError",
    "RecordAdapter",
    "is_relationship_field",
    "merge_fields",
    "parse_link",
    "relationship_fields",
]
