from __future__ import annotations

from typing import Any

import pytest

from kinship_graph.adapter import RecordAdapter
from kinship_graph.config import EngineConfig
from kinship_graph.graph import GraphModel
from kinship_graph.models import RelationshipTypeRegistry


def person(cr_id: str, **fields: Any) -> dict[str, Any]:
    record: dict[str, Any] = {"cr_id": cr_id, "name": fields.pop("name", cr_id.title())}
    record.update(fields)
    return record


def build_graph(records: list[dict[str, Any]], adapter: RecordAdapter | None = None) -> GraphModel:
    adapter = adapter or RecordAdapter()
    graph = GraphModel(adapter.registry)
    for record in records:
        graph.ingest(adapter.parse(record))
    return graph


@pytest.fixture
def registry() -> RelationshipTypeRegistry:
    return RelationshipTypeRegistry.with_defaults()


@pytest.fixture
def adapter(registry) -> RecordAdapter:
    return RecordAdapter(registry)


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(
        parent_roles=("biological", "adoptive", "step", "foster", "guardian"),
        collapse_roles=True,
        use_sibling_edges=True,
        max_depth=30,
        sync_max_concurrency=4,
        projection_batch_size=2,
        min_parent_age=12,
        max_lifespan=120,
        log_level="INFO",
    )


@pytest.fixture
def cousins() -> list[dict[str, Any]]:
    """Three generations under one couple.

    gp1 + gp2 -> p1, p2; p1 -> a; p2 -> b; b -> c
    """
    return [
        person("gp1", sex="M"),
        person("gp2", sex="F"),
        person("p1", sex="M", father_id="gp1", mother_id="gp2"),
        person("p2", sex="F", father_id="gp1", mother_id="gp2"),
        person("a", sex="F", father_id="p1"),
        person("b", sex="M", mother_id="p2"),
        person("c", sex="F", father_id="b"),
    ]
