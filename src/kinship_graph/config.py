from __future__ import annotations

import os
from dataclasses import dataclass, field


def _b(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _i(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _csv(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class EngineConfig:
    # Kinship search
    parent_roles: tuple[str, ...] = field(
        default_factory=lambda: _csv(
            "KINSHIP_PARENT_ROLES", ("biological", "adoptive", "step", "foster", "guardian")
        )
    )
    collapse_roles: bool = field(default_factory=lambda: _b("KINSHIP_COLLAPSE_ROLES", True))
    use_sibling_edges: bool = field(default_factory=lambda: _b("KINSHIP_USE_SIBLING_EDGES", True))
    max_depth: int = field(default_factory=lambda: _i("KINSHIP_MAX_DEPTH", 30))

    # Synchronization
    sync_max_concurrency: int = field(default_factory=lambda: _i("SYNC_MAX_CONCURRENCY", 8))

    # Projection rebuilds
    projection_batch_size: int = field(default_factory=lambda: _i("PROJECTION_BATCH_SIZE", 200))

    # Timeline limits
    min_parent_age: int = field(default_factory=lambda: _i("MIN_PARENT_AGE", 12))
    max_lifespan: int = field(default_factory=lambda: _i("MAX_LIFESPAN", 120))

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())


CONFIG = EngineConfig()
