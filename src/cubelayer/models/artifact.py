"""Results handed back to callers: SQL artifacts, data sources, meta config."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class DataSourceInfo:
    """A reachable data source and its database type."""

    data_source: str
    db_type: str


@dataclass(frozen=True)
class TransformedQuery:
    """Shape of a query as seen by the rollup matcher."""

    measures: tuple[str, ...]
    dimensions: tuple[str, ...]
    segments: tuple[str, ...]
    time_dimension: str | None
    granularity: str | None
    leaf_measure_additive: bool
    filter_members: tuple[str, ...] = ()


@dataclass(frozen=True)
class SqlArtifact:
    """Everything computed for one (query, options) pair."""

    external: bool
    sql: tuple[str, list[Any]]
    lambda_queries: dict[str, tuple[str, list[Any]]]
    time_dimension_alias: str | None
    time_dimension_field: str | None
    order: list[dict[str, Any]]
    cache_key_queries: list[tuple[str, list[Any]]]
    pre_aggregations: list[dict[str, Any]]
    data_source: str
    alias_name_to_member: dict[str, str]
    rollup_match_results: list[dict[str, Any]] | None
    can_use_transformed_query: TransformedQuery


@dataclass
class MemberMeta:
    name: str
    title: str
    type: str
    short_title: str


@dataclass
class CubeMeta:
    """Public description of a cube."""

    name: str
    title: str
    data_source: str
    measures: list[MemberMeta] = field(default_factory=list)
    dimensions: list[MemberMeta] = field(default_factory=list)
    segments: list[MemberMeta] = field(default_factory=list)


@dataclass
class PreAggregationInfo:
    """A pre-aggregation definition addressed by ``Cube.name``."""

    id: str
    cube: str
    name: str
    type: str
    external: bool
    scheduled_refresh: bool
    data_source: str
