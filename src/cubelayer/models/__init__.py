"""Pydantic domain models for cubelayer."""

from cubelayer.models.artifact import CubeMeta, DataSourceInfo, SqlArtifact
from cubelayer.models.errors import SchemaError, SourceSpan
from cubelayer.models.query import (
    FilterOperator,
    Query,
    QueryFilter,
    QueryOrder,
    SqlOptions,
    TimeDimension,
)
from cubelayer.models.schema import (
    Cube,
    Dimension,
    DimensionType,
    Granularity,
    Join,
    Measure,
    MeasureType,
    PreAggregation,
    Segment,
)

__all__ = [
    "Cube",
    "CubeMeta",
    "DataSourceInfo",
    "Dimension",
    "DimensionType",
    "FilterOperator",
    "Granularity",
    "Join",
    "Measure",
    "MeasureType",
    "PreAggregation",
    "Query",
    "QueryFilter",
    "QueryOrder",
    "SchemaError",
    "Segment",
    "SourceSpan",
    "SqlArtifact",
    "SqlOptions",
    "TimeDimension",
]
