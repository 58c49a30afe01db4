"""Cube schema types: cubes, measures, dimensions, segments, joins, pre-aggregations."""

from __future__ import annotations

import re
from enum import StrEnum

from pydantic import BaseModel, Field

DEFAULT_DATA_SOURCE = "default"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class MeasureType(StrEnum):
    COUNT = "count"
    COUNT_DISTINCT = "count_distinct"
    COUNT_DISTINCT_APPROX = "count_distinct_approx"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"
    NUMBER = "number"


# Measures that can be re-aggregated from a rollup.
ADDITIVE_MEASURE_TYPES = frozenset(
    {
        MeasureType.COUNT,
        MeasureType.COUNT_DISTINCT_APPROX,
        MeasureType.SUM,
        MeasureType.MIN,
        MeasureType.MAX,
    }
)


class DimensionType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    TIME = "time"
    BOOLEAN = "boolean"


class Granularity(StrEnum):
    SECOND = "second"
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class Relationship(StrEnum):
    MANY_TO_ONE = "many_to_one"
    ONE_TO_MANY = "one_to_many"
    ONE_TO_ONE = "one_to_one"


class PreAggregationType(StrEnum):
    ROLLUP = "rollup"
    ROLLUP_LAMBDA = "rollup_lambda"
    ORIGINAL_SQL = "original_sql"


class RefreshKey(BaseModel):
    """When cached results for a cube go stale: a fixed interval or a SQL probe."""

    every: str | None = None
    sql: str | None = None


class Measure(BaseModel):
    name: str
    type: MeasureType
    sql: str | None = None
    title: str | None = None
    public: bool = True


class Dimension(BaseModel):
    name: str
    type: DimensionType
    sql: str
    title: str | None = None
    primary_key: bool = Field(False, alias="primaryKey")
    public: bool = True

    model_config = {"populate_by_name": True}


class Segment(BaseModel):
    name: str
    sql: str
    public: bool = True


class Join(BaseModel):
    """Join from the owning cube to ``name``.

    ``sql`` references the owning cube as ``{CUBE}`` and the target as
    ``{<TargetCube>}``.
    """

    name: str
    sql: str
    relationship: Relationship = Relationship.MANY_TO_ONE


class PreAggregation(BaseModel):
    name: str
    type: PreAggregationType = PreAggregationType.ROLLUP
    measures: list[str] = []
    dimensions: list[str] = []
    segments: list[str] = []
    time_dimension: str | None = Field(None, alias="timeDimension")
    granularity: Granularity | None = None
    external: bool = False
    scheduled_refresh: bool = Field(False, alias="scheduledRefresh")
    refresh_key: RefreshKey | None = Field(None, alias="refreshKey")

    model_config = {"populate_by_name": True}


class Cube(BaseModel):
    """A named logical table exposing measures, dimensions and segments."""

    name: str
    sql_table: str | None = Field(None, alias="sqlTable")
    sql: str | None = None
    title: str | None = None
    public: bool = True
    data_source: str | None = Field(None, alias="dataSource")
    refresh_key: RefreshKey | None = Field(None, alias="refreshKey")
    joins: list[Join] = []
    measures: list[Measure] = []
    dimensions: list[Dimension] = []
    segments: list[Segment] = []
    pre_aggregations: list[PreAggregation] = Field([], alias="preAggregations")
    file_name: str | None = None

    model_config = {"populate_by_name": True}

    @property
    def alias(self) -> str:
        """SQL alias for the cube: snake_case of its name."""
        return snake_case(self.name)

    @property
    def effective_data_source(self) -> str:
        return self.data_source or DEFAULT_DATA_SOURCE

    def measure(self, name: str) -> Measure | None:
        return next((m for m in self.measures if m.name == name), None)

    def dimension(self, name: str) -> Dimension | None:
        return next((d for d in self.dimensions if d.name == name), None)

    def segment(self, name: str) -> Segment | None:
        return next((s for s in self.segments if s.name == name), None)

    @property
    def primary_keys(self) -> list[Dimension]:
        return [d for d in self.dimensions if d.primary_key]
