"""Structured analytical query objects."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from cubelayer.models.schema import Granularity

# Fields that never influence generated SQL and are left out of cache keys.
CACHE_KEY_EXCLUDED_FIELDS = frozenset({"request_id"})


class FilterOperator(StrEnum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    SET = "set"
    NOT_SET = "notSet"
    IN_DATE_RANGE = "inDateRange"
    NOT_IN_DATE_RANGE = "notInDateRange"
    BEFORE_DATE = "beforeDate"
    AFTER_DATE = "afterDate"


class QueryFilter(BaseModel):
    """A ``member``/``operator``/``values`` triple."""

    member: str
    operator: FilterOperator
    values: list[str] = []


class TimeDimension(BaseModel):
    dimension: str
    granularity: Granularity | None = None
    date_range: list[str] | None = Field(None, alias="dateRange")

    model_config = {"populate_by_name": True}


class QueryOrder(BaseModel):
    id: str
    desc: bool = False


class Query(BaseModel):
    """A structured analytical query against the compiled schema."""

    measures: list[str] = []
    dimensions: list[str] = []
    segments: list[str] = []
    filters: list[QueryFilter] = []
    time_dimensions: list[TimeDimension] = Field([], alias="timeDimensions")
    order: list[QueryOrder] = []
    limit: int | None = None
    offset: int | None = None
    timezone: str = "UTC"
    ungrouped: bool = False
    data_source: str | None = Field(None, alias="dataSource")
    request_id: str | None = Field(None, alias="requestId")

    model_config = {"populate_by_name": True}

    @field_validator("order", mode="before")
    @classmethod
    def _order_from_mapping(cls, value: Any) -> Any:
        """Accept ``{"Orders.count": "desc"}`` as well as a list of orders."""
        if isinstance(value, dict):
            return [{"id": k, "desc": str(v).lower() == "desc"} for k, v in value.items()]
        return value

    def member_paths(self) -> list[str]:
        """All member paths referenced anywhere in the query, in first-seen order."""
        paths = [
            *self.measures,
            *self.dimensions,
            *(td.dimension for td in self.time_dimensions),
            *self.segments,
            *(f.member for f in self.filters),
        ]
        return list(dict.fromkeys(paths))

    def cube_names(self) -> list[str]:
        return list(dict.fromkeys(path.split(".", 1)[0] for path in self.member_paths()))


class SqlOptions(BaseModel):
    """Options of a single SQL generation request."""

    include_debug_info: bool = Field(False, alias="includeDebugInfo")
    export_annotated_sql: bool = Field(False, alias="exportAnnotatedSql")

    model_config = {"populate_by_name": True}
