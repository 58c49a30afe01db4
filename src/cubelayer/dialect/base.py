"""Base query builder: turns a structured query into SQL for one database type.

Dialect subclasses override the hooks near the top of ``BaseQuery``
(quoting, placeholders, time truncation, time zones, unix time). SQL of
schema members is evaluated through the compiled ``CubeEvaluator`` and must
therefore run inside ``artifacts.compiler.with_query(self, ...)``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from cubelayer.compiler.evaluator import UnknownMemberError
from cubelayer.dialect.errors import QueryValidationError
from cubelayer.dialect.join_graph import JoinGraph
from cubelayer.dialect.pre_aggregations import PreAggregations
from cubelayer.models.query import FilterOperator, Query, QueryFilter, TimeDimension
from cubelayer.models.schema import (
    DEFAULT_DATA_SOURCE,
    Cube,
    DimensionType,
    MeasureType,
    PreAggregationType,
    RefreshKey,
    snake_case,
)

if TYPE_CHECKING:
    from cubelayer.compiler.schema_compiler import CompiledArtifactSet
    from cubelayer.dialect.factory import QueryFactory

DEFAULT_REFRESH_INTERVAL = "10 second"

_INTERVAL_RE = re.compile(r"^\s*(\d+)\s+(second|minute|hour|day|week)s?\s*$")
_INTERVAL_SECONDS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400, "week": 604800}


def parse_interval(value: str) -> int:
    """``"1 hour"`` → ``3600``."""
    match = _INTERVAL_RE.match(value)
    if match is None:
        raise QueryValidationError(f"Invalid refresh interval '{value}'")
    return int(match.group(1)) * _INTERVAL_SECONDS[match.group(2)]


def _date_from(value: str) -> str:
    return f"{value}T00:00:00.000" if len(value) == 10 else value


def _date_to(value: str) -> str:
    return f"{value}T23:59:59.999" if len(value) == 10 else value


@dataclass
class QueryOptions:
    """Per-orchestrator settings handed to every generator."""

    external_dialect_class: type[BaseQuery] | None = None
    external_db_type: str | None = None
    pre_aggregations_schema: str = "prod_pre_aggregations"
    allow_ungrouped_without_primary_key: bool = False
    convert_tz_for_raw_time_dimension: bool = False
    query_factory: QueryFactory | None = None


class BaseTimeDimension:
    """A time dimension of the query, with its output alias."""

    def __init__(self, query: BaseQuery, time_dimension: TimeDimension) -> None:
        self.dimension = time_dimension.dimension
        self.granularity: str | None = time_dimension.granularity.value if time_dimension.granularity else None
        self.date_range = time_dimension.date_range
        base = query.member_alias(time_dimension.dimension)
        self._alias = f"{base}_{self.granularity}" if self.granularity else base

    def unescaped_alias_name(self) -> str:
        return self._alias


class BaseQuery:
    """ANSI-flavoured query builder. Subclasses register per database type."""

    db_type: ClassVar[str] = "ansi"

    # -- dialect hooks -------------------------------------------------------

    @classmethod
    def quote_identifier(cls, name: str) -> str:
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def placeholder(self, index: int) -> str:
        """Placeholder for the ``index``-th (1-based) parameter."""
        return "?"

    def time_grouped_column(self, granularity: str, sql: str) -> str:
        return f"DATE_TRUNC('{granularity}', {sql})"

    def convert_tz(self, sql: str) -> str:
        return f"({sql} AT TIME ZONE '{self.timezone}')"

    def unix_timestamp_sql(self) -> str:
        return "EXTRACT(EPOCH FROM CURRENT_TIMESTAMP)"

    def count_distinct_approx(self, sql: str) -> str:
        return f"COUNT(DISTINCT {sql})"

    def like_sql(self, column: str, param: str, negated: bool = False) -> str:
        op = "NOT LIKE" if negated else "LIKE"
        return f"LOWER({column}) {op} '%' || LOWER({param}) || '%'"

    # -- construction --------------------------------------------------------

    def __init__(
        self,
        artifacts: CompiledArtifactSet,
        query: Query,
        options: QueryOptions | None = None,
    ) -> None:
        self.artifacts = artifacts
        self.evaluator = artifacts.cube_evaluator
        self.options = options or QueryOptions()
        self.query_factory = self.options.query_factory
        self.query = query
        self.timezone = query.timezone
        self.ungrouped = query.ungrouped
        self.measures = list(query.measures)
        self.dimensions = list(query.dimensions)
        self.segments = list(query.segments)
        self.filters = list(query.filters)
        self._params: list[Any] = []

        self._check_members()
        self.time_dimensions = [BaseTimeDimension(self, td) for td in query.time_dimensions]
        self.alias_name_to_member: dict[str, str] = {
            **{self.member_alias(d): d for d in self.dimensions},
            **{td.unescaped_alias_name(): td.dimension for td in self.time_dimensions},
            **{self.member_alias(m): m for m in self.measures},
        }
        self.pre_aggregations = PreAggregations(self)
        if self.ungrouped and not self.options.allow_ungrouped_without_primary_key:
            self._check_primary_keys()

    def _kind(self, path: str) -> str:
        try:
            return self.evaluator.resolve_member(path)[2]
        except UnknownMemberError as exc:
            raise QueryValidationError(str(exc)) from None

    def _check_members(self) -> None:
        expected = [
            *((m, "measure") for m in self.measures),
            *((d, "dimension") for d in self.dimensions),
            *((td.dimension, "dimension") for td in self.query.time_dimensions),
            *((s, "segment") for s in self.segments),
        ]
        for path, kind in expected:
            actual = self._kind(path)
            if actual != kind:
                raise QueryValidationError(f"'{path}' is a {actual}, not a {kind}")
        for td in self.query.time_dimensions:
            dimension = self.evaluator.resolve_member(td.dimension)[1]
            if dimension.type != DimensionType.TIME:
                raise QueryValidationError(f"'{td.dimension}' is not a time dimension")
        for f in self.filters:
            if self._kind(f.member) == "segment":
                raise QueryValidationError(f"Segment '{f.member}' can't be used in filters")

    def _check_primary_keys(self) -> None:
        for cube_name in self.cube_names:
            cube = self.evaluator.cube_from_path(cube_name)
            keys = {f"{cube.name}.{d.name}" for d in cube.primary_keys}
            if not keys or not keys <= set(self.dimensions):
                raise QueryValidationError(
                    f"Ungrouped query requires primary keys of '{cube.name}' as dimensions "
                    f"or allow_ungrouped_without_primary_key"
                )

    # -- identity ------------------------------------------------------------

    @property
    def cube_names(self) -> list[str]:
        return self.query.cube_names()

    @property
    def data_source(self) -> str:
        """Data source shared by every cube in the query."""
        sources = list(
            dict.fromkeys(
                self.evaluator.cube_from_path(c).effective_data_source for c in self.cube_names
            )
        )
        if len(sources) > 1:
            raise QueryValidationError(
                f"Query references cubes from different data sources: {', '.join(sources)}"
            )
        if sources:
            return sources[0]
        return self.query.data_source or DEFAULT_DATA_SOURCE

    def cube_alias(self, cube_name: str) -> str:
        return self.quote_identifier(self.evaluator.cube_from_path(cube_name).alias)

    def member_alias(self, path: str) -> str:
        cube = self.evaluator.cube_from_path(path)
        return f"{cube.alias}__{snake_case(path.partition('.')[2])}"

    @property
    def order(self) -> list[dict[str, Any]]:
        """Declared ordering, or the default one when the query declares none."""
        if self.query.order:
            return [{"id": o.id, "desc": o.desc} for o in self.query.order]
        granular = next((td for td in self.time_dimensions if td.granularity), None)
        if granular is not None:
            return [{"id": granular.dimension, "desc": False}]
        if self.measures:
            return [{"id": self.measures[0], "desc": True}]
        if self.dimensions:
            return [{"id": self.dimensions[0], "desc": False}]
        return []

    # -- parameters ----------------------------------------------------------

    def param(self, value: Any) -> str:
        self._params.append(value)
        return self.placeholder(len(self._params))

    # -- member SQL ----------------------------------------------------------

    def measure_sql(self, path: str, _depth: int = 0) -> str:
        cube, measure, _ = self.evaluator.resolve_member(path)
        sql = "*" if measure.sql is None else self.evaluator.evaluate_sql(cube.name, measure.sql, _depth)
        if self.ungrouped:
            return "1" if measure.sql is None else sql
        match measure.type:
            case MeasureType.COUNT:
                return f"COUNT({sql})"
            case MeasureType.COUNT_DISTINCT:
                return f"COUNT(DISTINCT {sql})"
            case MeasureType.COUNT_DISTINCT_APPROX:
                return self.count_distinct_approx(sql)
            case MeasureType.NUMBER:
                return sql
            case _:
                return f"{measure.type.value.upper()}({sql})"

    def dimension_sql(self, path: str) -> str:
        return self.evaluator.member_sql(path)

    def time_dimension_sql(self, td: BaseTimeDimension) -> str:
        sql = self.dimension_sql(td.dimension)
        if td.granularity:
            return self.time_grouped_column(td.granularity, self._in_timezone(sql))
        if self.options.convert_tz_for_raw_time_dimension:
            return self._in_timezone(sql)
        return sql

    def _in_timezone(self, sql: str) -> str:
        return sql if self.timezone == "UTC" else self.convert_tz(sql)

    # -- SQL -----------------------------------------------------------------

    def build_sql_and_params(self, export_annotated_sql: bool = False) -> tuple[str, list[Any]]:
        self._params = []
        sql = self._build_sql()
        if export_annotated_sql:
            header = [f"-- {alias}: {member}" for alias, member in self.alias_name_to_member.items()]
            sql = "\n".join([*header, sql])
        return sql, list(self._params)

    def _root_cube(self) -> str:
        for path in (*self.measures, *self.dimensions, *(td.dimension for td in self.time_dimensions)):
            return self.evaluator.cube_from_path(path).name
        if not self.cube_names:
            raise QueryValidationError("Query has no members")
        return self.cube_names[0]

    def _build_sql(self) -> str:
        root = self._root_cube()
        columns = [
            *(f"{self.dimension_sql(d)} {self._as(d)}" for d in self.dimensions),
            *(
                f"{self.time_dimension_sql(td)} AS {self.quote_identifier(td.unescaped_alias_name())}"
                for td in self.time_dimensions
            ),
            *(f"{self.measure_sql(m)} {self._as(m)}" for m in self.measures),
        ]
        parts = [f"SELECT {', '.join(columns) or '*'}"]
        parts.append(f"FROM {self.evaluator.cube_table_sql(root)} AS {self.cube_alias(root)}")
        for step in JoinGraph(self.evaluator).join_steps(root, self.cube_names):
            on = self.evaluator.evaluate_sql(step.owner, step.sql)
            table = self.evaluator.cube_table_sql(step.to_cube)
            parts.append(f"LEFT JOIN {table} AS {self.cube_alias(step.to_cube)} ON {on}")

        where, having = self._conditions()
        if where:
            parts.append(f"WHERE {' AND '.join(where)}")
        group_count = len(self.dimensions) + len(self.time_dimensions)
        if group_count and not self.ungrouped:
            parts.append(f"GROUP BY {', '.join(str(i) for i in range(1, group_count + 1))}")
        if having:
            parts.append(f"HAVING {' AND '.join(having)}")
        order_by = self._order_by()
        if order_by:
            parts.append(f"ORDER BY {', '.join(order_by)}")
        if self.query.limit is not None:
            parts.append(f"LIMIT {int(self.query.limit)}")
        if self.query.offset is not None:
            parts.append(f"OFFSET {int(self.query.offset)}")
        return "\n".join(parts)

    def _as(self, path: str) -> str:
        return f"AS {self.quote_identifier(self.member_alias(path))}"

    def _conditions(self) -> tuple[list[str], list[str]]:
        where: list[str] = []
        having: list[str] = []
        for td in self.time_dimensions:
            if td.date_range:
                if len(td.date_range) != 2:
                    raise QueryValidationError(f"Date range of '{td.dimension}' needs two values")
                column = self._in_timezone(self.dimension_sql(td.dimension))
                where.append(self._date_range_sql(column, td.date_range, negated=False))
        for segment in self.segments:
            where.append(f"({self.evaluator.member_sql(segment)})")
        # Parameters are numbered in text order: WHERE before HAVING.
        measure_filters = [f for f in self.filters if self._kind(f.member) == "measure"]
        for f in self.filters:
            if f not in measure_filters:
                where.append(self.filter_sql(self.dimension_sql(f.member), f))
        for f in measure_filters:
            target = where if self.ungrouped else having
            target.append(self.filter_sql(self.measure_sql(f.member), f))
        return where, having

    def _date_range_sql(self, column: str, values: list[str], negated: bool) -> str:
        start, end = self.param(_date_from(values[0])), self.param(_date_to(values[1]))
        if negated:
            return f"({column} < {start} OR {column} > {end})"
        return f"({column} >= {start} AND {column} <= {end})"

    def filter_sql(self, column: str, f: QueryFilter) -> str:
        values = f.values
        needs_values = f.operator not in (FilterOperator.SET, FilterOperator.NOT_SET)
        if needs_values and not values:
            raise QueryValidationError(f"Filter on '{f.member}' with '{f.operator}' needs values")
        match f.operator:
            case FilterOperator.EQUALS:
                if len(values) == 1:
                    return f"({column} = {self.param(values[0])})"
                return f"({column} IN ({', '.join(self.param(v) for v in values)}))"
            case FilterOperator.NOT_EQUALS:
                if len(values) == 1:
                    return f"({column} <> {self.param(values[0])} OR {column} IS NULL)"
                placeholders = ", ".join(self.param(v) for v in values)
                return f"({column} NOT IN ({placeholders}) OR {column} IS NULL)"
            case FilterOperator.CONTAINS:
                return "(" + " OR ".join(self.like_sql(column, self.param(v)) for v in values) + ")"
            case FilterOperator.NOT_CONTAINS:
                likes = " AND ".join(self.like_sql(column, self.param(v), negated=True) for v in values)
                return f"({likes} OR {column} IS NULL)"
            case FilterOperator.GT:
                return f"({column} > {self.param(values[0])})"
            case FilterOperator.GTE:
                return f"({column} >= {self.param(values[0])})"
            case FilterOperator.LT:
                return f"({column} < {self.param(values[0])})"
            case FilterOperator.LTE:
                return f"({column} <= {self.param(values[0])})"
            case FilterOperator.SET:
                return f"({column} IS NOT NULL)"
            case FilterOperator.NOT_SET:
                return f"({column} IS NULL)"
            case FilterOperator.IN_DATE_RANGE | FilterOperator.NOT_IN_DATE_RANGE:
                if len(values) != 2:
                    raise QueryValidationError(f"Filter on '{f.member}' needs a two-value date range")
                negated = f.operator == FilterOperator.NOT_IN_DATE_RANGE
                return self._date_range_sql(column, values, negated)
            case FilterOperator.BEFORE_DATE:
                return f"({column} < {self.param(_date_from(values[0]))})"
            case FilterOperator.AFTER_DATE:
                return f"({column} > {self.param(_date_to(values[0]))})"
        raise QueryValidationError(f"Unsupported filter operator '{f.operator}'")

    def _order_by(self) -> list[str]:
        aliases = {member: alias for alias, member in self.alias_name_to_member.items()}
        items: list[str] = []
        for item in self.order:
            alias = aliases.get(item["id"])
            if alias is None:
                raise QueryValidationError(f"Order member '{item['id']}' is not part of the query")
            items.append(f"{self.quote_identifier(alias)} {'DESC' if item['desc'] else 'ASC'}")
        return items

    # -- caching & pre-aggregations -----------------------------------------

    def refresh_key_query(self, cube: Cube, refresh_key: RefreshKey | None) -> tuple[str, list[Any]]:
        refresh_key = refresh_key or cube.refresh_key
        if refresh_key is not None and refresh_key.sql:
            return refresh_key.sql, []
        every = refresh_key.every if refresh_key is not None and refresh_key.every else DEFAULT_REFRESH_INTERVAL
        return f"SELECT FLOOR({self.unix_timestamp_sql()} / {parse_interval(every)})", []

    def cache_key_queries(self) -> list[tuple[str, list[Any]]]:
        queries: list[tuple[str, list[Any]]] = []
        for cube_name in self.cube_names:
            key_query = self.refresh_key_query(self.evaluator.cube_from_path(cube_name), None)
            if key_query not in queries:
                queries.append(key_query)
        return queries

    def external_pre_aggregation_query(self) -> bool:
        return self.pre_aggregations.is_external()

    def build_lambda_query(self) -> dict[str, tuple[str, list[Any]]]:
        """Live part of a ``rollup_lambda`` match: the same query against the source."""
        match = self.pre_aggregations.find_pre_aggregation()
        if match is None or match[1].type != PreAggregationType.ROLLUP_LAMBDA:
            return {}
        cube, pre_agg = match
        return {f"{cube.name}.{pre_agg.name}": self.build_sql_and_params()}
