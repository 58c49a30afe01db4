"""Rollup matching: can a pre-aggregation answer a query?"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from cubelayer.models.artifact import TransformedQuery
from cubelayer.models.schema import (
    ADDITIVE_MEASURE_TYPES,
    Cube,
    Granularity,
    PreAggregation,
    PreAggregationType,
)
from cubelayer.parser.validator import member_short_name

if TYPE_CHECKING:
    from cubelayer.dialect.base import BaseQuery

_GRANULARITY_ORDER = [
    Granularity.SECOND,
    Granularity.MINUTE,
    Granularity.HOUR,
    Granularity.DAY,
    Granularity.WEEK,
    Granularity.MONTH,
    Granularity.QUARTER,
    Granularity.YEAR,
]


def granularity_derivable(rollup: str | None, query: str | None) -> bool:
    """Whether data stored at ``rollup`` granularity can be re-grouped to ``query``."""
    if rollup is None or query is None:
        return rollup == query
    if rollup == query:
        return True
    # Weeks do not nest into months, quarters or years.
    if rollup == Granularity.WEEK:
        return False
    if query == Granularity.WEEK:
        return _GRANULARITY_ORDER.index(Granularity(rollup)) <= _GRANULARITY_ORDER.index(Granularity.DAY)
    return _GRANULARITY_ORDER.index(Granularity(rollup)) < _GRANULARITY_ORDER.index(Granularity(query))


@dataclass(frozen=True)
class PreAggregationReferences:
    """Members of a rollup, as full ``Cube.member`` paths."""

    measures: tuple[str, ...]
    dimensions: tuple[str, ...]
    segments: tuple[str, ...]
    time_dimension: str | None
    granularity: str | None

    @classmethod
    def of(cls, cube: Cube, pre_agg: PreAggregation) -> PreAggregationReferences:
        def _full(refs: list[str]) -> tuple[str, ...]:
            return tuple(f"{cube.name}.{member_short_name(cube, r)}" for r in refs)

        time_dimension = None
        if pre_agg.time_dimension is not None:
            time_dimension = f"{cube.name}.{member_short_name(cube, pre_agg.time_dimension)}"
        return cls(
            measures=_full(pre_agg.measures),
            dimensions=_full(pre_agg.dimensions),
            segments=_full(pre_agg.segments),
            time_dimension=time_dimension,
            granularity=pre_agg.granularity.value if pre_agg.granularity else None,
        )


def can_use_pre_aggregation_for_transformed_query(
    transformed: TransformedQuery, refs: PreAggregationReferences
) -> bool:
    """Rollup compatibility check.

    Additive measures can be re-aggregated, so the rollup may hold more
    dimensions than the query; otherwise dimensions must match exactly.
    """
    if not set(transformed.measures) <= set(refs.measures):
        return False
    if not set(transformed.segments) <= set(refs.segments):
        return False
    rollup_dimensions = set(refs.dimensions)
    if transformed.leaf_measure_additive:
        if not set(transformed.dimensions) <= rollup_dimensions:
            return False
    elif set(transformed.dimensions) != rollup_dimensions:
        return False
    filterable = rollup_dimensions | ({refs.time_dimension} if refs.time_dimension else set())
    if not set(transformed.filter_members) <= filterable:
        return False
    if transformed.time_dimension is not None:
        if transformed.time_dimension != refs.time_dimension:
            return False
        if transformed.leaf_measure_additive:
            return granularity_derivable(refs.granularity, transformed.granularity)
        return refs.granularity == transformed.granularity
    return transformed.leaf_measure_additive or refs.time_dimension is None


class PreAggregations:
    """Matches the rollups of the cubes a query touches."""

    def __init__(self, query: BaseQuery) -> None:
        self._query = query
        self._match: tuple[Cube, PreAggregation] | None = None
        self._matched = False

    def transformed_query(self) -> TransformedQuery:
        q = self._query
        evaluator = q.evaluator
        time_dimension = q.time_dimensions[0] if q.time_dimensions else None
        additive = all(
            evaluator.resolve_member(m)[1].type in ADDITIVE_MEASURE_TYPES for m in q.measures
        )
        return TransformedQuery(
            measures=tuple(q.measures),
            dimensions=tuple(q.dimensions),
            segments=tuple(q.segments),
            time_dimension=time_dimension.dimension if time_dimension else None,
            granularity=time_dimension.granularity if time_dimension else None,
            leaf_measure_additive=additive,
            filter_members=tuple(dict.fromkeys(f.member for f in q.filters)),
        )

    def can_use_transformed_query(self) -> TransformedQuery:
        return self.transformed_query()

    def _candidates(self) -> list[tuple[Cube, PreAggregation]]:
        evaluator = self._query.evaluator
        candidates: list[tuple[Cube, PreAggregation]] = []
        for cube_name in self._query.cube_names:
            cube = evaluator.cube_from_path(cube_name)
            candidates.extend(
                (cube, p) for p in cube.pre_aggregations if p.type != PreAggregationType.ORIGINAL_SQL
            )
        return candidates

    def _can_use(self, cube: Cube, pre_agg: PreAggregation, transformed: TransformedQuery) -> bool:
        if self._query.ungrouped:
            return False
        return can_use_pre_aggregation_for_transformed_query(
            transformed, PreAggregationReferences.of(cube, pre_agg)
        )

    def find_pre_aggregation(self) -> tuple[Cube, PreAggregation] | None:
        if not self._matched:
            transformed = self.transformed_query()
            self._match = next(
                ((c, p) for c, p in self._candidates() if self._can_use(c, p, transformed)),
                None,
            )
            self._matched = True
        return self._match

    def is_external(self) -> bool:
        match = self.find_pre_aggregation()
        if match is None or self._query.artifacts.compiler.standalone:
            return False
        return match[1].external

    def table_name(self, cube: Cube, pre_agg: PreAggregation) -> str:
        schema = self._query.options.pre_aggregations_schema
        builder: Any = type(self._query)
        if pre_agg.external and self.is_external() and self._query.options.external_dialect_class:
            builder = self._query.options.external_dialect_class
        elif self._query.query_factory is not None:
            builder = self._query.query_factory.query_class(cube.name) or builder
        return f"{builder.quote_identifier(schema)}.{builder.quote_identifier(f'{cube.alias}_{pre_agg.name}')}"

    def pre_aggregations_description(self) -> list[dict[str, Any]]:
        match = self.find_pre_aggregation()
        if match is None:
            return []
        cube, pre_agg = match
        external = self.is_external()
        return [
            {
                "pre_aggregation_id": f"{cube.name}.{pre_agg.name}",
                "table_name": self.table_name(cube, pre_agg),
                "type": pre_agg.type.value,
                "external": external,
                "data_source": cube.effective_data_source,
                "db_type": self._query.options.external_db_type if external else self._query.db_type,
                "granularity": pre_agg.granularity.value if pre_agg.granularity else None,
                "refresh_key": self._query.refresh_key_query(cube, pre_agg.refresh_key),
            }
        ]

    def rollup_match_result_descriptions(self) -> list[dict[str, Any]]:
        transformed = self.transformed_query()
        return [
            {
                "pre_aggregation_id": f"{cube.name}.{pre_agg.name}",
                "type": pre_agg.type.value,
                "can_use_pre_aggregation": self._can_use(cube, pre_agg, transformed),
                "references": asdict(PreAggregationReferences.of(cube, pre_agg)),
            }
            for cube, pre_agg in self._candidates()
        ]
