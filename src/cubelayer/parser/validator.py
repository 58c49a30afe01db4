"""Schema validation: unique names, join targets, pre-aggregation references."""

from __future__ import annotations

from cubelayer.models.errors import SchemaError
from cubelayer.models.schema import Cube, DimensionType, MeasureType, PreAggregation


def member_short_name(cube: Cube, reference: str) -> str:
    """``Orders.count`` and ``count`` both name the ``count`` member of Orders."""
    prefix, _, rest = reference.partition(".")
    if rest and prefix in (cube.name, "CUBE"):
        return rest
    return reference


class SchemaValidator:
    """Checks integrity of a list of compiled cubes."""

    def __init__(self, allow_duplicate_props: bool = False) -> None:
        self._allow_duplicate_props = allow_duplicate_props

    def validate(self, cubes: list[Cube]) -> list[SchemaError]:
        errors: list[SchemaError] = []
        errors.extend(self._check_unique_cubes(cubes))
        names = {c.name for c in cubes}
        for cube in cubes:
            if not self._allow_duplicate_props:
                errors.extend(self._check_unique_members(cube))
            errors.extend(self._check_source(cube))
            errors.extend(self._check_measures(cube))
            errors.extend(self._check_joins(cube, names))
            for pre_agg in cube.pre_aggregations:
                errors.extend(self._check_pre_aggregation(cube, pre_agg))
        return errors

    def _check_unique_cubes(self, cubes: list[Cube]) -> list[SchemaError]:
        errors: list[SchemaError] = []
        seen: dict[str, str | None] = {}
        for cube in cubes:
            if cube.name in seen:
                errors.append(
                    SchemaError(
                        code="DUPLICATE_CUBE",
                        message=(
                            f"Cube '{cube.name}' is defined in both "
                            f"'{seen[cube.name]}' and '{cube.file_name}'"
                        ),
                        path=f"cubes.{cube.name}",
                    )
                )
            seen[cube.name] = cube.file_name
        return errors

    def _check_unique_members(self, cube: Cube) -> list[SchemaError]:
        errors: list[SchemaError] = []
        seen: dict[str, str] = {}
        members = [
            *(("measure", m.name) for m in cube.measures),
            *(("dimension", d.name) for d in cube.dimensions),
            *(("segment", s.name) for s in cube.segments),
        ]
        for kind, name in members:
            existing = seen.get(name)
            if existing is not None:
                errors.append(
                    SchemaError(
                        code="DUPLICATE_MEMBER",
                        message=f"{kind.title()} '{name}' conflicts with existing {existing} '{name}'",
                        path=f"cubes.{cube.name}.{kind}s.{name}",
                    )
                )
            seen[name] = kind
        return errors

    def _check_source(self, cube: Cube) -> list[SchemaError]:
        if cube.sql_table or cube.sql:
            return []
        return [
            SchemaError(
                code="MISSING_CUBE_SOURCE",
                message=f"Cube '{cube.name}' needs either 'sql_table' or 'sql'",
                path=f"cubes.{cube.name}",
            )
        ]

    def _check_measures(self, cube: Cube) -> list[SchemaError]:
        return [
            SchemaError(
                code="MISSING_MEASURE_SQL",
                message=f"Measure '{cube.name}.{m.name}' of type '{m.type}' requires 'sql'",
                path=f"cubes.{cube.name}.measures.{m.name}",
            )
            for m in cube.measures
            if m.sql is None and m.type != MeasureType.COUNT
        ]

    def _check_joins(self, cube: Cube, names: set[str]) -> list[SchemaError]:
        return [
            SchemaError(
                code="UNKNOWN_JOIN_TARGET",
                message=f"Cube '{cube.name}' joins unknown cube '{join.name}'",
                path=f"cubes.{cube.name}.joins.{join.name}",
            )
            for join in cube.joins
            if join.name not in names
        ]

    def _check_pre_aggregation(self, cube: Cube, pre_agg: PreAggregation) -> list[SchemaError]:
        errors: list[SchemaError] = []
        path = f"cubes.{cube.name}.pre_aggregations.{pre_agg.name}"

        def _missing(kind: str, ref: str) -> None:
            errors.append(
                SchemaError(
                    code="UNKNOWN_PRE_AGGREGATION_MEMBER",
                    message=f"Pre-aggregation '{cube.name}.{pre_agg.name}' references unknown {kind} '{ref}'",
                    path=path,
                )
            )

        for ref in pre_agg.measures:
            if cube.measure(member_short_name(cube, ref)) is None:
                _missing("measure", ref)
        for ref in pre_agg.dimensions:
            if cube.dimension(member_short_name(cube, ref)) is None:
                _missing("dimension", ref)
        for ref in pre_agg.segments:
            if cube.segment(member_short_name(cube, ref)) is None:
                _missing("segment", ref)
        if pre_agg.time_dimension is not None:
            dim = cube.dimension(member_short_name(cube, pre_agg.time_dimension))
            if dim is None:
                _missing("time dimension", pre_agg.time_dimension)
            elif dim.type != DimensionType.TIME:
                errors.append(
                    SchemaError(
                        code="INVALID_TIME_DIMENSION",
                        message=(
                            f"Pre-aggregation '{cube.name}.{pre_agg.name}' time dimension "
                            f"'{pre_agg.time_dimension}' is not of type time"
                        ),
                        path=path,
                    )
                )
            if pre_agg.granularity is None:
                errors.append(
                    SchemaError(
                        code="MISSING_GRANULARITY",
                        message=f"Pre-aggregation '{cube.name}.{pre_agg.name}' needs a granularity",
                        path=path,
                    )
                )
        return errors
