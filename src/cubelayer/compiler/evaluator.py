"""Evaluator over the cubes of one compiled schema."""

from __future__ import annotations

import re
from dataclasses import dataclass

from cubelayer.compiler.context import current_query
from cubelayer.models.artifact import PreAggregationInfo
from cubelayer.models.schema import Cube, Dimension, Measure, Segment

_REF_RE = re.compile(r"\{([A-Za-z_]\w*)(?:\.([A-Za-z_]\w*))?\}")
_BARE_COLUMN_RE = re.compile(r"^[A-Za-z_]\w*$")
_MAX_SQL_DEPTH = 16

Member = Measure | Dimension | Segment


class UnknownMemberError(ValueError):
    """Raised when a cube or member path does not exist in the schema."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"'{path}' is not defined in the schema")


@dataclass
class PreAggregationFilter:
    """Selects pre-aggregations by cube, by ``Cube.name`` id, or by scheduling."""

    cubes: list[str] | None = None
    pre_aggregation_ids: list[str] | None = None
    scheduled: bool = False


class CubeEvaluator:
    """Lookup and SQL evaluation over compiled cubes."""

    def __init__(self, cubes: list[Cube]) -> None:
        self._cubes: dict[str, Cube] = {cube.name: cube for cube in cubes}

    @property
    def cube_definitions(self) -> dict[str, Cube]:
        return dict(self._cubes)

    def cube_names(self) -> list[str]:
        return list(self._cubes)

    def has_cube(self, name: str) -> bool:
        return name in self._cubes

    def cube_from_path(self, path: str) -> Cube:
        name = path.split(".", 1)[0]
        try:
            return self._cubes[name]
        except KeyError:
            raise UnknownMemberError(name) from None

    def resolve_member(self, path: str) -> tuple[Cube, Member, str]:
        """Return ``(cube, member, kind)`` for ``Cube.member``."""
        cube = self.cube_from_path(path)
        _, _, name = path.partition(".")
        if (measure := cube.measure(name)) is not None:
            return cube, measure, "measure"
        if (dimension := cube.dimension(name)) is not None:
            return cube, dimension, "dimension"
        if (segment := cube.segment(name)) is not None:
            return cube, segment, "segment"
        raise UnknownMemberError(path)

    def is_measure(self, path: str) -> bool:
        return self.resolve_member(path)[2] == "measure"

    # -- SQL evaluation ------------------------------------------------------

    def evaluate_sql(self, cube_name: str, sql: str, _depth: int = 0) -> str:
        """Render a member SQL template for the generator in the current context.

        ``{CUBE}`` and ``{Cube}`` become the quoted cube alias; ``{CUBE.member}``
        and ``{Cube.member}`` inline that member's SQL. A bare identifier is
        treated as a column of the owning cube.
        """
        if _depth > _MAX_SQL_DEPTH:
            raise ValueError(f"Member SQL of cube '{cube_name}' references itself")
        query = current_query()
        if _BARE_COLUMN_RE.match(sql):
            return f"{query.cube_alias(cube_name)}.{sql}"

        def _replace(match: re.Match[str]) -> str:
            target = cube_name if match.group(1) == "CUBE" else match.group(1)
            if target not in self._cubes:
                raise UnknownMemberError(target)
            member = match.group(2)
            if member is None:
                return query.cube_alias(target)
            path = f"{target}.{member}"
            if self.is_measure(path):
                return query.measure_sql(path, _depth + 1)
            return self.member_sql(path, _depth + 1)

        return _REF_RE.sub(_replace, sql)

    def member_sql(self, path: str, _depth: int = 0) -> str:
        cube, member, kind = self.resolve_member(path)
        if kind == "measure" and member.sql is None:
            return "*"
        return self.evaluate_sql(cube.name, member.sql, _depth)

    def cube_table_sql(self, cube_name: str) -> str:
        cube = self._cubes[cube_name]
        if cube.sql_table:
            return cube.sql_table
        return f"({self.evaluate_sql(cube.name, cube.sql)})"

    # -- pre-aggregations ----------------------------------------------------

    def pre_aggregations(self, filter: PreAggregationFilter | None = None) -> list[PreAggregationInfo]:
        filter = filter or PreAggregationFilter()
        result: list[PreAggregationInfo] = []
        for cube in self._cubes.values():
            if filter.cubes is not None and cube.name not in filter.cubes:
                continue
            for pre_agg in cube.pre_aggregations:
                pre_agg_id = f"{cube.name}.{pre_agg.name}"
                if filter.pre_aggregation_ids is not None and pre_agg_id not in filter.pre_aggregation_ids:
                    continue
                if filter.scheduled and not pre_agg.scheduled_refresh:
                    continue
                result.append(
                    PreAggregationInfo(
                        id=pre_agg_id,
                        cube=cube.name,
                        name=pre_agg.name,
                        type=pre_agg.type.value,
                        external=pre_agg.external,
                        scheduled_refresh=pre_agg.scheduled_refresh,
                        data_source=cube.effective_data_source,
                    )
                )
        return result

    def scheduled_pre_aggregations(self) -> list[PreAggregationInfo]:
        return self.pre_aggregations(PreAggregationFilter(scheduled=True))
