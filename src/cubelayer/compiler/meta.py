"""Public metadata derived from compiled cubes."""

from __future__ import annotations

from cubelayer.compiler.evaluator import CubeEvaluator
from cubelayer.models.artifact import CubeMeta, MemberMeta
from cubelayer.models.schema import Cube


def _title(name: str) -> str:
    return name.replace("_", " ").strip().title()


class MetaTransformer:
    """Builds the public meta config once per compilation."""

    def __init__(self, cube_evaluator: CubeEvaluator) -> None:
        self._cube_evaluator = cube_evaluator
        self._cubes = [
            self._transform(cube)
            for cube in cube_evaluator.cube_definitions.values()
            if cube.public
        ]

    @property
    def cube_evaluator(self) -> CubeEvaluator:
        return self._cube_evaluator

    @property
    def cubes(self) -> list[CubeMeta]:
        return list(self._cubes)

    @staticmethod
    def _transform(cube: Cube) -> CubeMeta:
        cube_title = cube.title or _title(cube.name)

        def _member(name: str, title: str | None, type_: str) -> MemberMeta:
            short_title = title or _title(name)
            return MemberMeta(
                name=f"{cube.name}.{name}",
                title=f"{cube_title} {short_title}",
                type=type_,
                short_title=short_title,
            )

        return CubeMeta(
            name=cube.name,
            title=cube_title,
            data_source=cube.effective_data_source,
            measures=[_member(m.name, m.title, m.type.value) for m in cube.measures if m.public],
            dimensions=[_member(d.name, d.title, d.type.value) for d in cube.dimensions if d.public],
            segments=[_member(s.name, None, "boolean") for s in cube.segments if s.public],
        )
