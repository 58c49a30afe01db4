"""Cube → query builder mapping of one compiled schema."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from cubelayer.models.query import Query

if TYPE_CHECKING:
    from cubelayer.compiler.schema_compiler import CompiledArtifactSet
    from cubelayer.dialect.base import BaseQuery, QueryOptions


class QueryFactory:
    """Selects the builder class per cube so joined queries can see each cube's dialect."""

    def __init__(self, cube_to_query_class: Mapping[str, type[BaseQuery]]) -> None:
        self._classes = dict(cube_to_query_class)

    def query_class(self, cube_name: str) -> type[BaseQuery] | None:
        return self._classes.get(cube_name)

    def cube_names(self) -> list[str]:
        return list(self._classes)

    def __len__(self) -> int:
        return len(self._classes)


def create_query(
    artifacts: CompiledArtifactSet,
    query_class: type[BaseQuery] | None,
    query: Query,
    options: QueryOptions,
) -> BaseQuery | None:
    """Instantiate ``query_class`` for ``query``, or ``None`` when there is no class."""
    if query_class is None:
        return None
    return query_class(artifacts, query, options)
