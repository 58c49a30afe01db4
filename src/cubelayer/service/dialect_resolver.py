"""Data source → database type → query builder resolution."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from cubelayer.compiler.schema_compiler import CompiledArtifactSet
from cubelayer.dialect.base import BaseQuery, QueryOptions
from cubelayer.dialect.errors import UnresolvedDialectError
from cubelayer.dialect.factory import QueryFactory, create_query
from cubelayer.dialect.registry import query_class
from cubelayer.models.query import Query
from cubelayer.models.schema import DEFAULT_DATA_SOURCE

logger = logging.getLogger(__name__)

DbTypeFn = Callable[[str], Awaitable[str]]
DialectClassFn = Callable[[str, str], type[BaseQuery] | None]


@dataclass(frozen=True)
class ResolvedDialect:
    data_source: str
    db_type: str
    dialect_class: type[BaseQuery] | None = None


class DialectResolver:
    """Wraps the external database-type and dialect-override resolvers."""

    def __init__(self, db_type_fn: DbTypeFn, dialect_class_fn: DialectClassFn | None = None) -> None:
        self._db_type_fn = db_type_fn
        self._dialect_class_fn = dialect_class_fn

    async def db_type(self, data_source: str | None = None) -> str:
        """Database type of ``data_source``; resolver failures become ``UnresolvedDialectError``."""
        data_source = data_source or DEFAULT_DATA_SOURCE
        try:
            db_type = await self._db_type_fn(data_source)
        except UnresolvedDialectError:
            raise
        except Exception as exc:
            raise UnresolvedDialectError(data_source, reason=str(exc)) from exc
        if not db_type:
            raise UnresolvedDialectError(data_source, reason="no database type configured")
        return db_type

    def dialect_class(self, data_source: str | None, db_type: str) -> type[BaseQuery] | None:
        if self._dialect_class_fn is None:
            return None
        return self._dialect_class_fn(data_source or DEFAULT_DATA_SOURCE, db_type)

    async def resolve(self, data_source: str | None = None) -> ResolvedDialect:
        data_source = data_source or DEFAULT_DATA_SOURCE
        db_type = await self.db_type(data_source)
        return ResolvedDialect(data_source, db_type, self.dialect_class(data_source, db_type))

    def _create(
        self,
        artifacts: CompiledArtifactSet,
        resolved: ResolvedDialect,
        query: Query,
        query_factory: QueryFactory | None,
        options: QueryOptions,
    ) -> BaseQuery | None:
        generator_options = dataclasses.replace(options, query_factory=query_factory)
        builder = query_class(resolved.db_type, resolved.dialect_class)
        return create_query(artifacts, builder, query, generator_options)

    async def resolve_generator(
        self,
        artifacts: CompiledArtifactSet,
        query: Query,
        query_factory: QueryFactory | None,
        options: QueryOptions,
    ) -> BaseQuery:
        """Build the generator for ``query``, re-resolving at most once.

        The first attempt uses the data source declared on the query. If the
        generator reports a different effective data source whose database
        type differs too, the generator is rebuilt once for that source.
        """
        declared = await self.resolve(query.data_source)
        generator = self._create(artifacts, declared, query, query_factory, options)
        if generator is None:
            raise UnresolvedDialectError(declared.data_source, declared.db_type)

        first = generator
        effective_source = artifacts.compiler.with_query(first, lambda: first.data_source)
        if effective_source == declared.data_source:
            return generator

        effective = await self.resolve(effective_source)
        if effective.db_type == declared.db_type:
            return generator

        logger.debug(
            "Rebuilding generator for data source '%s' (%s → %s)",
            effective_source,
            declared.db_type,
            effective.db_type,
        )
        generator = self._create(artifacts, effective, query, query_factory, options)
        if generator is None:
            raise UnresolvedDialectError(effective.data_source, effective.db_type)
        return generator


async def build_query_factory(artifacts: CompiledArtifactSet, resolver: DialectResolver) -> QueryFactory:
    """Resolve the query builder of every cube; any failure fails the whole build."""
    evaluator = artifacts.cube_evaluator
    cube_sources = {
        name: evaluator.cube_from_path(name).effective_data_source for name in evaluator.cube_names()
    }
    data_sources = list(dict.fromkeys(cube_sources.values()))
    resolved = await asyncio.gather(*(resolver.resolve(ds) for ds in data_sources))
    by_source = {r.data_source: r for r in resolved}

    classes: dict[str, type[BaseQuery]] = {}
    for cube_name, data_source in cube_sources.items():
        dialect = by_source[data_source]
        builder = query_class(dialect.db_type, dialect.dialect_class)
        if builder is None:
            raise UnresolvedDialectError(data_source, dialect.db_type)
        classes[cube_name] = builder
    return QueryFactory(classes)
