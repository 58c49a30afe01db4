"""Orchestrator facade: compiled schema, query builders and SQL artifacts of one app."""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import cubelayer.dialect  # noqa: F401  (registers the query builders)
from cubelayer.compiler.evaluator import PreAggregationFilter
from cubelayer.compiler.schema_compiler import (
    CompiledArtifactSet,
    CompileOptions,
    NativeInstance,
    compile_schema,
)
from cubelayer.dialect.base import BaseQuery, QueryOptions
from cubelayer.dialect.factory import QueryFactory
from cubelayer.dialect.pre_aggregations import (
    PreAggregationReferences,
    can_use_pre_aggregation_for_transformed_query,
)
from cubelayer.dialect.registry import QueryClassRegistry
from cubelayer.models.artifact import (
    CubeMeta,
    DataSourceInfo,
    PreAggregationInfo,
    SqlArtifact,
    TransformedQuery,
)
from cubelayer.models.query import Query, SqlOptions
from cubelayer.service.compilation_cache import CompilationCache
from cubelayer.service.data_sources import OrchestratorApi, list_data_sources
from cubelayer.service.dialect_resolver import (
    DbTypeFn,
    DialectClassFn,
    DialectResolver,
    build_query_factory,
)
from cubelayer.service.fingerprint import SchemaVersionFn, current_fingerprint
from cubelayer.service.log import LogFn, log_event
from cubelayer.service.sql_cache import CacheFn, SqlGenerationCache, build_sql_artifact
from cubelayer.settings import Settings
from cubelayer.storage.repository import FileSchemaRepository, SchemaFileRepository

CompileFn = Callable[[SchemaFileRepository, CompileOptions], Awaitable[CompiledArtifactSet]]


def _as_query(query: Query | dict[str, Any] | None) -> Query:
    if query is None:
        return Query()
    if isinstance(query, Query):
        return query
    return Query.model_validate(query)


class CompilerApi:
    """Compiles a schema on demand and generates SQL against the current compilation.

    The compiled artifact set is replaced wholesale when the schema
    fingerprint changes. SQL artifacts are memoized in the compiler cache of
    the artifact set that produced them, so a recompilation drops them too.
    """

    def __init__(
        self,
        repository: SchemaFileRepository,
        db_type: DbTypeFn,
        *,
        dialect_class: DialectClassFn | None = None,
        schema_version: SchemaVersionFn | None = None,
        logger: LogFn = log_event,
        dev_mode: bool = False,
        sql_cache: bool = True,
        compile_fn: CompileFn = compile_schema,
        compile_options: CompileOptions | None = None,
        query_options: QueryOptions | None = None,
    ) -> None:
        self.repository = repository
        self.logger = logger
        self.dev_mode = dev_mode
        self._schema_version = schema_version
        self._compile_fn = compile_fn
        self.native_instance = self.create_native_instance()
        options = compile_options or CompileOptions()
        if options.native_instance is None:
            options = dataclasses.replace(options, native_instance=self.native_instance)
        self.compile_options = options
        self.query_options = query_options or QueryOptions()
        self.resolver = DialectResolver(db_type, dialect_class)
        self.sql_cache = SqlGenerationCache(enabled=sql_cache)
        self._compilation = CompilationCache(
            fingerprint_fn=self._fingerprint,
            compile_fn=self._compile,
            build_factory=self._build_query_factory,
            logger=logger,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, repository: SchemaFileRepository | None = None, **kwargs: Any
    ) -> CompilerApi:
        """Orchestrator with static database types taken from ``settings``."""
        db_types = dict(settings.data_source_db_types)

        async def db_type(data_source: str) -> str:
            return db_types.get(data_source, settings.default_db_type)

        async def schema_version() -> str | None:
            return settings.schema_version

        external_dialect_class = (
            QueryClassRegistry.get(settings.external_db_type) if settings.external_db_type else None
        )
        return cls(
            repository or FileSchemaRepository(settings.schema_path),
            db_type,
            schema_version=schema_version,
            dev_mode=settings.dev_mode,
            sql_cache=settings.sql_cache,
            compile_options=CompileOptions(
                allow_module_imports=settings.allow_module_imports,
                allow_duplicate_props=settings.allow_duplicate_props,
                standalone=settings.standalone,
                max_cached_queries=settings.max_cached_queries,
            ),
            query_options=QueryOptions(
                external_dialect_class=external_dialect_class,
                external_db_type=settings.external_db_type,
                pre_aggregations_schema=settings.pre_aggregations_schema,
                allow_ungrouped_without_primary_key=settings.allow_ungrouped_without_primary_key,
                convert_tz_for_raw_time_dimension=settings.convert_tz_for_raw_time_dimension,
            ),
            **kwargs,
        )

    def create_native_instance(self) -> NativeInstance:
        return NativeInstance()

    # -- compilation ---------------------------------------------------------

    async def _fingerprint(self) -> str:
        return await current_fingerprint(self.repository, self._schema_version, self.dev_mode)

    async def _compile(self) -> CompiledArtifactSet:
        return await self._compile_fn(self.repository, self.compile_options)

    async def _build_query_factory(self, artifacts: CompiledArtifactSet) -> QueryFactory:
        return await build_query_factory(artifacts, self.resolver)

    async def get_compiled(self, request_id: str | None = None) -> CompiledArtifactSet:
        """Current artifact set, recompiling when the fingerprint changed."""
        return (await self._compilation.get(request_id)).artifacts

    @property
    def query_factory(self) -> QueryFactory | None:
        state = self._compilation.state
        return state.query_factory if state is not None else None

    @property
    def fingerprint(self) -> str | None:
        state = self._compilation.state
        return state.fingerprint if state is not None else None

    def dispose(self) -> None:
        self._compilation.reset()

    # -- dialects ------------------------------------------------------------

    async def get_db_type(self, data_source: str | None = None) -> str:
        return await self.resolver.db_type(data_source)

    def get_dialect_class(self, data_source: str | None, db_type: str) -> type[BaseQuery] | None:
        return self.resolver.dialect_class(data_source, db_type)

    async def get_sql_generator(
        self, query: Query | dict[str, Any]
    ) -> tuple[BaseQuery, CompiledArtifactSet]:
        query = _as_query(query)
        state = await self._compilation.get(query.request_id)
        generator = await self.resolver.resolve_generator(
            state.artifacts, query, state.query_factory, self.query_options
        )
        return generator, state.artifacts

    # -- SQL -----------------------------------------------------------------

    async def get_sql(
        self, query: Query | dict[str, Any], options: SqlOptions | None = None
    ) -> SqlArtifact:
        query = _as_query(query)
        options = options or SqlOptions()
        generator, artifacts = await self.get_sql_generator(query)
        return self.sql_cache.get_or_build(
            artifacts, query, options, lambda: build_sql_artifact(artifacts, generator, options)
        )

    async def cache_under(self, request_id: str | None, key: Any, path: Sequence[str]) -> CacheFn:
        artifacts = await self.get_compiled(request_id)
        return self.sql_cache.cache_under(artifacts, key, path)

    # -- metadata ------------------------------------------------------------

    async def meta_config(self, request_id: str | None = None) -> list[CubeMeta]:
        return (await self.get_compiled(request_id)).meta_transformer.cubes

    async def meta_config_extended(self, request_id: str | None = None) -> dict[str, Any]:
        meta_transformer = (await self.get_compiled(request_id)).meta_transformer
        return {
            "meta_config": meta_transformer.cubes,
            "cube_definitions": meta_transformer.cube_evaluator.cube_definitions,
        }

    async def pre_aggregations(self, filter: PreAggregationFilter | None = None) -> list[PreAggregationInfo]:
        return (await self.get_compiled()).cube_evaluator.pre_aggregations(filter)

    async def scheduled_pre_aggregations(self) -> list[PreAggregationInfo]:
        return (await self.get_compiled()).cube_evaluator.scheduled_pre_aggregations()

    @staticmethod
    def can_use_pre_aggregation_for_transformed_query(
        transformed: TransformedQuery, refs: PreAggregationReferences
    ) -> bool:
        return can_use_pre_aggregation_for_transformed_query(transformed, refs)

    # -- data sources --------------------------------------------------------

    async def map_cubes_to_data_sources(
        self, query: Query | dict[str, Any] | None = None
    ) -> dict[str, str]:
        """Cube name → data source, for the query's cubes or all cubes when it names none."""
        query = _as_query(query)
        evaluator = (await self.get_compiled(query.request_id)).cube_evaluator
        cube_names = query.cube_names() or evaluator.cube_names()
        return {name: evaluator.cube_from_path(name).effective_data_source for name in cube_names}

    async def list_data_sources(
        self, orchestrator: OrchestratorApi, query: Query | dict[str, Any] | None = None
    ) -> list[DataSourceInfo]:
        query = _as_query(query)
        if query.request_id is None:
            query = query.model_copy(update={"request_id": f"datasources-{uuid.uuid4()}"})
        cube_sources = await self.map_cubes_to_data_sources(query)
        return await list_data_sources(orchestrator, cube_sources.values(), self.resolver)
