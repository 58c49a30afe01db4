"""SQL artifact construction and its per-compilation memoization."""

from __future__ import annotations

import copy
from collections.abc import Callable, Sequence
from typing import Any

from cubelayer.compiler.cache import canonical_cache_key
from cubelayer.compiler.schema_compiler import CompiledArtifactSet
from cubelayer.dialect.base import BaseQuery
from cubelayer.models.artifact import SqlArtifact
from cubelayer.models.query import Query, SqlOptions

CacheFn = Callable[[str | Sequence[str], Callable[[], Any]], Any]


def build_sql_artifact(artifacts: CompiledArtifactSet, generator: BaseQuery, options: SqlOptions) -> SqlArtifact:
    """Everything the executor needs for one query, computed inside the query context."""

    def _build() -> SqlArtifact:
        time_dimension = generator.time_dimensions[0] if generator.time_dimensions else None
        pre_aggregations = generator.pre_aggregations
        return SqlArtifact(
            external=generator.external_pre_aggregation_query(),
            sql=generator.build_sql_and_params(options.export_annotated_sql),
            lambda_queries=generator.build_lambda_query(),
            time_dimension_alias=time_dimension.unescaped_alias_name() if time_dimension else None,
            time_dimension_field=time_dimension.dimension if time_dimension else None,
            order=generator.order,
            cache_key_queries=generator.cache_key_queries(),
            pre_aggregations=pre_aggregations.pre_aggregations_description(),
            data_source=generator.data_source,
            alias_name_to_member=dict(generator.alias_name_to_member),
            rollup_match_results=(
                pre_aggregations.rollup_match_result_descriptions() if options.include_debug_info else None
            ),
            can_use_transformed_query=pre_aggregations.can_use_transformed_query(),
        )

    return artifacts.compiler.with_query(generator, _build)


class SqlGenerationCache:
    """Memoizes SQL artifacts in the compiler cache of the artifact set that built them."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def get_or_build(
        self,
        artifacts: CompiledArtifactSet,
        query: Query,
        options: SqlOptions,
        build: Callable[[], SqlArtifact],
    ) -> SqlArtifact:
        """Return the artifact for ``(query, options)``, building it at most once.

        Callers receive their own copy; changes to it never reach the cache.
        """
        if not self.enabled:
            return build()
        key = canonical_cache_key(query, options)
        return copy.deepcopy(artifacts.compiler_cache.get_query_cache(key).cache(["sql"], build))

    def cache_under(self, artifacts: CompiledArtifactSet, key: Any, path: Sequence[str]) -> CacheFn:
        """Accessor memoizing ``fn()`` under ``path + sub_key`` in the scope of ``key``."""
        if not self.enabled:
            return lambda sub_key, fn: fn()
        query_cache = artifacts.compiler_cache.get_query_cache(key)
        prefix = list(path)

        def _cached(sub_key: str | Sequence[str], fn: Callable[[], Any]) -> Any:
            suffix = [sub_key] if isinstance(sub_key, str) else list(sub_key)
            return query_cache.cache([*prefix, *suffix], fn)

        return _cached
