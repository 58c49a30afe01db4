"""Reference schema compiler: schema files → evaluator, meta, cache scope."""

from cubelayer.compiler.cache import CompilerCache, QueryCache, canonical_cache_key
from cubelayer.compiler.context import QueryContext, current_query
from cubelayer.compiler.evaluator import CubeEvaluator, PreAggregationFilter, UnknownMemberError
from cubelayer.compiler.meta import MetaTransformer
from cubelayer.compiler.schema_compiler import (
    CompiledArtifactSet,
    CompileOptions,
    NativeInstance,
    SchemaCompilationError,
    build_artifact_set,
    compile_schema,
)

__all__ = [
    "CompileOptions",
    "CompiledArtifactSet",
    "CompilerCache",
    "CubeEvaluator",
    "MetaTransformer",
    "NativeInstance",
    "PreAggregationFilter",
    "QueryCache",
    "QueryContext",
    "SchemaCompilationError",
    "UnknownMemberError",
    "build_artifact_set",
    "canonical_cache_key",
    "compile_schema",
    "current_query",
]
