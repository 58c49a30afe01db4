"""Compilation orchestration and SQL generation caching."""

from cubelayer.service.app_registry import AppInfo, AppNotFoundError, AppRegistry
from cubelayer.service.compilation_cache import CompilationCache, CompiledState
from cubelayer.service.compiler_api import CompilerApi
from cubelayer.service.data_sources import ProbeFailure, list_data_sources, probe_data_source
from cubelayer.service.dialect_resolver import DialectResolver, ResolvedDialect, build_query_factory
from cubelayer.service.fingerprint import compute_fingerprint
from cubelayer.service.log import LogFn, log_event
from cubelayer.service.sql_cache import SqlGenerationCache, build_sql_artifact

__all__ = [
    "AppInfo",
    "AppNotFoundError",
    "AppRegistry",
    "CompilationCache",
    "CompiledState",
    "CompilerApi",
    "DialectResolver",
    "LogFn",
    "ProbeFailure",
    "ResolvedDialect",
    "SqlGenerationCache",
    "build_query_factory",
    "build_sql_artifact",
    "compute_fingerprint",
    "list_data_sources",
    "log_event",
    "probe_data_source",
]
