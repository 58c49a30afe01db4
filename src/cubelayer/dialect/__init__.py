"""Per-database query builders for cubelayer."""

# Import builders to trigger registration
import cubelayer.dialect.clickhouse as _clickhouse  # noqa: F401
import cubelayer.dialect.databricks as _databricks  # noqa: F401
import cubelayer.dialect.dremio as _dremio  # noqa: F401
import cubelayer.dialect.postgres as _postgres  # noqa: F401
import cubelayer.dialect.snowflake as _snowflake  # noqa: F401
from cubelayer.dialect.base import BaseQuery, QueryOptions
from cubelayer.dialect.errors import QueryValidationError, UnresolvedDialectError, UnsupportedDatabaseError
from cubelayer.dialect.factory import QueryFactory, create_query
from cubelayer.dialect.registry import QueryClassRegistry, query_class

__all__ = [
    "BaseQuery",
    "QueryClassRegistry",
    "QueryFactory",
    "QueryOptions",
    "QueryValidationError",
    "UnresolvedDialectError",
    "UnsupportedDatabaseError",
    "create_query",
    "query_class",
]
