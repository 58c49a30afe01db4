"""Databricks SQL query builder."""

from __future__ import annotations

from cubelayer.dialect.base import BaseQuery
from cubelayer.dialect.registry import QueryClassRegistry


@QueryClassRegistry.register
class DatabricksQuery(BaseQuery):
    """Databricks SQL: Spark semantics, backtick identifiers."""

    db_type = "databricks"

    @classmethod
    def quote_identifier(cls, name: str) -> str:
        escaped = name.replace("`", "``")
        return f"`{escaped}`"

    def time_grouped_column(self, granularity: str, sql: str) -> str:
        return f"date_trunc('{granularity}', {sql})"

    def convert_tz(self, sql: str) -> str:
        return f"from_utc_timestamp({sql}, '{self.timezone}')"

    def unix_timestamp_sql(self) -> str:
        return "unix_timestamp()"

    def count_distinct_approx(self, sql: str) -> str:
        return f"approx_count_distinct({sql})"
