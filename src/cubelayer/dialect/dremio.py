"""Dremio query builder."""

from __future__ import annotations

from cubelayer.dialect.base import BaseQuery
from cubelayer.dialect.registry import QueryClassRegistry


@QueryClassRegistry.register
class DremioQuery(BaseQuery):
    """Dremio: reduced function surface, no ILIKE."""

    db_type = "dremio"

    def convert_tz(self, sql: str) -> str:
        return f"CONVERT_TIMEZONE('UTC', '{self.timezone}', {sql})"

    def unix_timestamp_sql(self) -> str:
        return "UNIX_TIMESTAMP()"

    def count_distinct_approx(self, sql: str) -> str:
        return f"NDV({sql})"
