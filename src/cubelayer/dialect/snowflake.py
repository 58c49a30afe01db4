"""Snowflake query builder."""

from __future__ import annotations

from cubelayer.dialect.base import BaseQuery
from cubelayer.dialect.registry import QueryClassRegistry


@QueryClassRegistry.register
class SnowflakeQuery(BaseQuery):
    """Snowflake: DATE_TRUNC, CONVERT_TIMEZONE, APPROX_COUNT_DISTINCT."""

    db_type = "snowflake"

    def convert_tz(self, sql: str) -> str:
        return f"CONVERT_TIMEZONE('{self.timezone}', {sql}::timestamp_tz)::timestamp_ntz"

    def unix_timestamp_sql(self) -> str:
        return "DATE_PART('EPOCH_SECOND', CURRENT_TIMESTAMP())"

    def count_distinct_approx(self, sql: str) -> str:
        return f"APPROX_COUNT_DISTINCT({sql})"

    def like_sql(self, column: str, param: str, negated: bool = False) -> str:
        op = "NOT ILIKE" if negated else "ILIKE"
        return f"{column} {op} '%' || {param} || '%'"
