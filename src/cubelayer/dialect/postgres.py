"""PostgreSQL query builder."""

from __future__ import annotations

from cubelayer.dialect.base import BaseQuery
from cubelayer.dialect.registry import QueryClassRegistry


@QueryClassRegistry.register
class PostgresQuery(BaseQuery):
    """PostgreSQL: ``$n`` parameters, date_trunc, ILIKE."""

    db_type = "postgres"

    def placeholder(self, index: int) -> str:
        return f"${index}"

    def time_grouped_column(self, granularity: str, sql: str) -> str:
        return f"date_trunc('{granularity}', {sql})"

    def convert_tz(self, sql: str) -> str:
        return f"(({sql}::timestamptz) AT TIME ZONE '{self.timezone}')"

    def like_sql(self, column: str, param: str, negated: bool = False) -> str:
        op = "NOT ILIKE" if negated else "ILIKE"
        return f"{column} {op} '%' || {param} || '%'"
