"""ClickHouse query builder."""

from __future__ import annotations

from cubelayer.dialect.base import BaseQuery
from cubelayer.dialect.registry import QueryClassRegistry
from cubelayer.models.schema import Granularity

_GRANULARITY_FUNCTIONS: dict[str, str] = {
    Granularity.YEAR: "toStartOfYear",
    Granularity.QUARTER: "toStartOfQuarter",
    Granularity.MONTH: "toStartOfMonth",
    Granularity.WEEK: "toMonday",
    Granularity.DAY: "toDate",
    Granularity.HOUR: "toStartOfHour",
    Granularity.MINUTE: "toStartOfMinute",
    Granularity.SECOND: "toStartOfSecond",
}


@QueryClassRegistry.register
class ClickHouseQuery(BaseQuery):
    """ClickHouse: toStartOf* truncation, toTimeZone, uniq."""

    db_type = "clickhouse"

    def time_grouped_column(self, granularity: str, sql: str) -> str:
        return f"{_GRANULARITY_FUNCTIONS[granularity]}({sql})"

    def convert_tz(self, sql: str) -> str:
        return f"toTimeZone({sql}, '{self.timezone}')"

    def unix_timestamp_sql(self) -> str:
        return "toUnixTimestamp(now())"

    def count_distinct_approx(self, sql: str) -> str:
        return f"uniq({sql})"

    def like_sql(self, column: str, param: str, negated: bool = False) -> str:
        op = "NOT ILIKE" if negated else "ILIKE"
        return f"{column} {op} concat('%', {param}, '%')"
