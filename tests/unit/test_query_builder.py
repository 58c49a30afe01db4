"""Tests for SQL generation by the per-database query builders."""

from __future__ import annotations

import pytest
import sqlglot

from cubelayer.compiler.schema_compiler import CompiledArtifactSet
from cubelayer.dialect import QueryClassRegistry, query_class
from cubelayer.dialect.base import BaseQuery, QueryOptions, parse_interval
from cubelayer.dialect.clickhouse import ClickHouseQuery
from cubelayer.dialect.databricks import DatabricksQuery
from cubelayer.dialect.dremio import DremioQuery
from cubelayer.dialect.errors import QueryValidationError, UnsupportedDatabaseError
from cubelayer.dialect.postgres import PostgresQuery
from cubelayer.dialect.snowflake import SnowflakeQuery
from cubelayer.models.query import Query
from tests.conftest import build_sql


class TestRegistry:
    def test_all_builders_registered(self) -> None:
        assert QueryClassRegistry.available() == [
            "clickhouse",
            "databricks",
            "dremio",
            "postgres",
            "snowflake",
        ]

    def test_get_unknown_raises(self) -> None:
        with pytest.raises(UnsupportedDatabaseError, match="oracle"):
            QueryClassRegistry.get("oracle")

    def test_override_wins(self) -> None:
        assert query_class("postgres", DremioQuery) is DremioQuery

    def test_lookup_without_override(self) -> None:
        assert query_class("snowflake") is SnowflakeQuery
        assert query_class("oracle") is None


class TestPostgresSelect:
    def test_measure_by_dimension(self, artifacts: CompiledArtifactSet) -> None:
        sql, params = build_sql(
            artifacts,
            PostgresQuery,
            {"measures": ["Orders.count"], "dimensions": ["Orders.status"], "limit": 10},
        )
        assert sql == (
            'SELECT "orders".status AS "orders__status", COUNT(*) AS "orders__count"\n'
            'FROM public.orders AS "orders"\n'
            "GROUP BY 1\n"
            'ORDER BY "orders__count" DESC\n'
            "LIMIT 10"
        )
        assert params == []
        sqlglot.parse_one(sql, read="postgres")

    def test_dimension_filter_uses_numbered_params(self, artifacts: CompiledArtifactSet) -> None:
        sql, params = build_sql(
            artifacts,
            PostgresQuery,
            {
                "measures": ["Orders.total_amount"],
                "filters": [
                    {"member": "Orders.status", "operator": "equals", "values": ["completed", "shipped"]},
                    {"member": "Orders.id", "operator": "gt", "values": ["100"]},
                ],
            },
        )
        assert 'WHERE ("orders".status IN ($1, $2)) AND ("orders".id > $3)' in sql
        assert params == ["completed", "shipped", "100"]
        sqlglot.parse_one(sql, read="postgres")

    def test_measure_filter_goes_to_having(self, artifacts: CompiledArtifactSet) -> None:
        sql, params = build_sql(
            artifacts,
            PostgresQuery,
            {
                "measures": ["Orders.count"],
                "dimensions": ["Orders.status"],
                "filters": [
                    {"member": "Orders.total_amount", "operator": "gte", "values": ["50"]},
                    {"member": "Orders.status", "operator": "notEquals", "values": ["void"]},
                ],
            },
        )
        assert 'WHERE ("orders".status <> $1 OR "orders".status IS NULL)' in sql
        assert 'HAVING (SUM("orders".amount) >= $2)' in sql
        assert params == ["void", "50"]
        sqlglot.parse_one(sql, read="postgres")

    def test_join_follows_declared_path(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts,
            PostgresQuery,
            {"measures": ["Orders.count"], "dimensions": ["Customers.country"]},
        )
        assert 'FROM public.orders AS "orders"' in sql
        assert (
            'LEFT JOIN public.customers AS "customers" ON "orders".customer_id = "customers".id'
        ) in sql
        sqlglot.parse_one(sql, read="postgres")

    def test_join_from_the_other_side(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts,
            PostgresQuery,
            {"measures": ["Customers.count"], "dimensions": ["Orders.status"]},
        )
        assert 'FROM public.customers AS "customers"' in sql
        assert 'LEFT JOIN public.orders AS "orders"' in sql

    def test_no_join_path_raises(self, artifacts: CompiledArtifactSet) -> None:
        with pytest.raises(QueryValidationError, match="join path"):
            build_sql(
                artifacts,
                PostgresQuery,
                {"measures": ["Orders.count"], "dimensions": ["Events.event_type"]},
            )

    def test_number_measure_inlines_referenced_measures(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(artifacts, PostgresQuery, {"measures": ["Orders.amount_per_order"]})
        assert 'SUM("orders".amount) / NULLIF(COUNT(*), 0) AS "orders__amount_per_order"' in sql
        sqlglot.parse_one(sql, read="postgres")

    def test_segment_becomes_where_clause(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts, PostgresQuery, {"measures": ["Orders.count"], "segments": ["Orders.completed"]}
        )
        assert "WHERE (\"orders\".status = 'completed')" in sql

    def test_contains_uses_ilike(self, artifacts: CompiledArtifactSet) -> None:
        sql, params = build_sql(
            artifacts,
            PostgresQuery,
            {
                "measures": ["Customers.count"],
                "filters": [{"member": "Customers.country", "operator": "contains", "values": ["land"]}],
            },
        )
        assert "\"customers\".country ILIKE '%' || $1 || '%'" in sql
        assert params == ["land"]

    def test_set_filter_needs_no_values(self, artifacts: CompiledArtifactSet) -> None:
        sql, params = build_sql(
            artifacts,
            PostgresQuery,
            {
                "measures": ["Orders.count"],
                "filters": [{"member": "Orders.status", "operator": "set"}],
            },
        )
        assert '("orders".status IS NOT NULL)' in sql
        assert params == []

    def test_filter_without_values_raises(self, artifacts: CompiledArtifactSet) -> None:
        with pytest.raises(QueryValidationError, match="needs values"):
            build_sql(
                artifacts,
                PostgresQuery,
                {
                    "measures": ["Orders.count"],
                    "filters": [{"member": "Orders.status", "operator": "equals"}],
                },
            )

    def test_limit_and_offset(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts, PostgresQuery, {"measures": ["Orders.count"], "limit": 5, "offset": 20}
        )
        assert sql.endswith("LIMIT 5\nOFFSET 20")


class TestTimeDimensions:
    def test_granularity_and_date_range(self, artifacts: CompiledArtifactSet) -> None:
        sql, params = build_sql(
            artifacts,
            PostgresQuery,
            {
                "measures": ["Orders.count"],
                "timeDimensions": [
                    {
                        "dimension": "Orders.created_at",
                        "granularity": "month",
                        "dateRange": ["2024-01-01", "2024-03-31"],
                    }
                ],
            },
        )
        assert "date_trunc('month', \"orders\".created_at) AS \"orders__created_at_month\"" in sql
        assert 'WHERE ("orders".created_at >= $1 AND "orders".created_at <= $2)' in sql
        assert 'ORDER BY "orders__created_at_month" ASC' in sql
        assert params == ["2024-01-01T00:00:00.000", "2024-03-31T23:59:59.999"]
        sqlglot.parse_one(sql, read="postgres")

    def test_timezone_conversion(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts,
            PostgresQuery,
            {
                "measures": ["Orders.count"],
                "timezone": "Europe/Berlin",
                "timeDimensions": [{"dimension": "Orders.created_at", "granularity": "day"}],
            },
        )
        assert "AT TIME ZONE 'Europe/Berlin'" in sql
        sqlglot.parse_one(sql, read="postgres")

    def test_raw_time_dimension_keeps_column(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts,
            PostgresQuery,
            {
                "measures": ["Orders.count"],
                "timezone": "Europe/Berlin",
                "timeDimensions": [{"dimension": "Orders.created_at"}],
            },
        )
        assert '"orders".created_at AS "orders__created_at"' in sql

    def test_raw_time_dimension_converted_when_enabled(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts,
            PostgresQuery,
            {
                "measures": ["Orders.count"],
                "timezone": "Europe/Berlin",
                "timeDimensions": [{"dimension": "Orders.created_at"}],
            },
            QueryOptions(convert_tz_for_raw_time_dimension=True),
        )
        assert "AT TIME ZONE 'Europe/Berlin') AS \"orders__created_at\"" in sql

    def test_non_time_dimension_rejected(self, artifacts: CompiledArtifactSet) -> None:
        with pytest.raises(QueryValidationError, match="not a time dimension"):
            build_sql(
                artifacts,
                PostgresQuery,
                {"measures": ["Orders.count"], "timeDimensions": [{"dimension": "Orders.status"}]},
            )

    def test_clickhouse_truncation(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts,
            ClickHouseQuery,
            {
                "measures": ["Events.unique_users"],
                "timezone": "Asia/Tokyo",
                "timeDimensions": [{"dimension": "Events.timestamp", "granularity": "week"}],
            },
        )
        assert "toMonday(toTimeZone(\"events\".ts, 'Asia/Tokyo'))" in sql
        assert 'uniq("events".user_id)' in sql


class TestValidation:
    def test_unknown_member(self, artifacts: CompiledArtifactSet) -> None:
        with pytest.raises(QueryValidationError, match="Orders.nope"):
            PostgresQuery(artifacts, Query(measures=["Orders.nope"]))

    def test_unknown_cube(self, artifacts: CompiledArtifactSet) -> None:
        with pytest.raises(QueryValidationError, match="Invoices"):
            PostgresQuery(artifacts, Query(measures=["Invoices.count"]))

    def test_dimension_used_as_measure(self, artifacts: CompiledArtifactSet) -> None:
        with pytest.raises(QueryValidationError, match="not a measure"):
            PostgresQuery(artifacts, Query(measures=["Orders.status"]))

    def test_ungrouped_requires_primary_key(self, artifacts: CompiledArtifactSet) -> None:
        with pytest.raises(QueryValidationError, match="primary keys"):
            PostgresQuery(artifacts, Query(dimensions=["Orders.status"], ungrouped=True))

    def test_ungrouped_allowed_without_primary_key(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts,
            PostgresQuery,
            {"dimensions": ["Orders.status"], "ungrouped": True},
            QueryOptions(allow_ungrouped_without_primary_key=True),
        )
        assert "GROUP BY" not in sql

    def test_ungrouped_with_primary_key(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts,
            PostgresQuery,
            {"dimensions": ["Orders.id", "Orders.status"], "measures": ["Orders.total_amount"], "ungrouped": True},
        )
        assert "GROUP BY" not in sql
        assert '"orders".amount AS "orders__total_amount"' in sql

    def test_mixed_data_sources(self, artifacts: CompiledArtifactSet) -> None:
        generator = PostgresQuery(artifacts, Query(measures=["Orders.count", "Events.count"]))
        with pytest.raises(QueryValidationError, match="different data sources"):
            artifacts.compiler.with_query(generator, lambda: generator.data_source)

    def test_order_by_unknown_member(self, artifacts: CompiledArtifactSet) -> None:
        with pytest.raises(QueryValidationError, match="not part of the query"):
            build_sql(
                artifacts,
                PostgresQuery,
                {"measures": ["Orders.count"], "order": {"Orders.total_amount": "desc"}},
            )


class TestDialects:
    @pytest.mark.parametrize(
        ("builder", "expected"),
        [
            (DatabricksQuery, "`orders`.status AS `orders__status`"),
            (SnowflakeQuery, '"orders".status AS "orders__status"'),
            (DremioQuery, '"orders".status AS "orders__status"'),
        ],
    )
    def test_identifier_quoting(
        self, artifacts: CompiledArtifactSet, builder: type[BaseQuery], expected: str
    ) -> None:
        sql, _ = build_sql(artifacts, builder, {"measures": ["Orders.count"], "dimensions": ["Orders.status"]})
        assert expected in sql

    def test_question_mark_placeholders(self, artifacts: CompiledArtifactSet) -> None:
        sql, params = build_sql(
            artifacts,
            SnowflakeQuery,
            {
                "measures": ["Orders.count"],
                "filters": [{"member": "Orders.status", "operator": "equals", "values": ["open"]}],
            },
        )
        assert '("orders".status = ?)' in sql
        assert params == ["open"]
        sqlglot.parse_one(sql, read="snowflake")

    def test_snowflake_approx_count_distinct(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(artifacts, SnowflakeQuery, {"measures": ["Events.unique_users"]})
        assert 'APPROX_COUNT_DISTINCT("events".user_id)' in sql

    def test_databricks_timezone(self, artifacts: CompiledArtifactSet) -> None:
        sql, _ = build_sql(
            artifacts,
            DatabricksQuery,
            {
                "measures": ["Orders.count"],
                "timezone": "UTC+1",
                "timeDimensions": [{"dimension": "Orders.created_at", "granularity": "hour"}],
            },
        )
        assert "date_trunc('hour', from_utc_timestamp(`orders`.created_at, 'UTC+1'))" in sql

    def test_annotated_sql(self, artifacts: CompiledArtifactSet) -> None:
        query = Query(measures=["Orders.count"], dimensions=["Orders.status"])
        generator = PostgresQuery(artifacts, query)
        sql, _ = artifacts.compiler.with_query(
            generator, lambda: generator.build_sql_and_params(export_annotated_sql=True)
        )
        assert sql.startswith("-- orders__status: Orders.status\n-- orders__count: Orders.count\nSELECT")


class TestRefreshKeys:
    def test_parse_interval(self) -> None:
        assert parse_interval("1 hour") == 3600
        assert parse_interval("30 seconds") == 30
        assert parse_interval("2 days") == 172800

    def test_parse_interval_invalid(self) -> None:
        with pytest.raises(QueryValidationError, match="Invalid refresh interval"):
            parse_interval("every so often")

    def test_cache_key_queries_per_cube(self, artifacts: CompiledArtifactSet) -> None:
        generator = PostgresQuery(
            artifacts, Query(measures=["Orders.count"], dimensions=["Customers.country"])
        )
        queries = artifacts.compiler.with_query(generator, generator.cache_key_queries)
        assert queries == [
            ("SELECT FLOOR(EXTRACT(EPOCH FROM CURRENT_TIMESTAMP) / 3600)", []),
            ("SELECT FLOOR(EXTRACT(EPOCH FROM CURRENT_TIMESTAMP) / 10)", []),
        ]

    def test_clickhouse_refresh_key(self, artifacts: CompiledArtifactSet) -> None:
        generator = ClickHouseQuery(artifacts, Query(measures=["Events.count"]))
        queries = artifacts.compiler.with_query(generator, generator.cache_key_queries)
        assert queries == [("SELECT FLOOR(toUnixTimestamp(now()) / 10)", [])]


class TestOrdering:
    def test_default_order_by_first_dimension(self, artifacts: CompiledArtifactSet) -> None:
        generator = PostgresQuery(artifacts, Query(dimensions=["Orders.status"]))
        assert generator.order == [{"id": "Orders.status", "desc": False}]

    def test_declared_order_mapping(self, artifacts: CompiledArtifactSet) -> None:
        query = Query.model_validate(
            {"measures": ["Orders.count"], "dimensions": ["Orders.status"], "order": {"Orders.status": "asc"}}
        )
        generator = PostgresQuery(artifacts, query)
        assert generator.order == [{"id": "Orders.status", "desc": False}]

    def test_alias_name_to_member(self, artifacts: CompiledArtifactSet) -> None:
        generator = PostgresQuery(
            artifacts,
            Query.model_validate(
                {
                    "measures": ["Orders.count"],
                    "dimensions": ["Customers.country"],
                    "timeDimensions": [{"dimension": "Orders.created_at", "granularity": "day"}],
                }
            ),
        )
        assert generator.alias_name_to_member == {
            "customers__country": "Customers.country",
            "orders__created_at_day": "Orders.created_at",
            "orders__count": "Orders.count",
        }
