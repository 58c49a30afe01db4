"""Shared test fixtures for cubelayer."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from cubelayer.compiler.schema_compiler import (
    CompiledArtifactSet,
    CompileOptions,
    build_artifact_set,
    compile_schema,
)
from cubelayer.dialect.base import BaseQuery, QueryOptions
from cubelayer.models.query import Query
from cubelayer.parser.loader import TrackedLoader
from cubelayer.service import compiler_api as compiler_api_module
from cubelayer.service.compiler_api import CompilerApi
from cubelayer.storage.repository import InMemorySchemaRepository, SchemaFile, SchemaFileRepository


ORDERS_YAML = """\
cubes:
  - name: Orders
    sql_table: public.orders
    refresh_key:
      every: 1 hour
    joins:
      - name: Customers
        sql: "{CUBE}.customer_id = {Customers}.id"
        relationship: many_to_one
    measures:
      - name: count
        type: count
      - name: total_amount
        type: sum
        sql: amount
      - name: average_amount
        type: avg
        sql: amount
      - name: amount_per_order
        type: number
        sql: "{Orders.total_amount} / NULLIF({Orders.count}, 0)"
    dimensions:
      - name: id
        type: number
        sql: id
        primary_key: true
      - name: status
        type: string
        sql: status
      - name: created_at
        type: time
        sql: created_at
    segments:
      - name: completed
        sql: "{CUBE}.status = 'completed'"
    pre_aggregations:
      - name: amount_by_status
        measures: [total_amount, count]
        dimensions: [status]
        time_dimension: created_at
        granularity: day
        scheduled_refresh: true
      - name: orders_snapshot
        type: original_sql
"""

CUSTOMERS_YAML = """\
cubes:
  - name: Customers
    sql_table: public.customers
    measures:
      - name: count
        type: count
    dimensions:
      - name: id
        type: number
        sql: id
        primary_key: true
      - name: country
        type: string
        sql: country
      - name: internal_score
        type: number
        sql: score
        public: false
"""

EVENTS_YAML = """\
cubes:
  - name: Events
    sql_table: analytics.events
    data_source: clickhouse
    measures:
      - name: count
        type: count
      - name: unique_users
        type: count_distinct_approx
        sql: user_id
    dimensions:
      - name: id
        type: number
        sql: id
        primary_key: true
      - name: event_type
        type: string
        sql: event_type
      - name: timestamp
        type: time
        sql: ts
    pre_aggregations:
      - name: daily
        measures: [count]
        time_dimension: timestamp
        granularity: day
        external: true
"""

SHOP_SCHEMA = {
    "customers.yml": CUSTOMERS_YAML,
    "events.yml": EVENTS_YAML,
    "orders.yml": ORDERS_YAML,
}

DB_TYPES = {"default": "postgres", "clickhouse": "clickhouse"}


class RecordingLogger:
    """``LogFn`` that keeps every event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, message: str, metadata: dict[str, Any]) -> None:
        self.events.append((message, dict(metadata)))

    @property
    def messages(self) -> list[str]:
        return [message for message, _ in self.events]


class StaticDbTypes:
    """Database-type resolver backed by a mutable mapping; unknown sources fail."""

    def __init__(self, db_types: dict[str, str] | None = None) -> None:
        self.db_types = dict(DB_TYPES if db_types is None else db_types)
        self.calls: list[str] = []

    async def __call__(self, data_source: str) -> str:
        self.calls.append(data_source)
        await asyncio.sleep(0)
        return self.db_types[data_source]


class CountingCompile:
    """``compile_fn`` wrapper that counts external compile invocations."""

    def __init__(self, fail: Exception | None = None) -> None:
        self.calls = 0
        self.fail = fail

    async def __call__(
        self, repository: SchemaFileRepository, options: CompileOptions
    ) -> CompiledArtifactSet:
        self.calls += 1
        await asyncio.sleep(0)
        if self.fail is not None:
            raise self.fail
        return await compile_schema(repository, options)


class FakeOrchestrator:
    """Connection factory whose probes fail for the configured data sources."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.acquired: list[str] = []

    async def driver_factory(self, data_source: str) -> object:
        await asyncio.sleep(0)
        if data_source in self.failing:
            raise ConnectionError(f"cannot connect to {data_source}")
        self.acquired.append(data_source)
        return object()


def shop_files(**overrides: str) -> list[SchemaFile]:
    files = {**SHOP_SCHEMA, **overrides}
    return [SchemaFile(file_name=name, content=files[name]) for name in sorted(files)]


def build_sql(
    artifacts: CompiledArtifactSet,
    query_class: type[BaseQuery],
    query: Query | dict[str, Any],
    options: QueryOptions | None = None,
) -> tuple[str, list[Any]]:
    """Generate ``(sql, params)`` for ``query`` inside the compiler context."""
    if isinstance(query, dict):
        query = Query.model_validate(query)
    generator = query_class(artifacts, query, options)
    return artifacts.compiler.with_query(generator, generator.build_sql_and_params)


@pytest.fixture
def loader() -> TrackedLoader:
    return TrackedLoader()


@pytest.fixture
def artifacts() -> CompiledArtifactSet:
    """Shop schema compiled with default options."""
    return build_artifact_set(shop_files())


@pytest.fixture
def repository() -> InMemorySchemaRepository:
    return InMemorySchemaRepository(SHOP_SCHEMA)


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def db_types() -> StaticDbTypes:
    return StaticDbTypes()


@pytest.fixture
def counting_compile() -> CountingCompile:
    return CountingCompile()


@pytest.fixture
def compiler_api(
    repository: InMemorySchemaRepository,
    db_types: StaticDbTypes,
    recording_logger: RecordingLogger,
    counting_compile: CountingCompile,
) -> CompilerApi:
    return CompilerApi(
        repository,
        db_types,
        logger=recording_logger,
        compile_fn=counting_compile,
        dev_mode=True,
    )


class CountingSqlBuilds:
    """Counts SQL artifacts actually built, as opposed to served from cache."""

    def __init__(self) -> None:
        self.calls = 0


@pytest.fixture
def sql_builds(monkeypatch: pytest.MonkeyPatch) -> CountingSqlBuilds:
    counter = CountingSqlBuilds()
    original = compiler_api_module.build_sql_artifact

    def _counting(*args: Any, **kwargs: Any) -> Any:
        counter.calls += 1
        return original(*args, **kwargs)

    monkeypatch.setattr(compiler_api_module, "build_sql_artifact", _counting)
    return counter
