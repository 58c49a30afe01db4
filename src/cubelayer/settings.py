"""Shared settings loaded from environment / .env file."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for a cubelayer orchestrator.

    Values are read from environment variables prefixed with ``CUBELAYER_``
    and from a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="CUBELAYER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Shared
    log_level: str = "INFO"

    # Schema
    schema_path: str = "model"
    schema_version: str | None = None
    dev_mode: bool = False  # fingerprint schema file contents for live reload

    # Compilation
    allow_module_imports: bool = True
    allow_duplicate_props: bool = False
    standalone: bool = False

    # SQL generation
    sql_cache: bool = True
    max_cached_queries: int = 10_000
    pre_aggregations_schema: str = "prod_pre_aggregations"
    allow_ungrouped_without_primary_key: bool = False
    convert_tz_for_raw_time_dimension: bool = False

    # Data sources
    default_db_type: str = "postgres"
    data_source_db_types: dict[str, str] = {}  # JSON, e.g. {"clickhouse": "clickhouse"}
    external_db_type: str | None = None

    # Apps
    app_ttl_seconds: int = 1800  # 30 min inactivity
