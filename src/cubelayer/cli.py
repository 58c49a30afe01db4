"""Command-line entry point: inspect a schema directory and generate SQL.

Run via::

    cubelayer meta                      # public cubes of CUBELAYER_SCHEMA_PATH
    cubelayer sql query.json            # SQL artifact for a query (JSON or YAML)
    cubelayer data-sources              # data sources and their database types
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

from cubelayer import __version__
from cubelayer.models.query import Query, SqlOptions
from cubelayer.service.compiler_api import CompilerApi
from cubelayer.settings import Settings

logger = logging.getLogger("cubelayer.cli")


class ConfiguredDataSources:
    """Stands in for a connection pool: data sources known to the settings are reachable."""

    def __init__(self, settings: Settings) -> None:
        self._known = {"default", *settings.data_source_db_types}

    async def driver_factory(self, data_source: str) -> str:
        if data_source not in self._known:
            raise LookupError(f"No connection configured for data source '{data_source}'")
        return data_source


def _to_json(value: Any) -> str:
    def _plain(v: Any) -> Any:
        if dataclasses.is_dataclass(v) and not isinstance(v, type):
            return dataclasses.asdict(v)
        if hasattr(v, "model_dump"):
            return v.model_dump(mode="json", exclude_none=True)
        return str(v)

    return json.dumps(value, default=_plain, indent=2)


def _read_query(path: Path) -> Query:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yml", ".yaml"):
        data = YAML(typ="safe").load(text)
    else:
        data = json.loads(text)
    return Query.model_validate(data)


async def _run(args: argparse.Namespace, settings: Settings) -> Any:
    api = CompilerApi.from_settings(settings)
    if args.command == "meta":
        return await api.meta_config()
    if args.command == "sql":
        options = SqlOptions(include_debug_info=args.debug, export_annotated_sql=args.annotate)
        return await api.get_sql(_read_query(Path(args.query)), options)
    return await api.list_data_sources(ConfiguredDataSources(settings))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="cubelayer", description="Schema compilation and SQL generation")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--schema-path", help="Schema directory (overrides CUBELAYER_SCHEMA_PATH)")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("meta", help="Print the public cubes and members")
    sql_parser = subparsers.add_parser("sql", help="Generate the SQL artifact for a query file")
    sql_parser.add_argument("query", help="Query file (.json, .yml or .yaml)")
    sql_parser.add_argument("--debug", action="store_true", help="Include rollup match diagnostics")
    sql_parser.add_argument("--annotate", action="store_true", help="Prefix the SQL with alias annotations")
    subparsers.add_parser("data-sources", help="List reachable data sources")

    args = parser.parse_args(argv)
    settings = Settings()
    if args.schema_path:
        settings = settings.model_copy(update={"schema_path": args.schema_path})

    logging.basicConfig(level=settings.log_level.upper())
    logger.debug("cubelayer v%s (schema_path=%s)", __version__, settings.schema_path)

    try:
        result = asyncio.run(_run(args, settings))
    except Exception as exc:  # noqa: BLE001
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(_to_json(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
