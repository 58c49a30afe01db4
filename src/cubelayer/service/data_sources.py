"""Best-effort enumeration of reachable data sources."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from cubelayer.models.artifact import DataSourceInfo
from cubelayer.service.dialect_resolver import DialectResolver

logger = logging.getLogger(__name__)


class OrchestratorApi(Protocol):
    async def driver_factory(self, data_source: str) -> Any: ...


@dataclass(frozen=True)
class ProbeFailure:
    """A data source that could not be reached or typed."""

    data_source: str
    error: Exception


async def probe_data_source(
    orchestrator: OrchestratorApi, data_source: str, resolver: DialectResolver
) -> DataSourceInfo | ProbeFailure:
    try:
        await orchestrator.driver_factory(data_source)
        db_type = await resolver.db_type(data_source)
    except Exception as exc:  # noqa: BLE001
        return ProbeFailure(data_source, exc)
    return DataSourceInfo(data_source=data_source, db_type=db_type)


async def list_data_sources(
    orchestrator: OrchestratorApi, data_sources: Iterable[str], resolver: DialectResolver
) -> list[DataSourceInfo]:
    """Probe every distinct data source concurrently and keep the ones that answered."""
    distinct = list(dict.fromkeys(data_sources))
    results = await asyncio.gather(*(probe_data_source(orchestrator, ds, resolver) for ds in distinct))
    available: list[DataSourceInfo] = []
    for result in results:
        if isinstance(result, ProbeFailure):
            logger.warning("Data source '%s' is unavailable: %s", result.data_source, result.error)
            continue
        available.append(result)
    return available
