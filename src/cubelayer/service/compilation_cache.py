"""Holds the most recently compiled artifact set and its fingerprint.

A compilation is started when the current fingerprint differs from the
committed one. Concurrent callers that see the same stale fingerprint share
one in-flight compilation. The artifact set and its query factory are
committed together, only after both were built; a compilation that finishes
after a later-started one never overwrites it.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from cubelayer.compiler.schema_compiler import CompiledArtifactSet
from cubelayer.dialect.factory import QueryFactory
from cubelayer.service.log import LogFn, log_event


@dataclass(frozen=True)
class CompiledState:
    fingerprint: str
    artifacts: CompiledArtifactSet
    query_factory: QueryFactory
    sequence: int


class CompilationCache:
    def __init__(
        self,
        fingerprint_fn: Callable[[], Awaitable[str]],
        compile_fn: Callable[[], Awaitable[CompiledArtifactSet]],
        build_factory: Callable[[CompiledArtifactSet], Awaitable[QueryFactory]],
        logger: LogFn = log_event,
    ) -> None:
        self._fingerprint_fn = fingerprint_fn
        self._compile_fn = compile_fn
        self._build_factory = build_factory
        self._logger = logger
        self._state: CompiledState | None = None
        self._in_flight: dict[str, asyncio.Task[CompiledState]] = {}
        self._sequence = 0
        self._floor = 0

    @property
    def state(self) -> CompiledState | None:
        return self._state

    async def get(self, request_id: str | None = None) -> CompiledState:
        fingerprint = await self._fingerprint_fn()
        state = self._state
        if state is not None and state.fingerprint == fingerprint:
            return state

        task = self._in_flight.get(fingerprint)
        if task is None:
            self._sequence += 1
            task = asyncio.ensure_future(
                self._compile(fingerprint, self._sequence, request_id, recompiling=state is not None)
            )
            self._in_flight[fingerprint] = task
            task.add_done_callback(lambda t: self._forget(fingerprint, t))
        return await asyncio.shield(task)

    def _forget(self, fingerprint: str, task: asyncio.Task[CompiledState]) -> None:
        if self._in_flight.get(fingerprint) is task:
            del self._in_flight[fingerprint]

    async def _compile(
        self, fingerprint: str, sequence: int, request_id: str | None, recompiling: bool
    ) -> CompiledState:
        started = time.monotonic()
        self._logger(
            "Recompiling schema" if recompiling else "Compiling schema",
            {"version": fingerprint, "request_id": request_id},
        )
        try:
            artifacts = await self._compile_fn()
            query_factory = await self._build_factory(artifacts)
        except Exception as exc:
            self._logger(
                "Compiling schema error",
                {
                    "version": fingerprint,
                    "request_id": request_id,
                    "duration": _elapsed_ms(started),
                    "error": f"{type(exc).__name__}: {exc}",
                },
            )
            raise

        state = CompiledState(fingerprint, artifacts, query_factory, sequence)
        if sequence > self._floor and (self._state is None or self._state.sequence < sequence):
            self._state = state
        self._logger(
            "Compiling schema completed",
            {"version": fingerprint, "request_id": request_id, "duration": _elapsed_ms(started)},
        )
        return state

    def reset(self) -> None:
        """Drop the committed state. Compilations still running will not commit."""
        self._state = None
        self._in_flight.clear()
        self._floor = self._sequence


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
