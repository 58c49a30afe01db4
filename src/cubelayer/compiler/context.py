"""Execution context for query generators.

Member SQL of a compiled schema is rendered relative to the generator that
is currently building a query. ``QueryContext.with_query`` installs that
generator for the duration of a call; ``current_query`` reads it back.
"""

from __future__ import annotations

from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, TypeVar

T = TypeVar("T")

_current_query: ContextVar[Any | None] = ContextVar("cubelayer_current_query", default=None)


def current_query() -> Any:
    """Return the generator installed by ``with_query``."""
    query = _current_query.get()
    if query is None:
        raise RuntimeError("Member SQL can only be evaluated inside QueryContext.with_query()")
    return query


@dataclass(frozen=True)
class QueryContext:
    """Compiler handle of one compilation, carrying the options it was built with."""

    standalone: bool = False
    allow_module_imports: bool = True
    compile_context: dict[str, Any] = field(default_factory=dict)

    def with_query(self, query: Any, fn: Callable[[], T]) -> T:
        token = _current_query.set(query)
        try:
            return fn()
        finally:
            _current_query.reset(token)
