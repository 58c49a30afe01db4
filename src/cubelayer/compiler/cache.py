"""Per-compilation cache scope for SQL generation and collaborator sub-computations.

Key equality rules (``canonical_cache_key``):

* the query is dumped in JSON mode by field name, with every field in
  ``CACHE_KEY_EXCLUDED_FIELDS`` (the request id) removed;
* mappings are serialized with sorted keys, so key order never matters;
* list order is kept, since member order changes the generated SQL;
* options default to ``SqlOptions()`` so ``None`` and default options share
  a key.
"""

from __future__ import annotations

import json
from collections import OrderedDict
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel

from cubelayer.models.query import CACHE_KEY_EXCLUDED_FIELDS, Query, SqlOptions

T = TypeVar("T")

DEFAULT_MAX_CACHED_QUERIES = 10_000


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def canonical_json(value: Any) -> str:
    """Stable JSON text for any JSON-like value or pydantic model."""
    return json.dumps(_plain(value), sort_keys=True, separators=(",", ":"), default=str)


def canonical_cache_key(query: Query, options: SqlOptions | None = None) -> str:
    payload = {
        "query": query.model_dump(mode="json", exclude=set(CACHE_KEY_EXCLUDED_FIELDS)),
        "options": (options or SqlOptions()).model_dump(mode="json"),
    }
    return canonical_json(payload)


class QueryCache:
    """Values memoized for one cache key, addressed by a path."""

    def __init__(self) -> None:
        self._values: dict[tuple[str, ...], Any] = {}

    def cache(self, path: Sequence[str], fn: Callable[[], T]) -> T:
        key = tuple(path)
        if key in self._values:
            return self._values[key]
        value = fn()
        self._values[key] = value
        return value

    def __contains__(self, path: Sequence[str]) -> bool:
        return tuple(path) in self._values


class CompilerCache:
    """LRU of ``QueryCache`` scopes, owned by exactly one compiled artifact set."""

    def __init__(self, max_queries: int = DEFAULT_MAX_CACHED_QUERIES) -> None:
        self._max_queries = max_queries
        self._queries: OrderedDict[str, QueryCache] = OrderedDict()

    def get_query_cache(self, key: Any) -> QueryCache:
        text = key if isinstance(key, str) else canonical_json(key)
        query_cache = self._queries.get(text)
        if query_cache is None:
            query_cache = QueryCache()
            self._queries[text] = query_cache
            while len(self._queries) > self._max_queries:
                self._queries.popitem(last=False)
        else:
            self._queries.move_to_end(text)
        return query_cache

    def __len__(self) -> int:
        return len(self._queries)
