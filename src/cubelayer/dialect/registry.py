"""Query builder registry: database type → ``BaseQuery`` subclass."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cubelayer.dialect.errors import UnsupportedDatabaseError

if TYPE_CHECKING:
    from cubelayer.dialect.base import BaseQuery


class QueryClassRegistry:
    """Builders register themselves at import time via the class decorator."""

    _classes: dict[str, type[BaseQuery]] = {}

    @classmethod
    def register(cls, query_class: type[BaseQuery]) -> type[BaseQuery]:
        """Register a query builder under its ``db_type``. Usable as a decorator."""
        cls._classes[query_class.db_type] = query_class
        return query_class

    @classmethod
    def get(cls, db_type: str) -> type[BaseQuery]:
        if db_type not in cls._classes:
            raise UnsupportedDatabaseError(db_type, available=cls.available())
        return cls._classes[db_type]

    @classmethod
    def lookup(cls, db_type: str) -> type[BaseQuery] | None:
        return cls._classes.get(db_type)

    @classmethod
    def available(cls) -> list[str]:
        return sorted(cls._classes.keys())


def query_class(db_type: str, dialect_class: type[BaseQuery] | None = None) -> type[BaseQuery] | None:
    """Pick the builder for a (database type, dialect override) pair.

    An override always wins; otherwise the registered builder for
    ``db_type`` is used, or ``None`` when there is none.
    """
    if dialect_class is not None:
        return dialect_class
    return QueryClassRegistry.lookup(db_type)
