"""cubelayer: schema compilation orchestration and SQL generation caching."""

__version__ = "0.4.0"
