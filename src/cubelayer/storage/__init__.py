"""Schema file storage."""

from cubelayer.storage.repository import (
    FileSchemaRepository,
    InMemorySchemaRepository,
    SchemaFile,
    SchemaFileRepository,
)

__all__ = [
    "FileSchemaRepository",
    "InMemorySchemaRepository",
    "SchemaFile",
    "SchemaFileRepository",
]
