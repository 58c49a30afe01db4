"""Schema file repositories: where raw schema source comes from."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

SCHEMA_SUFFIXES = (".yml", ".yaml")


@dataclass(frozen=True)
class SchemaFile:
    file_name: str
    content: str


class SchemaFileRepository(ABC):
    @abstractmethod
    async def data_schema_files(self) -> list[SchemaFile]:
        """Return every schema file, ordered by file name."""


class FileSchemaRepository(SchemaFileRepository):
    """Reads ``*.yml`` and ``*.yaml`` files below a directory.

    The walk and the reads run in a worker thread so the event loop keeps
    serving other requests while a large schema directory is read.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)

    async def data_schema_files(self) -> list[SchemaFile]:
        return await asyncio.to_thread(self._read_files)

    def _read_files(self) -> list[SchemaFile]:
        if not self._root.is_dir():
            raise FileNotFoundError(f"Schema directory '{self._root}' does not exist")
        files: list[SchemaFile] = []
        for path in sorted(self._root.rglob("*")):
            if path.is_file() and path.suffix in SCHEMA_SUFFIXES:
                files.append(
                    SchemaFile(
                        file_name=path.relative_to(self._root).as_posix(),
                        content=path.read_text(encoding="utf-8"),
                    )
                )
        return files


class InMemorySchemaRepository(SchemaFileRepository):
    """Schema files held in memory, keyed by file name."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self._files: dict[str, str] = dict(files or {})

    def set_file(self, file_name: str, content: str) -> None:
        self._files[file_name] = content

    def remove_file(self, file_name: str) -> None:
        try:
            del self._files[file_name]
        except KeyError:
            raise KeyError(f"No schema file named '{file_name}'") from None

    async def data_schema_files(self) -> list[SchemaFile]:
        return [SchemaFile(file_name=name, content=self._files[name]) for name in sorted(self._files)]
