"""Version fingerprint of the schema a compilation was built from."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import asdict
from typing import Any

from cubelayer.storage.repository import SchemaFile, SchemaFileRepository

DEFAULT_SCHEMA_VERSION = "default_schema_version"

SchemaVersionFn = Callable[[], Awaitable[Any]]


def _version_text(version: Any) -> str:
    if not version:
        return DEFAULT_SCHEMA_VERSION
    if isinstance(version, (dict, list)):
        return json.dumps(version, sort_keys=True, separators=(",", ":"))
    return str(version)


def files_digest(files: Sequence[SchemaFile]) -> str:
    payload = json.dumps([asdict(f) for f in files], separators=(",", ":"))
    return hashlib.md5(payload.encode("utf-8")).hexdigest()  # noqa: S324


def compute_fingerprint(version: Any, files: Sequence[SchemaFile] | None = None) -> str:
    """Fingerprint from an external version value and, for live reload, the file contents.

    Structured versions are serialized with sorted keys, so equal mappings
    give equal fingerprints. ``files`` is only passed in dev mode.
    """
    fingerprint = _version_text(version)
    if files is not None:
        fingerprint += f"_{files_digest(files)}"
    return fingerprint


async def current_fingerprint(
    repository: SchemaFileRepository,
    schema_version: SchemaVersionFn | None = None,
    dev_mode: bool = False,
) -> str:
    version = await schema_version() if schema_version is not None else None
    files = await repository.data_schema_files() if dev_mode else None
    return compute_fingerprint(version, files)
