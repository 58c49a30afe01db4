"""App registry: TTL-scoped ``CompilerApi`` instances for multi-tenant use."""

from __future__ import annotations

import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from cubelayer.service.compiler_api import CompilerApi
from cubelayer.settings import Settings
from cubelayer.storage.repository import FileSchemaRepository

_APP_ID_RE = re.compile(r"[A-Za-z0-9_-]+")


class AppNotFoundError(KeyError):
    """Raised when an app ID is not registered or has expired."""


@dataclass
class AppInfo:
    """Public app metadata (returned by list/get)."""

    app_id: str
    created_at: datetime
    last_accessed_at: datetime
    fingerprint: str | None


@dataclass
class _App:
    app_id: str
    api: CompilerApi
    last_accessed: float  # monotonic clock for TTL checks
    created_at_wall: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_accessed_wall: datetime = field(default_factory=lambda: datetime.now(UTC))


class AppRegistry:
    """Creates one ``CompilerApi`` per app ID on first use and disposes idle ones.

    Expiry is checked lazily on access and by :meth:`purge_expired`.

    The registry is synchronous and guarded by a ``threading.Lock`` so that a
    hosting server may call it from worker threads as well as from the event
    loop. The lock is never held across an ``await`` or while an app is
    disposed.
    """

    def __init__(self, factory: Callable[[str], CompilerApi], ttl_seconds: int = 1800) -> None:
        self._factory = factory
        self._ttl = ttl_seconds
        self._lock = threading.Lock()
        self._apps: dict[str, _App] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, factory: Callable[[str], CompilerApi] | None = None
    ) -> AppRegistry:
        """Registry whose apps read their schema from ``schema_path/<app_id>``.

        App IDs are restricted to letters, digits, ``_`` and ``-`` so they
        always name a direct child of ``schema_path``.
        """

        def _default_factory(app_id: str) -> CompilerApi:
            if not _APP_ID_RE.fullmatch(app_id):
                raise AppNotFoundError(f"Invalid app id '{app_id}'")
            repository = FileSchemaRepository(Path(settings.schema_path) / app_id)
            return CompilerApi.from_settings(settings, repository)

        return cls(factory or _default_factory, ttl_seconds=settings.app_ttl_seconds)

    def get(self, app_id: str) -> CompilerApi:
        """Return the app's orchestrator, creating it if missing or expired."""
        now_mono = time.monotonic()
        stale: _App | None = None
        with self._lock:
            app = self._apps.get(app_id)
            if app is not None and now_mono - app.last_accessed > self._ttl:
                stale, app = app, None
            if app is None:
                app = _App(app_id=app_id, api=self._factory(app_id), last_accessed=now_mono)
                self._apps[app_id] = app
            app.last_accessed = now_mono
            app.last_accessed_wall = datetime.now(UTC)
            api = app.api
        if stale is not None:
            stale.api.dispose()
        return api

    def info(self, app_id: str) -> AppInfo:
        now_mono = time.monotonic()
        with self._lock:
            app = self._apps.get(app_id)
            if app is None or now_mono - app.last_accessed > self._ttl:
                raise AppNotFoundError(f"App '{app_id}' not found")
            return self._app_info(app)

    def remove(self, app_id: str) -> None:
        with self._lock:
            app = self._apps.pop(app_id, None)
        if app is None:
            raise AppNotFoundError(f"App '{app_id}' not found")
        app.api.dispose()

    def list_apps(self) -> list[AppInfo]:
        """Info for all non-expired apps."""
        now_mono = time.monotonic()
        with self._lock:
            return [
                self._app_info(app)
                for app in self._apps.values()
                if now_mono - app.last_accessed <= self._ttl
            ]

    def purge_expired(self) -> list[str]:
        """Dispose and drop expired apps; returns their IDs."""
        now_mono = time.monotonic()
        with self._lock:
            expired = [app_id for app_id, a in self._apps.items() if now_mono - a.last_accessed > self._ttl]
            apps = [self._apps.pop(app_id) for app_id in expired]
        for app in apps:
            app.api.dispose()
        return expired

    @property
    def active_count(self) -> int:
        now_mono = time.monotonic()
        with self._lock:
            return sum(1 for a in self._apps.values() if now_mono - a.last_accessed <= self._ttl)

    @staticmethod
    def _app_info(app: _App) -> AppInfo:
        return AppInfo(
            app_id=app.app_id,
            created_at=app.created_at_wall,
            last_accessed_at=app.last_accessed_wall,
            fingerprint=app.api.fingerprint,
        )
