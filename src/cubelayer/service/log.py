"""Structured event logging for the orchestration layer."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger("cubelayer.compiler")

LogFn = Callable[[str, dict[str, Any]], None]


def log_event(message: str, metadata: dict[str, Any]) -> None:
    """Default ``LogFn``: events carrying an ``error`` go out at ERROR level."""
    level = logging.ERROR if "error" in metadata else logging.INFO
    details = " ".join(f"{k}={v}" for k, v in metadata.items() if v is not None)
    logger.log(level, "%s %s", message, details, extra={"event": message, "metadata": metadata})
