"""Structured schema error models with YAML source position tracking."""

from __future__ import annotations

from pydantic import BaseModel


class SourceSpan(BaseModel):
    """Points to exact location in a schema file for error reporting."""

    file: str
    line: int
    column: int


class SchemaError(BaseModel):
    """A structured schema error with optional source position."""

    code: str
    message: str
    path: str | None = None
    span: SourceSpan | None = None

    def __str__(self) -> str:
        where = ""
        if self.span is not None:
            where = f" ({self.span.file}:{self.span.line}:{self.span.column})"
        elif self.path:
            where = f" ({self.path})"
        return f"{self.code}: {self.message}{where}"
