"""YAML schema loader with position tracking for rich error reporting."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap, CommentedSeq

from cubelayer.models.errors import SourceSpan

# ---------------------------------------------------------------------------
# Safety limits
# ---------------------------------------------------------------------------

_MAX_DOCUMENT_SIZE = 5_000_000  # 5M characters
_MAX_NODE_COUNT = 50_000
_MAX_DEPTH = 20

# Anchor definitions (&name) at line start or after whitespace/sequence
# indicators. Good-enough heuristic: does not look inside quoted strings.
_ANCHOR_RE = re.compile(r"(?:^|[\s\-:])&(\w+)", re.MULTILINE)


class YAMLSafetyError(Exception):
    """Raised when YAML input violates safety constraints.

    Distinct from parse errors: these indicate potentially malicious input
    (billion-laughs anchors, oversized or deeply nested documents).
    """


class YAMLStructureError(Exception):
    """Raised when a YAML document parses but its top level is not a mapping."""


@dataclass
class SourceMap:
    """Maps key paths such as ``cubes[0].measures[2]`` to source positions."""

    _positions: dict[str, SourceSpan] = field(default_factory=dict)

    def add(self, path: str, span: SourceSpan) -> None:
        self._positions[path] = span

    def get(self, path: str) -> SourceSpan | None:
        return self._positions.get(path)


class TrackedLoader:
    """YAML loader that tracks source positions of every mapping key and list item.

    Uses ruamel.yaml round-trip mode which keeps line/column info on parsed
    nodes. One instance is reused across compilations.
    """

    def __init__(self) -> None:
        self._yaml = YAML()
        self._yaml.preserve_quotes = True

    @staticmethod
    def _check_yaml_safety(content: str) -> None:
        if len(content) > _MAX_DOCUMENT_SIZE:
            raise YAMLSafetyError(
                f"YAML document exceeds maximum size "
                f"({len(content):,} chars > {_MAX_DOCUMENT_SIZE:,} limit)"
            )
        if _ANCHOR_RE.search(content):
            raise YAMLSafetyError("YAML anchors/aliases are not supported in schema files")

    @staticmethod
    def _check_node_limits(
        data: Any, limit: int = _MAX_NODE_COUNT, max_depth: int = _MAX_DEPTH
    ) -> None:
        count = 0
        stack: list[tuple[Any, int]] = [(data, 0)]
        while stack:
            node, depth = stack.pop()
            count += 1
            if count > limit:
                raise YAMLSafetyError(f"YAML document exceeds maximum node count ({limit:,})")
            if depth > max_depth:
                raise YAMLSafetyError(f"YAML document exceeds maximum nesting depth ({max_depth})")
            if isinstance(node, dict):
                stack.extend((child, depth + 1) for child in node.values())
            elif isinstance(node, list):
                stack.extend((child, depth + 1) for child in node)

    def load_string(
        self,
        content: str,
        filename: str = "<string>",
        *,
        allow_duplicate_keys: bool = False,
    ) -> tuple[dict[str, Any], SourceMap]:
        """Parse YAML text into a plain dict plus its source map.

        Duplicate mapping keys raise ``ruamel.yaml`` errors unless
        ``allow_duplicate_keys`` is set. A top level other than a mapping
        raises :class:`YAMLStructureError`.
        """
        self._check_yaml_safety(content)
        self._yaml.allow_duplicate_keys = allow_duplicate_keys
        # the constructor caches the flag on first use
        self._yaml.constructor.allow_duplicate_keys = allow_duplicate_keys
        data = self._yaml.load(content)
        if data is None:
            return {}, SourceMap()
        if not isinstance(data, dict):
            raise YAMLStructureError(
                f"{filename}: top level must be a mapping, got {type(data).__name__}"
            )
        self._check_node_limits(data)
        source_map = SourceMap()
        self._extract_positions(data, filename, "", source_map)
        return self._to_plain_dict(data), source_map

    def _extract_positions(
        self,
        data: Any,
        filename: str,
        prefix: str,
        source_map: SourceMap,
    ) -> None:
        if isinstance(data, CommentedMap):
            for key in data:
                key_path = f"{prefix}.{key}" if prefix else str(key)
                try:
                    line, col = data.lc.key(key)
                    source_map.add(key_path, SourceSpan(file=filename, line=line + 1, column=col + 1))
                except (AttributeError, KeyError, TypeError):
                    pass
                self._extract_positions(data[key], filename, key_path, source_map)
        elif isinstance(data, CommentedSeq):
            for i, item in enumerate(data):
                item_path = f"{prefix}[{i}]"
                try:
                    line, col = data.lc.item(i)
                    source_map.add(item_path, SourceSpan(file=filename, line=line + 1, column=col + 1))
                except (AttributeError, KeyError, TypeError):
                    pass
                self._extract_positions(item, filename, item_path, source_map)

    def _to_plain_dict(self, data: dict[Any, Any]) -> dict[str, Any]:
        return {str(k): self._to_plain_value(v) for k, v in data.items()}

    def _to_plain_value(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {str(k): self._to_plain_value(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self._to_plain_value(item) for item in data]
        if isinstance(data, str):
            # ruamel wraps quoted scalars in str subclasses
            return str(data)
        return data
