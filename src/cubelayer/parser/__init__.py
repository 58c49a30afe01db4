"""Schema parsing with line fidelity."""

from cubelayer.parser.loader import SourceMap, TrackedLoader, YAMLSafetyError, YAMLStructureError
from cubelayer.parser.validator import SchemaValidator

__all__ = [
    "SchemaValidator",
    "SourceMap",
    "TrackedLoader",
    "YAMLSafetyError",
    "YAMLStructureError",
]
