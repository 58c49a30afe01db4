"""Compiles schema source files into an executable artifact set.

Schema files are YAML documents whose top level is a mapping holding a
``cubes:`` list. String values may reference the compile context through
``{COMPILE_CONTEXT.key}`` placeholders. ``allow_module_imports`` is not acted
on here; it is forwarded to the query context for custom compile functions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from ruamel.yaml.error import YAMLError

from cubelayer.compiler.cache import DEFAULT_MAX_CACHED_QUERIES, CompilerCache
from cubelayer.compiler.context import QueryContext
from cubelayer.compiler.evaluator import CubeEvaluator
from cubelayer.compiler.meta import MetaTransformer
from cubelayer.models.errors import SchemaError
from cubelayer.models.schema import Cube
from cubelayer.parser.loader import SourceMap, TrackedLoader, YAMLSafetyError, YAMLStructureError
from cubelayer.parser.validator import SchemaValidator
from cubelayer.storage.repository import SchemaFile, SchemaFileRepository

YAML_SUFFIXES = (".yml", ".yaml")
_CONTEXT_RE = re.compile(r"\{COMPILE_CONTEXT\.([\w.]+)\}")


class SchemaCompilationError(Exception):
    """Raised when schema files cannot be compiled."""

    def __init__(self, errors: list[SchemaError]) -> None:
        self.errors = errors
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"Schema compilation failed: {details}")


class NativeInstance:
    """Parser shared by every compilation of one orchestrator."""

    def __init__(self) -> None:
        self._loader = TrackedLoader()

    def parse_yaml(
        self, file: SchemaFile, *, allow_duplicate_keys: bool = False
    ) -> tuple[dict[str, Any], SourceMap]:
        return self._loader.load_string(
            file.content, file.file_name, allow_duplicate_keys=allow_duplicate_keys
        )


@dataclass
class CompileOptions:
    allow_module_imports: bool = True
    compile_context: dict[str, Any] = field(default_factory=dict)
    allow_duplicate_props: bool = False
    standalone: bool = False
    native_instance: NativeInstance | None = None
    max_cached_queries: int = DEFAULT_MAX_CACHED_QUERIES


@dataclass(frozen=True)
class CompiledArtifactSet:
    """Immutable result of one compilation."""

    cube_evaluator: CubeEvaluator
    meta_transformer: MetaTransformer
    compiler: QueryContext
    compiler_cache: CompilerCache


def _lookup_context(context: dict[str, Any], dotted: str) -> Any:
    value: Any = context
    for part in dotted.split("."):
        if not isinstance(value, dict) or part not in value:
            raise KeyError(dotted)
        value = value[part]
    return value


def _substitute_context(value: Any, context: dict[str, Any], errors: list[SchemaError], path: str) -> Any:
    """Replace ``{COMPILE_CONTEXT.key}`` placeholders in every string."""
    if isinstance(value, str):

        def _replace(match: re.Match[str]) -> str:
            try:
                return str(_lookup_context(context, match.group(1)))
            except KeyError:
                errors.append(
                    SchemaError(
                        code="UNKNOWN_COMPILE_CONTEXT",
                        message=f"Compile context has no value for '{match.group(1)}'",
                        path=path,
                    )
                )
                return match.group(0)

        return _CONTEXT_RE.sub(_replace, value)
    if isinstance(value, dict):
        return {k: _substitute_context(v, context, errors, f"{path}.{k}") for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_context(v, context, errors, f"{path}[{i}]") for i, v in enumerate(value)]
    return value


class SchemaCompiler:
    """Turns schema files into cubes, collecting every error before failing."""

    def __init__(self, options: CompileOptions) -> None:
        self._options = options
        self._native = options.native_instance or NativeInstance()

    def compile_files(self, files: list[SchemaFile]) -> list[Cube]:
        errors: list[SchemaError] = []
        cubes: list[Cube] = []
        for file in files:
            if not file.file_name.endswith(YAML_SUFFIXES):
                errors.append(
                    SchemaError(
                        code="UNSUPPORTED_SCHEMA_FILE",
                        message="Only .yml and .yaml schema files are supported",
                        path=file.file_name,
                    )
                )
                continue
            raw_cubes, source_map = self._parse_yaml(file, errors)
            for i, raw_cube in enumerate(raw_cubes):
                path = f"cubes[{i}]"
                raw_cube = _substitute_context(raw_cube, self._options.compile_context, errors, path)
                try:
                    cubes.append(Cube.model_validate({**raw_cube, "file_name": file.file_name}))
                except ValidationError as exc:
                    errors.append(
                        SchemaError(
                            code="CUBE_PARSE_ERROR",
                            message=str(exc),
                            path=f"{file.file_name}:{path}",
                            span=source_map.get(path),
                        )
                    )

        validator = SchemaValidator(allow_duplicate_props=self._options.allow_duplicate_props)
        errors.extend(validator.validate(cubes))
        if errors:
            raise SchemaCompilationError(errors)
        return cubes

    def _parse_yaml(
        self, file: SchemaFile, errors: list[SchemaError]
    ) -> tuple[list[dict[str, Any]], SourceMap]:
        try:
            raw, source_map = self._native.parse_yaml(
                file, allow_duplicate_keys=self._options.allow_duplicate_props
            )
        except YAMLSafetyError as exc:
            errors.append(SchemaError(code="YAML_SAFETY_ERROR", message=str(exc), path=file.file_name))
            return [], SourceMap()
        except YAMLStructureError as exc:
            errors.append(SchemaError(code="CUBES_PARSE_ERROR", message=str(exc), path=file.file_name))
            return [], SourceMap()
        except YAMLError as exc:
            errors.append(SchemaError(code="YAML_PARSE_ERROR", message=str(exc), path=file.file_name))
            return [], SourceMap()
        if not raw:
            return [], source_map
        if "cubes" not in raw:
            errors.append(
                SchemaError(
                    code="CUBES_PARSE_ERROR",
                    message="Schema file has no top-level 'cubes' key",
                    path=file.file_name,
                )
            )
            return [], source_map
        return self._cube_list(raw["cubes"], file, errors), source_map

    @staticmethod
    def _cube_list(value: Any, file: SchemaFile, errors: list[SchemaError]) -> list[dict[str, Any]]:
        if not isinstance(value, list) or not all(isinstance(c, dict) for c in value):
            errors.append(
                SchemaError(
                    code="CUBES_PARSE_ERROR",
                    message="'cubes' must be a list of mappings",
                    path=file.file_name,
                )
            )
            return []
        return value


def build_artifact_set(files: list[SchemaFile], options: CompileOptions | None = None) -> CompiledArtifactSet:
    """Compile already-loaded schema files into a fresh artifact set."""
    options = options or CompileOptions()
    cubes = SchemaCompiler(options).compile_files(files)
    evaluator = CubeEvaluator(cubes)
    return CompiledArtifactSet(
        cube_evaluator=evaluator,
        meta_transformer=MetaTransformer(evaluator),
        compiler=QueryContext(
            standalone=options.standalone,
            allow_module_imports=options.allow_module_imports,
            compile_context=dict(options.compile_context),
        ),
        compiler_cache=CompilerCache(options.max_cached_queries),
    )


async def compile_schema(
    repository: SchemaFileRepository, options: CompileOptions | None = None
) -> CompiledArtifactSet:
    """Compile every schema file of ``repository`` into a fresh artifact set."""
    return build_artifact_set(await repository.data_schema_files(), options)
