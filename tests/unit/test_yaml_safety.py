"""Tests for YAML parsing DoS safeguards in TrackedLoader."""

from __future__ import annotations

import pytest

from cubelayer.compiler.schema_compiler import SchemaCompilationError, build_artifact_set
from cubelayer.parser.loader import (
    _MAX_DOCUMENT_SIZE,
    TrackedLoader,
    YAMLSafetyError,
    YAMLStructureError,
)
from cubelayer.storage.repository import SchemaFile
from tests.conftest import ORDERS_YAML


class TestAnchorRejection:
    """Schema files never need YAML anchors/aliases, so they are rejected."""

    def test_billion_laughs_rejected(self, loader: TrackedLoader) -> None:
        yaml = (
            "a: &a ['lol','lol','lol','lol','lol']\n"
            "b: &b [*a,*a,*a,*a,*a]\n"
            "c: &c [*b,*b,*b,*b,*b]\n"
            "d: &d [*c,*c,*c,*c,*c]\n"
        )
        with pytest.raises(YAMLSafetyError, match="anchors/aliases"):
            loader.load_string(yaml)

    def test_merge_key_anchor_rejected(self, loader: TrackedLoader) -> None:
        yaml = "defaults: &defaults\n  type: count\nmeasure:\n  <<: *defaults\n"
        with pytest.raises(YAMLSafetyError, match="anchors/aliases"):
            loader.load_string(yaml)

    def test_anchor_in_sequence(self, loader: TrackedLoader) -> None:
        yaml = "items:\n  - &item1 foo\n  - *item1\n"
        with pytest.raises(YAMLSafetyError, match="anchors/aliases"):
            loader.load_string(yaml)

    def test_ampersand_in_comment_not_rejected(self, loader: TrackedLoader) -> None:
        yaml = "# see R&D notes\n# &anchor_looking_thing\nkey: value\n"
        raw, _ = loader.load_string(yaml)
        assert raw["key"] == "value"


class TestDocumentSize:
    def test_oversized_document_rejected(self, loader: TrackedLoader) -> None:
        yaml = "key: " + "x" * (_MAX_DOCUMENT_SIZE + 1) + "\n"
        with pytest.raises(YAMLSafetyError, match="maximum size"):
            loader.load_string(yaml)

    def test_small_document_passes(self, loader: TrackedLoader) -> None:
        raw, _ = loader.load_string("key: value\n")
        assert raw["key"] == "value"


class TestNodeCount:
    def test_excessive_node_count_rejected(self, loader: TrackedLoader) -> None:
        yaml = "\n".join(f"k{i}: v{i}" for i in range(50_001))
        with pytest.raises(YAMLSafetyError, match="node count"):
            loader.load_string(yaml)


def _nested(levels: int) -> str:
    return "key: " + "[" * levels + "]" * levels + "\n"


class TestNestingDepth:
    def test_deep_nesting_rejected(self, loader: TrackedLoader) -> None:
        with pytest.raises(YAMLSafetyError, match="nesting depth"):
            loader.load_string(_nested(25))

    def test_moderate_nesting_passes(self, loader: TrackedLoader) -> None:
        raw, _ = loader.load_string(_nested(15))
        assert isinstance(raw["key"], list)


class TestTopLevelShape:
    @pytest.mark.parametrize("yaml", ["- a\n- b\n", "plain text\n", "42\n"])
    def test_non_mapping_rejected(self, loader: TrackedLoader, yaml: str) -> None:
        with pytest.raises(YAMLStructureError, match="top level must be a mapping"):
            loader.load_string(yaml, "schema.yml")


class TestValidSchema:
    def test_cube_schema_passes(self, loader: TrackedLoader) -> None:
        raw, source_map = loader.load_string(ORDERS_YAML, "orders.yml")
        assert raw["cubes"][0]["name"] == "Orders"
        span = source_map.get("cubes[0].measures[1].name")
        assert span is not None
        assert (span.file, span.line) == ("orders.yml", 13)

    def test_empty_document_passes(self, loader: TrackedLoader) -> None:
        raw, _ = loader.load_string("")
        assert raw == {}

    def test_quoted_scalars_are_plain_strings(self, loader: TrackedLoader) -> None:
        raw, _ = loader.load_string('name: "Orders"\n')
        assert type(raw["name"]) is str


class TestDuplicateKeys:
    def test_flag_applies_on_every_load(self, loader: TrackedLoader) -> None:
        yaml = "name: a\nname: b\n"
        loader.load_string(yaml, allow_duplicate_keys=True)
        with pytest.raises(Exception, match="duplicate key"):
            loader.load_string(yaml)


class TestCompilerIntegration:
    """YAMLSafetyError surfaces as a YAML_SAFETY_ERROR compile error."""

    def test_anchor_reported_as_safety_error(self) -> None:
        files = [SchemaFile(file_name="bad.yml", content="a: &a [1,2,3]\nb: *a\n")]
        with pytest.raises(SchemaCompilationError) as exc_info:
            build_artifact_set(files)
        [error] = exc_info.value.errors
        assert error.code == "YAML_SAFETY_ERROR"
        assert error.path == "bad.yml"
        assert "anchors/aliases" in error.message

    def test_oversized_reported_as_safety_error(self) -> None:
        content = "key: " + "x" * (_MAX_DOCUMENT_SIZE + 1) + "\n"
        files = [SchemaFile(file_name="big.yml", content=content)]
        with pytest.raises(SchemaCompilationError) as exc_info:
            build_artifact_set(files)
        assert exc_info.value.errors[0].code == "YAML_SAFETY_ERROR"
        assert "maximum size" in exc_info.value.errors[0].message

    def test_deep_nesting_reported_as_safety_error(self) -> None:
        files = [SchemaFile(file_name="deep.yml", content=_nested(25))]
        with pytest.raises(SchemaCompilationError) as exc_info:
            build_artifact_set(files)
        [error] = exc_info.value.errors
        assert error.code == "YAML_SAFETY_ERROR"
        assert "nesting depth" in error.message
