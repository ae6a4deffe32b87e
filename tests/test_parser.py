"""Tests for YAML loading and scene expansion from documents."""

import pytest

from solidtree.errors import AssertionFailed, ParseError
from solidtree.nodes import BooleanOp, ModuleInstance, Primitive
from solidtree.parser import load_scene, load_yaml_data, parse_version, parse_yaml


class TestParseYaml:
    def test_minimal(self, minimal_scene_yaml):
        doc = parse_yaml(minimal_scene_yaml)
        assert doc.version == "0.1"
        assert doc.scene == {"cube": {"size": 10, "center": True}}

    def test_from_path(self, minimal_scene_yaml, write_scene):
        path = write_scene(minimal_scene_yaml)
        assert parse_yaml(path).version == "0.1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ParseError, match="Cannot read file"):
            parse_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self):
        with pytest.raises(ParseError, match="Invalid YAML"):
            parse_yaml("version: '0.1'\nscene: [unclosed\n")

    def test_duplicate_keys(self):
        with pytest.raises(ParseError, match="Invalid YAML"):
            parse_yaml('version: "0.1"\nscene:\n  cube: 1\n  cube: 2\n')

    def test_top_level_not_mapping(self):
        with pytest.raises(ParseError, match="must be a mapping"):
            parse_yaml("- 1\n- 2\n")

    def test_missing_version(self):
        with pytest.raises(ParseError, match="Missing required field: version"):
            parse_yaml("scene:\n  cube: 1\n")

    def test_newer_version_rejected(self):
        with pytest.raises(ParseError, match="Unsupported version"):
            parse_yaml('version: "0.2"\nscene:\n  cube: 1\n')

    def test_malformed_version(self):
        with pytest.raises(ParseError, match="Invalid version format"):
            parse_yaml('version: "one"\nscene:\n  cube: 1\n')

    def test_schema_error(self):
        with pytest.raises(ParseError, match="Schema validation failed"):
            parse_yaml('version: "0.1"\nresolution: {fn: -3}\nscene:\n  cube: 1\n')

    def test_load_yaml_data_keeps_raw_dict(self, minimal_scene_yaml):
        data = load_yaml_data(minimal_scene_yaml)
        assert data["scene"]["cube"]["size"] == 10


class TestLoadScene:
    def test_minimal(self, minimal_scene_yaml):
        scene = load_scene(minimal_scene_yaml)
        assert isinstance(scene.root, Primitive)
        assert scene.root.kind == "cuboid"
        assert scene.resolution.key() == (0, 12.0, 2.0)

    def test_document_resolution(self, plate_scene_yaml):
        scene = load_scene(plate_scene_yaml)
        assert scene.resolution.fn == 16

    def test_modules_and_params(self, plate_scene_yaml):
        root = load_scene(plate_scene_yaml).root
        assert isinstance(root, BooleanOp)
        holes = [n for n in root.walk() if isinstance(n, ModuleInstance)]
        assert [dict(h.bound_params) for h in holes] == [{"x": -5, "d": 4}, {"x": 5, "d": 4}]
        block = root.left.left
        assert block.params["size"] == (20.0, 10.0, 2.0)

    def test_assertion_failure(self):
        text = """\
version: "0.1"
modules:
  plate:
    params: [width]
    assert: "$width > 0"
    body:
      cube: [$width, 10, 2]
scene:
  plate: {width: -5}
"""
        with pytest.raises(AssertionFailed) as exc_info:
            load_scene(text)
        assert exc_info.value.kind == "ParameterError::AssertionFailed"
        assert exc_info.value.node_path == "plate"

    def test_module_name_shadowing_builtin(self):
        text = """\
version: "0.1"
modules:
  sphere:
    body: {cube: 1}
scene:
  sphere: 1
"""
        with pytest.raises(ParseError, match="shadows a built-in"):
            load_scene(text)

    def test_same_document_same_digest(self, plate_scene_yaml):
        assert load_scene(plate_scene_yaml).root.digest == load_scene(plate_scene_yaml).root.digest


class TestParseVersion:
    def test_supported(self):
        assert parse_version("0.1") == (0, 1)
        assert parse_version(0.1) == (0, 1)

    def test_older_minor_accepted(self):
        assert parse_version("0.0") == (0, 0)

    def test_three_parts_rejected(self):
        with pytest.raises(ParseError, match="Invalid version format"):
            parse_version("0.1.2")

    def test_newer_major_rejected(self):
        with pytest.raises(ParseError, match="latest supported is 0.1"):
            parse_version("1.0")
