"""YAML loading and version checking for solidtree scene documents."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from solidtree.errors import ParseError
from solidtree.models import SceneDocument
from solidtree.nodes import Node
from solidtree.resolution import ResolutionContext

SUPPORTED_VERSION = (0, 1)


def _loader() -> YAML:
    yml = YAML(typ="safe")
    yml.allow_duplicate_keys = False
    return yml


def _source_text(source: str | Path) -> tuple[str, str]:
    """Return ``(text, origin)``. Paths are read from disk, strings are YAML text."""
    if not isinstance(source, Path):
        return source, "<string>"
    try:
        return source.read_text(encoding="utf-8"), str(source)
    except OSError as e:
        raise ParseError(f"Cannot read file: {e}") from e


def parse_version(value: object) -> tuple[int, int]:
    """Split a ``major.minor`` version, rejecting ones newer than this release reads."""
    text = str(value)
    major, dot, minor = text.partition(".")
    if not dot or not major.isdigit() or not minor.isdigit():
        raise ParseError(f"Invalid version format: {text!r}")
    version = (int(major), int(minor))
    if version > SUPPORTED_VERSION:
        latest = "%d.%d" % SUPPORTED_VERSION
        raise ParseError(f"Unsupported version: {text!r} (latest supported is {latest})")
    return version


def load_yaml_data(source: str | Path) -> dict[str, Any]:
    """Load YAML and run top-level shape/version checks, before expansion."""
    text, origin = _source_text(source)
    try:
        data = _loader().load(text)
    except YAMLError as e:
        raise ParseError(f"Invalid YAML in {origin}: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(f"Top-level YAML value must be a mapping, got {type(data).__name__}")
    if data.get("version") is None:
        raise ParseError("Missing required field: version")
    parse_version(data["version"])
    return data


def parse_yaml(source: str | Path) -> SceneDocument:
    """Parse a scene document from a string or file path.

    Args:
        source: YAML string or path to a scene file.

    Returns:
        Schema-validated SceneDocument (not yet expanded).

    Raises:
        ParseError: On YAML syntax errors, schema violations, or version mismatches.
    """
    data = load_yaml_data(source)
    try:
        return SceneDocument.model_validate(data)
    except PydanticValidationError as e:
        raise ParseError(f"Schema validation failed:\n{e}") from e


@dataclass(frozen=True)
class LoadedScene:
    """An expanded scene: the static node tree and the document's resolution."""

    document: SceneDocument
    root: Node
    resolution: ResolutionContext


def load_scene(source: str | Path) -> LoadedScene:
    """Parse, validate and expand a scene document."""
    from solidtree.preprocessing import expand_document

    document = parse_yaml(source)
    settings = document.resolution
    resolution = ResolutionContext(fn=settings.fn, fa=settings.fa, fs=settings.fs)
    return LoadedScene(document=document, root=expand_document(document), resolution=resolution)
