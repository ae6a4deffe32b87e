"""Expanded YAML emission: the static tree the evaluator will see."""

from __future__ import annotations

from io import StringIO
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

from solidtree.nodes import Node
from solidtree.parser import load_scene


def expanded_document(root: Node, resolution: dict[str, Any] | None = None) -> dict[str, Any]:
    """Plain-dict form of an expanded scene, ready for dumping."""
    out: dict[str, Any] = {}
    if resolution is not None:
        out["resolution"] = resolution
    out["digest"] = root.digest
    out["scene"] = root.to_dict()
    return out


def render_expanded_yaml(source: str | Path) -> str:
    """Render the post-expansion scene tree of a document as YAML."""
    scene = load_scene(source)
    fn, fa, fs = scene.resolution.key()
    data = expanded_document(scene.root, {"fn": fn, "fa": fa, "fs": fs})
    return dump_yaml(data)


def dump_yaml(data: Any) -> str:
    yml = YAML(typ="rt")
    yml.allow_unicode = True
    yml.default_flow_style = False
    stream = StringIO()
    yml.dump(data, stream)
    return stream.getvalue()
