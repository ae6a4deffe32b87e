"""Immutable scene tree nodes and the builder functions that create them.

Every node is a frozen dataclass with a ``tag`` and a content ``digest``
(sha256 over a canonical JSON encoding). Structurally identical subtrees
share a digest, which is what the evaluator memoises on.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from functools import cached_property, reduce
from types import MappingProxyType
from typing import Any, ClassVar, Mapping, Sequence

import numpy as np

from solidtree.errors import InvalidDimension, InvalidParameter
from solidtree.resolution import check_overrides
from solidtree.tessellation import PROFILE_KINDS, SOLID_KINDS
from solidtree.transforms import (
    affine_matrix,
    check_invertible,
    matrix_key,
    mirror_matrix,
    rotation_matrix,
    scale_matrix,
    translation_matrix,
)

BOOLEAN_OPS: frozenset[str] = frozenset({"union", "difference", "intersection"})
EXTRUDE_MODES: frozenset[str] = frozenset({"linear", "rotate"})
RESOLUTION_KEYS = ("fn", "fa", "fs")


def _freeze_value(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        value = value.tolist()
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze_value(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze_value(v) for v in value)
    return value


def _freeze_params(params: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType({k: _freeze_value(params[k]) for k in sorted(params)})


def _canonical(value: Any) -> Any:
    """JSON-ready form of a frozen value; numbers normalised to float."""
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return float(value) + 0.0
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in sorted(value.items())}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return repr(value)


def _plain(value: Any) -> Any:
    """Frozen value back to plain lists/dicts for display."""
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True, eq=False)
class Node:
    """Base class of all scene tree nodes."""

    tag: ClassVar[str] = "node"

    @property
    def label(self) -> str:
        """Name used for this node in diagnostic paths."""
        return self.tag

    def children(self) -> tuple[Node, ...]:
        return ()

    @property
    def dimension(self) -> int | None:
        """2 for profile subtrees, 3 for solids, None for the empty node."""
        dims = {c.dimension for c in self.children()} - {None}
        if 3 in dims:
            return 3
        return 2 if dims else None

    def _identity(self) -> dict[str, Any]:
        return {}

    def _display(self) -> dict[str, Any]:
        return _plain(self._identity())

    @cached_property
    def digest(self) -> str:
        payload = {
            "tag": self.tag,
            "data": _canonical(self._identity()),
            "children": [c.digest for c in self.children()],
        }
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        """Plain nested representation of the subtree."""
        out: dict[str, Any] = {"type": self.label}
        out.update(self._display())
        kids = self.children()
        if kids:
            out["children"] = [c.to_dict() for c in kids]
        return out

    def walk(self):
        """Yield every node of the subtree, parents before children."""
        stack: list[Node] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children()))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.label}, digest={self.digest[:12]})"


@dataclass(frozen=True, eq=False, repr=False)
class Empty(Node):
    """The empty solid."""

    tag: ClassVar[str] = "empty"

    @property
    def dimension(self) -> int | None:
        return None


@dataclass(frozen=True, eq=False, repr=False)
class Primitive(Node):
    tag: ClassVar[str] = "primitive"

    kind: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind not in SOLID_KINDS and self.kind not in PROFILE_KINDS:
            raise InvalidParameter(f"Unknown primitive kind: {self.kind!r}")
        object.__setattr__(self, "params", _freeze_params(self.params))

    @property
    def label(self) -> str:
        return self.kind

    @property
    def dimension(self) -> int | None:
        return 3 if self.kind in SOLID_KINDS else 2

    def _identity(self) -> dict[str, Any]:
        return {"kind": self.kind, "params": self.params}

    def _display(self) -> dict[str, Any]:
        return _plain(self.params)


@dataclass(frozen=True, eq=False, repr=False)
class Transform(Node):
    """Affine transform of a single child; ``name`` is the builder that made it."""

    tag: ClassVar[str] = "transform"

    matrix: np.ndarray
    child: Node
    name: str = "multmatrix"

    def __post_init__(self) -> None:
        m = affine_matrix(self.matrix)
        check_invertible(m)
        object.__setattr__(self, "matrix", m)

    @property
    def label(self) -> str:
        return self.name

    def children(self) -> tuple[Node, ...]:
        return (self.child,)

    def _identity(self) -> dict[str, Any]:
        return {"matrix": list(matrix_key(self.matrix))}

    def _display(self) -> dict[str, Any]:
        return {"matrix": np.round(self.matrix, 12).tolist()}


@dataclass(frozen=True, eq=False, repr=False)
class BooleanOp(Node):
    tag: ClassVar[str] = "boolean"

    op: str
    left: Node
    right: Node

    def __post_init__(self) -> None:
        if self.op not in BOOLEAN_OPS:
            raise InvalidParameter(f"Unknown boolean operation: {self.op!r}")

    @property
    def label(self) -> str:
        return self.op

    def children(self) -> tuple[Node, ...]:
        return (self.left, self.right)

    def _identity(self) -> dict[str, Any]:
        return {"op": self.op}

    def _display(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True, eq=False, repr=False)
class Hull(Node):
    tag: ClassVar[str] = "hull"

    nodes: tuple[Node, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", tuple(self.nodes))

    def children(self) -> tuple[Node, ...]:
        return self.nodes


@dataclass(frozen=True, eq=False, repr=False)
class Extrude(Node):
    tag: ClassVar[str] = "extrude"

    profile_child: Node
    mode: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.mode not in EXTRUDE_MODES:
            raise InvalidParameter(f"Unknown extrusion mode: {self.mode!r}")
        object.__setattr__(self, "params", _freeze_params(self.params))

    @property
    def label(self) -> str:
        return f"{self.mode}_extrude"

    @property
    def dimension(self) -> int | None:
        return 3

    def children(self) -> tuple[Node, ...]:
        return (self.profile_child,)

    def _identity(self) -> dict[str, Any]:
        return {"mode": self.mode, "params": self.params}

    def _display(self) -> dict[str, Any]:
        return _plain(self.params)


@dataclass(frozen=True, eq=False, repr=False)
class ModuleInstance(Node):
    """A module call: the module name, its bound arguments and expanded body."""

    tag: ClassVar[str] = "module"

    module_ref: str
    bound_params: Mapping[str, Any]
    body: Node

    def __post_init__(self) -> None:
        object.__setattr__(self, "bound_params", MappingProxyType(
            {k: _freeze_value(v) for k, v in self.bound_params.items()}
        ))

    @property
    def label(self) -> str:
        return self.module_ref

    def children(self) -> tuple[Node, ...]:
        return (self.body,)

    def _identity(self) -> dict[str, Any]:
        return {"module": self.module_ref, "params": self.bound_params}

    def _display(self) -> dict[str, Any]:
        return {"params": _plain(self.bound_params)}


@dataclass(frozen=True, eq=False, repr=False)
class Resolution(Node):
    """Overrides ``fn``/``fa``/``fs`` for everything below it."""

    tag: ClassVar[str] = "resolution"

    overrides: Mapping[str, Any]
    child: Node

    def __post_init__(self) -> None:
        unknown = set(self.overrides) - set(RESOLUTION_KEYS)
        if unknown:
            raise InvalidParameter(f"Unknown resolution settings: {sorted(unknown)}")
        clean = {k: v for k, v in self.overrides.items() if v is not None}
        object.__setattr__(self, "overrides", _freeze_params(check_overrides(clean)))

    def children(self) -> tuple[Node, ...]:
        return (self.child,)

    def _identity(self) -> dict[str, Any]:
        return {"overrides": self.overrides}


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _resolution_params(fn: object, fa: object, fs: object) -> dict[str, Any]:
    return {k: v for k, v in (("fn", fn), ("fa", fa), ("fs", fs)) if v is not None}


def _group(children: Sequence[Node]) -> Node:
    """Implicit union of builder children."""
    return union(*children)


def _triple(size: object, name: str) -> tuple[float, float, float]:
    if isinstance(size, (int, float)) and not isinstance(size, bool):
        return (float(size),) * 3
    values = tuple(float(v) for v in size)  # type: ignore[union-attr]
    if len(values) != 3:
        raise InvalidDimension(f"{name} size must have 3 components, got {len(values)}")
    return values  # type: ignore[return-value]


def _radius(r: object, d: object, default: float | None, name: str) -> float | None:
    if r is not None and d is not None:
        raise InvalidParameter(f"{name}: give either a radius or a diameter, not both")
    if d is not None:
        return float(d) / 2.0
    if r is not None:
        return float(r)
    return default


def empty() -> Empty:
    return Empty()


def cuboid(size: object = 1.0, center: bool = False) -> Primitive:
    """Box with ``size`` (scalar or ``[w, h, d]``), corner at the origin unless centered."""
    return Primitive("cuboid", {"size": _triple(size, "cuboid"), "center": bool(center)})


cube = cuboid


def cylinder(
    h: float = 1.0,
    r: float | None = None,
    r1: float | None = None,
    r2: float | None = None,
    *,
    d: float | None = None,
    d1: float | None = None,
    d2: float | None = None,
    center: bool = False,
    fn: int | None = None,
    fa: float | None = None,
    fs: float | None = None,
) -> Primitive:
    """Cylinder or cone along +Z. Either end radius may be zero for a cone."""
    base = _radius(r, d, 1.0, "cylinder")
    bottom = _radius(r1, d1, base, "cylinder r1")
    top = _radius(r2, d2, base, "cylinder r2")
    params = {"h": h, "r1": bottom, "r2": top, "center": bool(center)}
    params.update(_resolution_params(fn, fa, fs))
    return Primitive("cylinder", params)


def sphere(
    r: float | None = None,
    *,
    d: float | None = None,
    fn: int | None = None,
    fa: float | None = None,
    fs: float | None = None,
) -> Primitive:
    params = {"r": _radius(r, d, 1.0, "sphere")}
    params.update(_resolution_params(fn, fa, fs))
    return Primitive("sphere", params)


def square(size: object = 1.0, center: bool = False) -> Primitive:
    if isinstance(size, (int, float)) and not isinstance(size, bool):
        w = h = float(size)
    else:
        values = [float(v) for v in size]  # type: ignore[union-attr]
        if len(values) != 2:
            raise InvalidDimension(f"square size must have 2 components, got {len(values)}")
        w, h = values
    return Primitive("square", {"size": (w, h), "center": bool(center)})


def circle(
    r: float | None = None,
    *,
    d: float | None = None,
    fn: int | None = None,
    fa: float | None = None,
    fs: float | None = None,
) -> Primitive:
    params = {"r": _radius(r, d, 1.0, "circle")}
    params.update(_resolution_params(fn, fa, fs))
    return Primitive("circle", params)


def polygon(points: Sequence[Sequence[float]]) -> Primitive:
    return Primitive("polygon", {"points": [[float(c) for c in p] for p in points]})


def translate(v: Sequence[float], *children: Node) -> Transform:
    return Transform(translation_matrix(v), _group(children), "translate")


def rotate(a: object = None, *children: Node, axis: Sequence[float] | None = None) -> Transform:
    """``rotate([x, y, z], ...)`` for Euler angles, ``rotate(deg, ..., axis=v)`` about an axis."""
    if axis is not None:
        matrix = rotation_matrix(axis=axis, angle=a)  # type: ignore[arg-type]
    else:
        matrix = rotation_matrix(a)
    return Transform(matrix, _group(children), "rotate")


def scale(v: object, *children: Node) -> Transform:
    return Transform(scale_matrix(v), _group(children), "scale")


def mirror(normal: Sequence[float], *children: Node) -> Transform:
    return Transform(mirror_matrix(normal), _group(children), "mirror")


def multmatrix(m: object, *children: Node) -> Transform:
    return Transform(affine_matrix(m), _group(children), "multmatrix")


def _fold(op: str, children: Sequence[Node]) -> Node:
    if not children:
        return Empty()
    return reduce(lambda acc, node: BooleanOp(op, acc, node), children[1:], children[0])


def union(*children: Node) -> Node:
    return _fold("union", children)


def difference(*children: Node) -> Node:
    """First child minus every following child."""
    return _fold("difference", children)


def intersection(*children: Node) -> Node:
    return _fold("intersection", children)


def hull(*children: Node) -> Node:
    if not children:
        return Empty()
    return Hull(tuple(children))


def linear_extrude(
    height: float,
    *children: Node,
    twist: float = 0.0,
    scale: object = 1.0,
    center: bool = False,
    slices: int | None = None,
    fn: int | None = None,
    fa: float | None = None,
    fs: float | None = None,
) -> Extrude:
    if isinstance(scale, (int, float)) and not isinstance(scale, bool):
        scale_xy = (float(scale), float(scale))
    else:
        scale_xy = tuple(float(v) for v in scale)  # type: ignore[union-attr]
    params: dict[str, Any] = {
        "height": height,
        "twist": twist,
        "scale": scale_xy,
        "center": bool(center),
    }
    if slices is not None:
        params["slices"] = slices
    params.update(_resolution_params(fn, fa, fs))
    return Extrude(_group(children), "linear", params)


def rotate_extrude(
    *children: Node,
    angle: float = 360.0,
    fn: int | None = None,
    fa: float | None = None,
    fs: float | None = None,
) -> Extrude:
    params: dict[str, Any] = {"angle": angle}
    params.update(_resolution_params(fn, fa, fs))
    return Extrude(_group(children), "rotate", params)


def resolution(
    *children: Node,
    fn: int | None = None,
    fa: float | None = None,
    fs: float | None = None,
) -> Node:
    overrides = _resolution_params(fn, fa, fs)
    child = _group(children)
    if not overrides:
        return child
    return Resolution(overrides, child)

