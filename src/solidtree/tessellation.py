"""Deterministic primitive geometry generation."""

from __future__ import annotations

import math
from typing import Any, Mapping

import numpy as np

from solidtree.errors import InvalidDimension
from solidtree.mesh import Mesh
from solidtree.profile import Profile, make_profile
from solidtree.resolution import DEFAULT_RESOLUTION, MIN_SEGMENTS, ResolutionContext
from solidtree.warning_policy import WarningPolicy

SOLID_KINDS: frozenset[str] = frozenset({"cuboid", "cylinder", "sphere"})
PROFILE_KINDS: frozenset[str] = frozenset({"polygon", "square", "circle"})


def _positive(name: str, value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidDimension(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise InvalidDimension(f"{name} must be > 0, got {value}")
    return float(value)


def _non_negative(name: str, value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidDimension(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value) or value < 0:
        raise InvalidDimension(f"{name} must be >= 0, got {value}")
    return float(value)


def _segments(value: int) -> int:
    if value < MIN_SEGMENTS:
        raise InvalidDimension(f"segment count must be >= {MIN_SEGMENTS}, got {value}")
    return int(value)


def tessellate_primitive(
    kind: str,
    params: Mapping[str, Any],
    resolution: ResolutionContext = DEFAULT_RESOLUTION,
    *,
    policy: WarningPolicy | None = None,
) -> Mesh | Profile:
    """Generate deterministic geometry for a single primitive node.

    Curved primitives take their segment count from ``resolution`` unless the
    node carries its own ``fn``/``fa``/``fs``.
    """
    local = resolution.push(fn=params.get("fn"), fa=params.get("fa"), fs=params.get("fs"))

    if kind == "cuboid":
        w, h, d = params["size"]
        return cuboid(w, h, d, center=bool(params.get("center", False)))
    if kind == "cylinder":
        r1 = _non_negative("r1", params["r1"])
        r2 = _non_negative("r2", params["r2"])
        n = local.fragments(max(r1, r2))
        return cylinder(2.0 * r1, 2.0 * r2, params["h"], n, center=bool(params.get("center", False)))
    if kind == "sphere":
        r = _positive("r", params["r"])
        return sphere(r, local.fragments(r))
    if kind == "square":
        w, h = params["size"]
        return square(w, h, center=bool(params.get("center", False)))
    if kind == "circle":
        r = _positive("r", params["r"])
        return circle(r, local.fragments(r))
    if kind == "polygon":
        return polygon(params["points"], policy=policy)

    raise InvalidDimension(f"Unknown primitive kind: {kind!r}")


def cuboid(w: float, h: float, d: float, center: bool = False) -> Mesh:
    """Box: 8 shared corners, 12 triangles. ``w``, ``h``, ``d`` run along x, y, z."""
    sx = _positive("width", w)
    sy = _positive("height", h)
    sz = _positive("depth", d)

    corners = np.array(
        [(ix * sx, iy * sy, iz * sz) for iz in (0, 1) for iy in (0, 1) for ix in (0, 1)],
        dtype=np.float64,
    )
    if center:
        corners -= np.array([sx, sy, sz]) / 2.0

    faces = [
        (0, 2, 3), (0, 3, 1),  # -Z
        (4, 5, 7), (4, 7, 6),  # +Z
        (0, 1, 5), (0, 5, 4),  # -Y
        (2, 6, 7), (2, 7, 3),  # +Y
        (0, 4, 6), (0, 6, 2),  # -X
        (1, 3, 7), (1, 7, 5),  # +X
    ]
    return Mesh.from_arrays(corners, faces)


def _ring(radius: float, z: float, n: int) -> list[tuple[float, float, float]]:
    points = []
    for k in range(n):
        phi = 2.0 * math.pi * k / n
        points.append((radius * math.cos(phi), radius * math.sin(phi), z))
    return points


def cylinder(d1: float, d2: float, h: float, segments: int, center: bool = False) -> Mesh:
    """Frustum along +Z with ``segments`` sides.

    One of ``d1``/``d2`` may be zero, producing a cone whose apex is a single
    vertex.
    """
    r1 = _non_negative("d1", d1) / 2.0
    r2 = _non_negative("d2", d2) / 2.0
    height = _positive("h", h)
    n = _segments(segments)
    if r1 == 0.0 and r2 == 0.0:
        raise InvalidDimension("cylinder needs d1 > 0 or d2 > 0")

    z0 = -height / 2.0 if center else 0.0
    z1 = z0 + height

    positions: list[tuple[float, float, float]] = []
    faces: list[tuple[int, int, int]] = []

    if r1 > 0:
        bottom = list(range(len(positions), len(positions) + n))
        positions.extend(_ring(r1, z0, n))
    else:
        bottom = [len(positions)] * n
        positions.append((0.0, 0.0, z0))
    if r2 > 0:
        top = list(range(len(positions), len(positions) + n))
        positions.extend(_ring(r2, z1, n))
    else:
        top = [len(positions)] * n
        positions.append((0.0, 0.0, z1))

    # Sides
    for k in range(n):
        k1 = (k + 1) % n
        if r1 > 0:
            faces.append((bottom[k], bottom[k1], top[k1]))
        if r2 > 0:
            faces.append((bottom[k], top[k1], top[k]))

    # Caps
    if r1 > 0:
        for k in range(1, n - 1):
            faces.append((bottom[0], bottom[k + 1], bottom[k]))
    if r2 > 0:
        for k in range(1, n - 1):
            faces.append((top[0], top[k], top[k + 1]))

    return Mesh.from_arrays(positions, faces)


def sphere(r: float, segments: int) -> Mesh:
    """Latitude/longitude sphere without pole vertices.

    ``(segments + 1) // 2`` rings sit at polar angles ``180 * (i + 0.5) / rings``;
    the first and last rings are closed by flat caps.
    """
    radius = _positive("r", r)
    n = _segments(segments)
    rings = (n + 1) // 2

    positions: list[tuple[float, float, float]] = []
    for i in range(rings):
        phi = math.pi * (i + 0.5) / rings
        positions.extend(_ring(radius * math.sin(phi), radius * math.cos(phi), n))

    faces: list[tuple[int, int, int]] = []
    for i in range(rings - 1):
        upper = i * n
        lower = (i + 1) * n
        for k in range(n):
            k1 = (k + 1) % n
            faces.append((lower + k, lower + k1, upper + k1))
            faces.append((lower + k, upper + k1, upper + k))

    last = (rings - 1) * n
    for k in range(1, n - 1):
        faces.append((0, k, k + 1))
        faces.append((last, last + k + 1, last + k))

    return Mesh.from_arrays(positions, faces)


def square(w: float, h: float, center: bool = False) -> Profile:
    sx = _positive("width", w)
    sy = _positive("height", h)
    pts = np.array([(0.0, 0.0), (sx, 0.0), (sx, sy), (0.0, sy)])
    if center:
        pts -= np.array([sx, sy]) / 2.0
    return make_profile(pts)


def circle(r: float, segments: int) -> Profile:
    radius = _positive("r", r)
    n = _segments(segments)
    pts = [
        (radius * math.cos(2.0 * math.pi * k / n), radius * math.sin(2.0 * math.pi * k / n))
        for k in range(n)
    ]
    return make_profile(pts)


def polygon(points: object, *, policy: WarningPolicy | None = None) -> Profile:
    return make_profile(points, policy=policy)
