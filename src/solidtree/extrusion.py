"""Linear and rotational extrusion of 2D profiles into closed meshes."""

from __future__ import annotations

import math

import numpy as np

from solidtree.errors import InvalidDimension, ProfileCrossesAxis
from solidtree.mesh import Mesh
from solidtree.profile import Profile, check_simple, triangulate
from solidtree.resolution import DEFAULT_RESOLUTION, ResolutionContext

AXIS_TOLERANCE = 1e-9


def _positive(name: str, value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidDimension(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise InvalidDimension(f"{name} must be > 0, got {value}")
    return float(value)


def _scale_pair(scale: object) -> tuple[float, float]:
    if isinstance(scale, (int, float)) and not isinstance(scale, bool):
        s = _positive("scale", scale)
        return s, s
    try:
        sx, sy = scale  # type: ignore[misc]
    except (TypeError, ValueError) as e:
        raise InvalidDimension(f"scale must be a number or [sx, sy], got {scale!r}") from e
    return _positive("scale x", sx), _positive("scale y", sy)


def _oriented(vertices: list, faces: list) -> Mesh:
    mesh = Mesh.from_arrays(vertices, faces)
    if mesh.volume() < 0:
        mesh = mesh.inverted()
    return mesh


def linear_extrude(
    profile: Profile,
    height: float,
    twist: float = 0.0,
    scale: object = 1.0,
    *,
    center: bool = False,
    slices: int | None = None,
    resolution: ResolutionContext = DEFAULT_RESOLUTION,
) -> Mesh:
    """Sweep ``profile`` from z=0 to z=height.

    Layer ``k`` of ``slices`` is rotated by ``-twist * k / slices`` degrees
    (clockwise seen from +Z for positive twist) and scaled by the linear
    interpolation between 1 and ``scale``.
    """
    h = _positive("height", height)
    if isinstance(twist, bool) or not isinstance(twist, (int, float)) or not math.isfinite(twist):
        raise InvalidDimension(f"twist must be a finite number, got {twist!r}")
    sx, sy = _scale_pair(scale)
    check_simple(profile.points)

    if slices is None:
        if twist != 0.0:
            frags = resolution.fragments(profile.max_radius())
            slices = max(1, math.ceil(frags * abs(twist) / 360.0))
        else:
            slices = 1
    elif isinstance(slices, bool) or not isinstance(slices, int) or slices < 1:
        raise InvalidDimension(f"slices must be a positive integer, got {slices!r}")

    base = np.asarray(profile.points, dtype=np.float64)
    n = len(base)
    z0 = -h / 2.0 if center else 0.0

    vertices: list[tuple[float, float, float]] = []
    for k in range(slices + 1):
        t = k / slices
        angle = math.radians(-twist * t)
        c, s = math.cos(angle), math.sin(angle)
        fx = 1.0 + (sx - 1.0) * t
        fy = 1.0 + (sy - 1.0) * t
        z = z0 + h * t
        for x, y in base.tolist():
            px, py = x * fx, y * fy
            vertices.append((c * px - s * py, s * px + c * py, z))

    faces: list[tuple[int, int, int]] = []
    for k in range(slices):
        lower = k * n
        upper = (k + 1) * n
        for i in range(n):
            i1 = (i + 1) % n
            faces.append((lower + i, lower + i1, upper + i1))
            faces.append((lower + i, upper + i1, upper + i))

    top = slices * n
    for a, b, c in triangulate(base):
        faces.append((a, c, b))
        faces.append((top + a, top + b, top + c))

    return _oriented(vertices, faces)


def rotate_extrude(
    profile: Profile,
    angle: float = 360.0,
    *,
    resolution: ResolutionContext = DEFAULT_RESOLUTION,
    fn: int | None = None,
) -> Mesh:
    """Revolve ``profile`` about the Z axis.

    Profile X is the distance from the axis and profile Y becomes Z. Points
    on the axis collapse to a single vertex; partial revolutions get flat
    caps at both ends.
    """
    sweep = _positive("angle", angle)
    if sweep > 360.0:
        raise InvalidDimension(f"angle must be <= 360, got {angle}")
    check_simple(profile.points)

    pts = np.asarray(profile.points, dtype=np.float64)
    scale = max(float(np.abs(pts).max()), 1.0)
    tol = AXIS_TOLERANCE * scale
    crossing = np.nonzero(pts[:, 0] < -tol)[0]
    if len(crossing):
        raise ProfileCrossesAxis(
            f"profile point {pts[crossing[0]].tolist()} lies on the negative side of the axis"
        )
    on_axis = pts[:, 0] <= tol

    full = sweep >= 360.0
    frags = resolution.fragments(float(pts[:, 0].max()), fn)
    segments = max(3 if full else 1, math.ceil(frags * sweep / 360.0))
    steps = segments if full else segments + 1

    n = len(pts)
    vertices: list[tuple[float, float, float]] = []
    axis_index: dict[int, int] = {}
    index = np.empty((steps, n), dtype=np.int64)
    for i in np.nonzero(on_axis)[0].tolist():
        axis_index[i] = len(vertices)
        vertices.append((0.0, 0.0, float(pts[i, 1])))
    for j in range(steps):
        theta = math.radians(sweep * j / segments)
        c, s = math.cos(theta), math.sin(theta)
        for i in range(n):
            if i in axis_index:
                index[j, i] = axis_index[i]
            else:
                x, y = pts[i]
                index[j, i] = len(vertices)
                vertices.append((float(x) * c, float(x) * s, float(y)))

    faces: list[tuple[int, int, int]] = []
    for j in range(segments):
        j1 = (j + 1) % steps
        for i in range(n):
            i1 = (i + 1) % n
            quad = [index[j, i], index[j1, i], index[j1, i1], index[j, i1]]
            ring = [int(v) for k, v in enumerate(quad) if v != quad[k - 1]]
            if len(ring) == 4:
                faces.append((ring[0], ring[1], ring[2]))
                faces.append((ring[0], ring[2], ring[3]))
            elif len(ring) == 3:
                faces.append((ring[0], ring[1], ring[2]))

    if not full:
        last = steps - 1
        for a, b, c in triangulate(pts):
            faces.append((int(index[0, a]), int(index[0, b]), int(index[0, c])))
            faces.append((int(index[last, a]), int(index[last, c]), int(index[last, b])))

    return _oriented(vertices, faces)
