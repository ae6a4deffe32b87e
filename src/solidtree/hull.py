"""Convex hulls of point sets (3D incremental hull, 2D monotone chain)."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

import numpy as np

from solidtree.errors import DegenerateHull
from solidtree.mesh import Mesh, compact, weld_points
from solidtree.profile import Profile, make_profile
from solidtree.warning_policy import WarningPolicy, emit_warning

logger = logging.getLogger(__name__)

HULL_TOLERANCE = 1e-9


def _cross2(o: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    return float((a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0]))


def convex_hull_2d(points: np.ndarray, eps: float = 0.0) -> list[int]:
    """Andrew's monotone chain; returns counter-clockwise indices into ``points``.

    Collinear points on the boundary are dropped.
    """
    pts = np.asarray(points, dtype=np.float64)
    order = sorted(range(len(pts)), key=lambda i: (pts[i][0], pts[i][1]))
    if len(order) < 3:
        return order

    def build(seq: Iterable[int]) -> list[int]:
        chain: list[int] = []
        for i in seq:
            while len(chain) >= 2 and _cross2(pts[chain[-2]], pts[chain[-1]], pts[i]) <= eps:
                chain.pop()
            chain.append(i)
        return chain

    lower = build(order)
    upper = build(reversed(order))
    return lower[:-1] + upper[:-1]


def hull_profiles(points: np.ndarray) -> Profile:
    """2D convex hull of the given points as a single Profile."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(pts) < 3:
        raise DegenerateHull(f"2D hull needs at least 3 points, got {len(pts)}")
    scale = max(float(np.abs(pts).max()), 1.0)
    idx = convex_hull_2d(pts, eps=HULL_TOLERANCE * scale * scale)
    if len(idx) < 3:
        raise DegenerateHull("all hull input points are collinear")
    return make_profile(pts[idx])


def convex_hull(
    points: object,
    *,
    policy: WarningPolicy | None = None,
    check_cancelled: Callable[[], None] | None = None,
) -> Mesh:
    """3D convex hull of a point cloud.

    Coplanar input yields a zero-thickness hull (the 2D hull polygon emitted
    twice with opposite windings). Collinear input, or fewer than three
    distinct points, raises DegenerateHull.
    """
    raw = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(raw) == 0:
        raise DegenerateHull("hull has no input points")
    scale = max(float(np.max(raw.max(axis=0) - raw.min(axis=0))), 1.0)
    eps = HULL_TOLERANCE * scale
    pts, _ = weld_points(raw, eps)
    if len(pts) < 3:
        raise DegenerateHull(f"hull needs at least 3 distinct points, got {len(pts)}")

    simplex = _initial_simplex(pts, eps)
    if simplex is None:
        raise DegenerateHull("all hull input points are collinear")
    if len(simplex) == 3:
        emit_warning("W01", "hull input is coplanar; produced a zero-thickness hull", policy=policy)
        return _flat_hull(pts, simplex)

    mesh = _incremental_hull(pts, simplex, eps, check_cancelled)
    logger.debug("hull: %d input points, %d faces", len(pts), len(mesh.faces))
    return mesh


def _initial_simplex(pts: np.ndarray, eps: float) -> tuple[int, ...] | None:
    """Pick four affinely independent points, or three if all are coplanar.

    Returns None when the points are collinear.
    """
    i0 = int(np.lexsort((pts[:, 2], pts[:, 1], pts[:, 0]))[0])
    d = np.linalg.norm(pts - pts[i0], axis=1)
    i1 = int(np.argmax(d))
    if d[i1] <= eps:
        return None

    axis = pts[i1] - pts[i0]
    axis = axis / np.linalg.norm(axis)
    rel = pts - pts[i0]
    line_dist = np.linalg.norm(rel - np.outer(rel @ axis, axis), axis=1)
    i2 = int(np.argmax(line_dist))
    if line_dist[i2] <= eps:
        return None

    normal = np.cross(pts[i1] - pts[i0], pts[i2] - pts[i0])
    normal = normal / np.linalg.norm(normal)
    plane_dist = rel @ normal
    i3 = int(np.argmax(np.abs(plane_dist)))
    if abs(plane_dist[i3]) <= eps:
        return (i0, i1, i2)
    return (i0, i1, i2, i3)


def _flat_hull(pts: np.ndarray, simplex: tuple[int, ...]) -> Mesh:
    i0, i1, i2 = simplex
    origin = pts[i0]
    u = pts[i1] - origin
    u = u / np.linalg.norm(u)
    normal = np.cross(u, pts[i2] - origin)
    normal = normal / np.linalg.norm(normal)
    v = np.cross(normal, u)
    rel = pts - origin
    planar = np.column_stack([rel @ u, rel @ v])
    scale = max(float(np.abs(planar).max()), 1.0)
    ring = convex_hull_2d(planar, eps=HULL_TOLERANCE * scale * scale)
    if len(ring) < 3:
        raise DegenerateHull("all hull input points are collinear")

    # Back face fans from a different corner so no diagonal is shared twice
    back = ring[1:] + ring[:1]
    faces = []
    for k in range(1, len(ring) - 1):
        faces.append((ring[0], ring[k], ring[k + 1]))
        faces.append((back[0], back[k + 1], back[k]))
    return compact(pts, faces)


def _plane(pts: np.ndarray, face: tuple[int, int, int]) -> tuple[np.ndarray, float]:
    a, b, c = pts[face[0]], pts[face[1]], pts[face[2]]
    n = np.cross(b - a, c - a)
    n = n / np.linalg.norm(n)
    return n, float(n @ a)


def _incremental_hull(
    pts: np.ndarray,
    simplex: tuple[int, ...],
    eps: float,
    check_cancelled: Callable[[], None] | None,
) -> Mesh:
    i0, i1, i2, i3 = simplex
    centroid = pts[list(simplex)].mean(axis=0)

    faces: list[tuple[int, int, int]] = []
    for face in ((i0, i1, i2), (i0, i3, i1), (i1, i3, i2), (i0, i2, i3)):
        n, d = _plane(pts, face)
        if n @ centroid - d > 0:
            face = (face[0], face[2], face[1])
        faces.append(face)

    normals = []
    offsets = []
    for face in faces:
        n, d = _plane(pts, face)
        normals.append(n)
        offsets.append(d)
    normal_arr = np.array(normals)
    offset_arr = np.array(offsets)
    alive = np.ones(len(faces), dtype=bool)

    # Insert in order of decreasing distance from the simplex centroid
    order = np.argsort(-np.linalg.norm(pts - centroid, axis=1), kind="stable")
    in_simplex = set(simplex)

    for count, p_idx in enumerate(order.tolist()):
        if p_idx in in_simplex:
            continue
        if check_cancelled is not None and count % 64 == 0:
            check_cancelled()
        p = pts[p_idx]
        dist = normal_arr @ p - offset_arr
        visible = np.nonzero(alive & (dist > eps))[0]
        if len(visible) == 0:
            continue

        edges: set[tuple[int, int]] = set()
        for f in visible.tolist():
            a, b, c = faces[f]
            edges.update(((a, b), (b, c), (c, a)))
        horizon = [e for e in edges if (e[1], e[0]) not in edges]
        alive[visible] = False

        new_normals = []
        new_offsets = []
        for a, b in sorted(horizon):
            face = (a, b, p_idx)
            n = np.cross(pts[b] - pts[a], p - pts[a])
            length = np.linalg.norm(n)
            if length <= 0.0:
                n = normal_arr[visible[0]]
            else:
                n = n / length
            faces.append(face)
            new_normals.append(n)
            new_offsets.append(float(n @ pts[a]))
        normal_arr = np.vstack([normal_arr, np.array(new_normals)])
        offset_arr = np.concatenate([offset_arr, np.array(new_offsets)])
        alive = np.concatenate([alive, np.ones(len(new_normals), dtype=bool)])

    kept = [faces[i] for i in np.nonzero(alive)[0].tolist()]
    return compact(pts, kept)
