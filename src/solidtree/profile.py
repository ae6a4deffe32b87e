"""2D profiles: validation, orientation and triangulation."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from solidtree.errors import InvalidDimension, SelfIntersectingProfile
from solidtree.warning_policy import WarningPolicy, emit_warning


def _cross2(o: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """z-component of (a - o) x (b - o), broadcasting over leading axes."""
    return (a[..., 0] - o[..., 0]) * (b[..., 1] - o[..., 1]) - (a[..., 1] - o[..., 1]) * (
        b[..., 0] - o[..., 0]
    )


def signed_area(points: np.ndarray) -> float:
    """Shoelace area; positive for counter-clockwise order."""
    x = points[:, 0]
    y = points[:, 1]
    return float(0.5 * (np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))


@dataclass(frozen=True, eq=False)
class Profile:
    """Simple, counter-clockwise 2D polygon with non-zero area."""

    points: np.ndarray  # (N, 2) float64, read-only

    def __len__(self) -> int:
        return len(self.points)

    def __repr__(self) -> str:
        return f"Profile(points={len(self.points)})"

    @property
    def area(self) -> float:
        return signed_area(self.points)

    def max_radius(self) -> float:
        """Largest distance of any point from the origin."""
        return float(np.linalg.norm(self.points, axis=1).max())

    def transformed(self, matrix: np.ndarray) -> Profile:
        """Apply the XY block of a 4x4 matrix, keeping counter-clockwise order.

        Raises:
            InvalidDimension: the XY block is singular, so the profile would
                lose its area.
        """
        m = np.asarray(matrix, dtype=np.float64)
        block = m[:2, :2]
        det = float(np.linalg.det(block))
        size = float(np.abs(block).max())
        if size == 0.0 or abs(det) <= 1e-9 * size * size:
            raise InvalidDimension("transform flattens a 2D profile to zero area")
        pts = self.points @ block.T + m[:2, 3]
        if det < 0:
            pts = pts[::-1]
        return _frozen(pts)

    def to_list(self) -> list[list[float]]:
        return self.points.tolist()


def _frozen(points: np.ndarray) -> Profile:
    pts = np.array(points, dtype=np.float64).reshape(-1, 2)
    pts.flags.writeable = False
    return Profile(points=pts)


def _drop_repeats(pts: np.ndarray, tol: float) -> np.ndarray:
    keep = []
    for i, p in enumerate(pts):
        if keep and np.all(np.abs(p - pts[keep[-1]]) <= tol):
            continue
        keep.append(i)
    if len(keep) > 1 and np.all(np.abs(pts[keep[0]] - pts[keep[-1]]) <= tol):
        keep.pop()
    return pts[keep]


def make_profile(
    points: object,
    *,
    policy: WarningPolicy | None = None,
    warn_on_clockwise: bool = True,
) -> Profile:
    """Validate user points and build a counter-clockwise Profile.

    Raises:
        InvalidDimension: fewer than three distinct points or zero area.
        SelfIntersectingProfile: the polygon is not simple.
    """
    try:
        pts = np.array(points, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidDimension(f"polygon points must be numeric pairs: {e}") from e
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise InvalidDimension(f"polygon points must be a list of [x, y] pairs, got shape {pts.shape}")
    if not np.all(np.isfinite(pts)):
        raise InvalidDimension("polygon points must be finite")

    scale = max(float(np.abs(pts).max()) if len(pts) else 0.0, 1.0)
    pts = _drop_repeats(pts, 1e-12 * scale)
    if len(pts) < 3:
        raise InvalidDimension(f"polygon needs at least 3 distinct points, got {len(pts)}")

    area = signed_area(pts)
    if abs(area) <= 1e-12 * scale * scale:
        raise InvalidDimension("polygon has zero area")

    check_simple(pts)

    if area < 0:
        if warn_on_clockwise:
            emit_warning("W03", "clockwise polygon reoriented counter-clockwise", policy=policy)
        pts = pts[::-1]
    return _frozen(pts)


def check_simple(pts: np.ndarray) -> None:
    """Raise SelfIntersectingProfile unless the closed polyline is simple."""
    n = len(pts)
    scale = max(float(np.abs(pts).max()), 1.0)
    eps = 1e-12 * scale * scale
    starts = pts
    ends = np.roll(pts, -1, axis=0)

    for i in range(n):
        a = starts[i]
        b = ends[i]

        # Adjacent edge folding back onto this one
        c = ends[(i + 1) % n]
        turn = _cross2(a, b, c)
        back = np.dot(b - a, c - b)
        if abs(float(turn)) <= eps and back < 0:
            raise SelfIntersectingProfile(f"profile edge {i} folds back onto edge {(i + 1) % n}")

        # Non-adjacent edges j > i
        js = np.arange(i + 2, n)
        if i == 0:
            js = js[js != n - 1]
        if len(js) == 0:
            continue
        c = starts[js]
        d = ends[js]
        o1 = _cross2(a, b, c)
        o2 = _cross2(a, b, d)
        o3 = _cross2(c, d, a[None, :])
        o4 = _cross2(c, d, b[None, :])
        proper = (o1 * o2 < -eps * eps) & (o3 * o4 < -eps * eps)
        touching = (
            ((np.abs(o1) <= eps) & _within(a, b, c))
            | ((np.abs(o2) <= eps) & _within(a, b, d))
            | ((np.abs(o3) <= eps) & _within_many(c, d, a))
            | ((np.abs(o4) <= eps) & _within_many(c, d, b))
        )
        hits = np.nonzero(proper | touching)[0]
        if len(hits):
            raise SelfIntersectingProfile(
                f"profile edge {i} intersects edge {int(js[hits[0]])}"
            )


def _within(a: np.ndarray, b: np.ndarray, p: np.ndarray) -> np.ndarray:
    lo = np.minimum(a, b) - 1e-12
    hi = np.maximum(a, b) + 1e-12
    return np.all((p >= lo) & (p <= hi), axis=-1)


def _within_many(c: np.ndarray, d: np.ndarray, p: np.ndarray) -> np.ndarray:
    lo = np.minimum(c, d) - 1e-12
    hi = np.maximum(c, d) + 1e-12
    return np.all((p[None, :] >= lo) & (p[None, :] <= hi), axis=-1)


def triangulate(points: np.ndarray) -> list[tuple[int, int, int]]:
    """Ear-clipping triangulation of a simple counter-clockwise polygon.

    Returns index triples into ``points``, each wound counter-clockwise.
    """
    pts = np.asarray(points, dtype=np.float64)
    n = len(pts)
    if n < 3:
        return []
    scale = max(float(np.abs(pts).max()), 1.0)
    eps = 1e-12 * scale * scale
    remaining = list(range(n))
    triangles: list[tuple[int, int, int]] = []

    while len(remaining) > 3:
        m = len(remaining)
        clipped = False
        for k in range(m):
            i0 = remaining[k - 1]
            i1 = remaining[k]
            i2 = remaining[(k + 1) % m]
            a, b, c = pts[i0], pts[i1], pts[i2]
            if _cross2(a, b, c) <= eps:
                continue
            others = [j for j in remaining if j not in (i0, i1, i2)]
            if others and _any_inside(pts[others], a, b, c, eps):
                continue
            triangles.append((i0, i1, i2))
            del remaining[k]
            clipped = True
            break
        if clipped:
            continue
        # Only flat corners left; clip one as a zero-area ear
        for k in range(m):
            i0 = remaining[k - 1]
            i1 = remaining[k]
            i2 = remaining[(k + 1) % m]
            if abs(float(_cross2(pts[i0], pts[i1], pts[i2]))) <= eps:
                triangles.append((i0, i1, i2))
                del remaining[k]
                break
        else:
            raise SelfIntersectingProfile("profile could not be triangulated")

    triangles.append((remaining[0], remaining[1], remaining[2]))
    return triangles


def _any_inside(candidates: np.ndarray, a: np.ndarray, b: np.ndarray, c: np.ndarray, eps: float) -> bool:
    d1 = _cross2(a[None, :], b[None, :], candidates)
    d2 = _cross2(b[None, :], c[None, :], candidates)
    d3 = _cross2(c[None, :], a[None, :], candidates)
    inside = (d1 >= -eps) & (d2 >= -eps) & (d3 >= -eps)
    return bool(np.any(inside))
