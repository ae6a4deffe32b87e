"""Union, difference and intersection of closed triangle meshes."""

from __future__ import annotations

import logging
from typing import Callable, Literal

import numpy as np

from solidtree.bsp import BSPNode, Plane, Polygon, bsp_difference, bsp_intersection, bsp_union
from solidtree.errors import NonManifoldResult
from solidtree.mesh import Mesh, compact, concat, weld_points
from solidtree.warning_policy import WarningPolicy, emit_warning

logger = logging.getLogger(__name__)

BooleanOpName = Literal["union", "difference", "intersection"]
BOOLEAN_OPS: frozenset[str] = frozenset({"union", "difference", "intersection"})

# Plane classification tolerance, relative to the operands' extent
BOOLEAN_EPSILON = 1e-5
# Vertex welding tolerance, relative to the operands' extent. Seam vertices
# from the two operands may sit up to the classification tolerance apart.
WELD_EPSILON = 2 * BOOLEAN_EPSILON

_TICK_INTERVAL = 256


def boolean(
    op: BooleanOpName,
    a: Mesh,
    b: Mesh,
    *,
    policy: WarningPolicy | None = None,
    check_cancelled: Callable[[], None] | None = None,
) -> Mesh:
    """Combine two closed meshes.

    Raises:
        NonManifoldResult: the result cannot be closed into a 2-manifold.
    """
    if op not in BOOLEAN_OPS:
        raise ValueError(f"Unknown boolean operation: {op!r}")

    shortcut = _shortcut(op, a, b)
    if shortcut is not None:
        result = shortcut
    else:
        scale = max(a.scale(), b.scale())
        eps = BOOLEAN_EPSILON * scale
        tick = _ticker(check_cancelled)

        node_a = BSPNode()
        node_a.build(mesh_to_polygons(a), eps, tick)
        node_b = BSPNode()
        node_b.build(mesh_to_polygons(b), eps, tick)
        if op == "union":
            polygons = bsp_union(node_a, node_b, eps, tick)
        elif op == "difference":
            polygons = bsp_difference(node_a, node_b, eps, tick)
        else:
            polygons = bsp_intersection(node_a, node_b, eps, tick)
        logger.debug("%s: %d + %d faces -> %d polygons", op, len(a), len(b), len(polygons))
        result = polygons_to_mesh(polygons, WELD_EPSILON * scale)

    if result.is_empty and not (a.is_empty and b.is_empty):
        emit_warning("W02", f"{op} produced an empty mesh", policy=policy)
    return result


def _ticker(check_cancelled: Callable[[], None] | None) -> Callable[[], None] | None:
    if check_cancelled is None:
        return None
    counter = [0]

    def tick() -> None:
        counter[0] += 1
        if counter[0] % _TICK_INTERVAL == 0:
            check_cancelled()

    return tick


def _boxes_disjoint(a: Mesh, b: Mesh) -> bool:
    box_a = a.bounds()
    box_b = b.bounds()
    if box_a is None or box_b is None:
        return True
    return bool(np.any(box_a[1] < box_b[0]) or np.any(box_b[1] < box_a[0]))


def _shortcut(op: str, a: Mesh, b: Mesh) -> Mesh | None:
    """Results that follow from the operands alone, without partitioning."""
    if a.is_empty or b.is_empty:
        if op == "union":
            return b if a.is_empty else a
        if op == "difference":
            return a
        return Mesh.empty()

    if len(a.faces) == len(b.faces) and a.same_shape(b):
        return Mesh.empty() if op == "difference" else a

    if _boxes_disjoint(a, b):
        if op == "union":
            return concat([a, b])
        if op == "difference":
            return a
        return Mesh.empty()
    return None


# ---------------------------------------------------------------------------
# Mesh -> polygons
# ---------------------------------------------------------------------------


def mesh_to_polygons(mesh: Mesh) -> list[Polygon]:
    """Convert triangles to convex polygons, merging coplanar neighbours.

    Each connected group of coplanar triangles whose outline is a single
    convex loop becomes one polygon; other groups stay as triangles.
    Zero-area triangles are dropped.
    """
    verts = [tuple(p) for p in mesh.vertices.tolist()]
    faces = [tuple(f) for f in mesh.faces.tolist()]
    planes: list[Plane | None] = [Plane.from_points(verts[a], verts[b], verts[c]) for a, b, c in faces]

    parent = list(range(len(faces)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    edge_owner: dict[tuple[int, int], int] = {}
    for fi, (a, b, c) in enumerate(faces):
        if planes[fi] is None:
            continue
        for e in ((a, b), (b, c), (c, a)):
            edge_owner[e] = fi
    for fi, (a, b, c) in enumerate(faces):
        pi = planes[fi]
        if pi is None:
            continue
        for e in ((a, b), (b, c), (c, a)):
            fj = edge_owner.get((e[1], e[0]))
            if fj is None or fj == fi:
                continue
            pj = planes[fj]
            if _coplanar(pi, pj):
                ri, rj = find(fi), find(fj)
                if ri != rj:
                    parent[max(ri, rj)] = min(ri, rj)

    groups: dict[int, list[int]] = {}
    for fi in range(len(faces)):
        if planes[fi] is not None:
            groups.setdefault(find(fi), []).append(fi)

    polygons: list[Polygon] = []
    for root in sorted(groups):
        members = groups[root]
        plane = planes[root]
        loop = _outline(members, faces) if len(members) > 1 else None
        if loop is not None and _is_convex([verts[i] for i in loop], plane.normal):
            polygons.append(Polygon([verts[i] for i in loop], plane))
            continue
        for fi in members:
            a, b, c = faces[fi]
            polygons.append(Polygon([verts[a], verts[b], verts[c]], planes[fi]))
    return polygons


def _coplanar(p: Plane, q: Plane | None) -> bool:
    if q is None:
        return False
    dot = p.normal[0] * q.normal[0] + p.normal[1] * q.normal[1] + p.normal[2] * q.normal[2]
    return dot > 1.0 - 1e-10 and abs(p.w - q.w) <= 1e-9 * max(1.0, abs(p.w))


def _outline(members: list[int], faces: list[tuple[int, int, int]]) -> list[int] | None:
    """Single boundary loop of a face group, or None if it is not one loop."""
    directed = set()
    for fi in members:
        a, b, c = faces[fi]
        directed.update(((a, b), (b, c), (c, a)))
    boundary = [e for e in directed if (e[1], e[0]) not in directed]
    nxt: dict[int, int] = {}
    for a, b in boundary:
        if a in nxt:
            return None
        nxt[a] = b
    if not nxt:
        return None
    start = min(nxt)
    loop = [start]
    cur = nxt[start]
    while cur != start:
        if cur not in nxt or len(loop) > len(nxt):
            return None
        loop.append(cur)
        cur = nxt[cur]
    if len(loop) != len(nxt):
        return None
    return loop


def _is_convex(points: list[tuple[float, ...]], normal: tuple[float, float, float]) -> bool:
    pts = np.array(points, dtype=np.float64)
    prev = np.roll(pts, 1, axis=0)
    nxt = np.roll(pts, -1, axis=0)
    turns = np.cross(pts - prev, nxt - pts) @ np.array(normal)
    scale = max(float(np.abs(pts).max()), 1.0)
    return bool(np.all(turns >= -1e-9 * scale * scale))


# ---------------------------------------------------------------------------
# Polygons -> closed mesh
# ---------------------------------------------------------------------------


def polygons_to_mesh(polygons: list[Polygon], tol: float) -> Mesh:
    """Weld, repair T-junctions, triangulate and verify closedness.

    Raises:
        NonManifoldResult: some edge does not border exactly two faces.
    """
    if not polygons:
        return Mesh.empty()

    flat = [v for poly in polygons for v in poly.vertices]
    points, remap = weld_points(flat, tol)
    remap_list = remap.tolist()

    loops: list[list[int]] = []
    offset = 0
    for poly in polygons:
        count = len(poly.vertices)
        loop = _dedupe_loop(remap_list[offset : offset + count])
        offset += count
        if len(loop) >= 3 and _loop_area(points, loop) > tol * tol:
            loops.append(loop)

    loops = _resolve_t_junctions(points, loops, tol)

    extra: list[np.ndarray] = []
    triangles: list[tuple[int, int, int]] = []
    for loop in loops:
        triangles.extend(_triangulate_loop(points, loop, tol, extra, len(points)))

    all_points = np.vstack([points] + [p[None, :] for p in extra]) if extra else points
    mesh = compact(all_points, triangles)
    defects = mesh.edge_defects()
    if defects:
        a, b = defects[0]
        raise NonManifoldResult(
            f"boolean result is not a closed 2-manifold: {len(defects)} bad edge(s), "
            f"first at {mesh.vertices[a].tolist()} -> {mesh.vertices[b].tolist()}"
        )
    return mesh


def _dedupe_loop(loop: list[int]) -> list[int]:
    out: list[int] = []
    for idx in loop:
        if not out or out[-1] != idx:
            out.append(idx)
    while len(out) > 1 and out[0] == out[-1]:
        out.pop()
    return out


def _loop_area(points: np.ndarray, loop: list[int]) -> float:
    pts = points[loop]
    newell = np.cross(pts, np.roll(pts, -1, axis=0)).sum(axis=0)
    return float(np.linalg.norm(newell) / 2.0)


def _resolve_t_junctions(points: np.ndarray, loops: list[list[int]], tol: float) -> list[list[int]]:
    """Insert vertices that lie in the interior of a loop edge into that loop."""
    order = np.argsort(points[:, 0], kind="stable")
    xs = points[order, 0]
    cache: dict[tuple[int, int], list[int]] = {}

    def between(a: int, b: int) -> list[int]:
        key = (a, b) if a < b else (b, a)
        hit = cache.get(key)
        if hit is None:
            hit = _points_on_segment(points, order, xs, key[0], key[1], tol)
            cache[key] = hit
        return hit if a < b else hit[::-1]

    repaired = []
    for loop in loops:
        out: list[int] = []
        count = len(loop)
        for i in range(count):
            a = loop[i]
            b = loop[(i + 1) % count]
            out.append(a)
            out.extend(between(a, b))
        repaired.append(out)
    return repaired


def _points_on_segment(
    points: np.ndarray, order: np.ndarray, xs: np.ndarray, a: int, b: int, tol: float
) -> list[int]:
    pa = points[a]
    pb = points[b]
    lo = np.searchsorted(xs, min(pa[0], pb[0]) - tol, side="left")
    hi = np.searchsorted(xs, max(pa[0], pb[0]) + tol, side="right")
    if hi <= lo:
        return []
    cand = order[lo:hi]
    cand = cand[(cand != a) & (cand != b)]
    if len(cand) == 0:
        return []
    d = pb - pa
    length2 = float(d @ d)
    if length2 == 0.0:
        return []
    rel = points[cand] - pa
    t = rel @ d / length2
    margin = tol / np.sqrt(length2)
    inside = (t > margin) & (t < 1.0 - margin)
    if not np.any(inside):
        return []
    cand = cand[inside]
    t = t[inside]
    off = points[cand] - (pa + np.outer(t, d))
    close = np.max(np.abs(off), axis=1) <= tol
    cand = cand[close]
    t = t[close]
    return cand[np.argsort(t, kind="stable")].tolist()


def _triangulate_loop(
    points: np.ndarray,
    loop: list[int],
    tol: float,
    extra: list[np.ndarray],
    base: int,
) -> list[tuple[int, int, int]]:
    """Fan-triangulate a convex loop that may carry collinear vertices.

    The fan starts at a corner whose neighbours are corners too; when no
    such corner exists a centre vertex is added and the fan starts there.
    """
    count = len(loop)
    if count == 3:
        return [(loop[0], loop[1], loop[2])]
    pts = points[loop]
    prev = np.roll(pts, 1, axis=0)
    nxt = np.roll(pts, -1, axis=0)
    e1 = pts - prev
    e2 = nxt - pts
    turn = np.linalg.norm(np.cross(e1, e2), axis=1)
    span = np.linalg.norm(e1, axis=1) * np.linalg.norm(e2, axis=1)
    corner = turn > 1e-9 * np.maximum(span, tol * tol)

    for j in range(count):
        if corner[j - 1] and corner[j] and corner[(j + 1) % count]:
            ring = loop[j:] + loop[:j]
            return [(ring[0], ring[k], ring[k + 1]) for k in range(1, count - 1)]

    center = base + len(extra)
    extra.append(pts.mean(axis=0))
    return [(center, loop[k], loop[(k + 1) % count]) for k in range(count)]
