"""Binary space partitioning of convex polygons for mesh booleans.

Polygons are kept as plain tuples of floats; the trees are walked with
explicit stacks so deep partitions never hit the recursion limit.
"""

from __future__ import annotations

import math
from typing import Callable

Vec = tuple[float, float, float]

COPLANAR = 0
FRONT = 1
BACK = 2
SPANNING = 3


def _sub(a: Vec, b: Vec) -> Vec:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _dot(a: Vec, b: Vec) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _cross(a: Vec, b: Vec) -> Vec:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


class Plane:
    __slots__ = ("normal", "w")

    def __init__(self, normal: Vec, w: float) -> None:
        self.normal = normal
        self.w = w

    @classmethod
    def from_points(cls, a: Vec, b: Vec, c: Vec) -> Plane | None:
        n = _cross(_sub(b, a), _sub(c, a))
        length = math.sqrt(_dot(n, n))
        if length == 0.0:
            return None
        n = (n[0] / length, n[1] / length, n[2] / length)
        return cls(n, _dot(n, a))

    def flipped(self) -> Plane:
        n = self.normal
        return Plane((-n[0], -n[1], -n[2]), -self.w)


class Polygon:
    """Convex planar polygon with its supporting plane."""

    __slots__ = ("vertices", "plane")

    def __init__(self, vertices: list[Vec], plane: Plane) -> None:
        self.vertices = vertices
        self.plane = plane

    def flipped(self) -> Polygon:
        return Polygon(self.vertices[::-1], self.plane.flipped())


def _intersect(n: Vec, w: float, a: Vec, b: Vec) -> Vec:
    """Point where segment ``a``-``b`` crosses the plane ``n . x = w``.

    Callers pass the endpoints in a fixed order so that polygons sharing
    an edge get bit-identical split points.
    """
    d = _sub(b, a)
    t = (w - _dot(n, a)) / _dot(n, d)
    return (a[0] + d[0] * t, a[1] + d[1] * t, a[2] + d[2] * t)


def split_polygon(
    plane: Plane,
    polygon: Polygon,
    eps: float,
    coplanar_front: list[Polygon],
    coplanar_back: list[Polygon],
    front: list[Polygon],
    back: list[Polygon],
) -> None:
    """Sort ``polygon`` into the lists relative to ``plane``, splitting if needed."""
    n = plane.normal
    w = plane.w
    types = []
    polygon_type = 0
    for v in polygon.vertices:
        t = n[0] * v[0] + n[1] * v[1] + n[2] * v[2] - w
        kind = BACK if t < -eps else FRONT if t > eps else COPLANAR
        polygon_type |= kind
        types.append(kind)

    if polygon_type == COPLANAR:
        if _dot(n, polygon.plane.normal) > 0:
            coplanar_front.append(polygon)
        else:
            coplanar_back.append(polygon)
    elif polygon_type == FRONT:
        front.append(polygon)
    elif polygon_type == BACK:
        back.append(polygon)
    else:
        f: list[Vec] = []
        b: list[Vec] = []
        verts = polygon.vertices
        count = len(verts)
        for i in range(count):
            j = (i + 1) % count
            ti = types[i]
            tj = types[j]
            vi = verts[i]
            vj = verts[j]
            if ti != BACK:
                f.append(vi)
            if ti != FRONT:
                b.append(vi)
            if (ti | tj) == SPANNING:
                v = _intersect(n, w, vi, vj) if vi < vj else _intersect(n, w, vj, vi)
                f.append(v)
                b.append(v)
        if len(f) >= 3:
            front.append(Polygon(f, polygon.plane))
        if len(b) >= 3:
            back.append(Polygon(b, polygon.plane))


class BSPNode:
    """Node of a solid BSP tree; the back side of every leaf plane is inside."""

    __slots__ = ("plane", "front", "back", "polygons")

    def __init__(self) -> None:
        self.plane: Plane | None = None
        self.front: BSPNode | None = None
        self.back: BSPNode | None = None
        self.polygons: list[Polygon] = []

    def _nodes(self) -> list[BSPNode]:
        out = []
        stack: list[BSPNode] = [self]
        while stack:
            node = stack.pop()
            out.append(node)
            if node.back is not None:
                stack.append(node.back)
            if node.front is not None:
                stack.append(node.front)
        return out

    def build(self, polygons: list[Polygon], eps: float, tick: Callable[[], None] | None = None) -> None:
        stack = [(self, polygons)]
        while stack:
            node, polys = stack.pop()
            if not polys:
                continue
            if tick is not None:
                tick()
            if node.plane is None:
                node.plane = polys[0].plane
            front: list[Polygon] = []
            back: list[Polygon] = []
            for p in polys:
                split_polygon(node.plane, p, eps, node.polygons, node.polygons, front, back)
            if back:
                if node.back is None:
                    node.back = BSPNode()
                stack.append((node.back, back))
            if front:
                if node.front is None:
                    node.front = BSPNode()
                stack.append((node.front, front))

    def invert(self) -> None:
        for node in self._nodes():
            node.polygons = [p.flipped() for p in node.polygons]
            if node.plane is not None:
                node.plane = node.plane.flipped()
            node.front, node.back = node.back, node.front

    def clip_polygons(
        self, polygons: list[Polygon], eps: float, tick: Callable[[], None] | None = None
    ) -> list[Polygon]:
        """Remove the parts of ``polygons`` that lie inside this solid."""
        result: list[Polygon] = []
        stack = [(self, polygons)]
        while stack:
            node, polys = stack.pop()
            if node.plane is None:
                result.extend(polys)
                continue
            if tick is not None:
                tick()
            front: list[Polygon] = []
            back: list[Polygon] = []
            for p in polys:
                split_polygon(node.plane, p, eps, front, back, front, back)
            if node.back is not None and back:
                stack.append((node.back, back))
            if node.front is not None:
                if front:
                    stack.append((node.front, front))
            else:
                result.extend(front)
        return result

    def clip_to(self, other: BSPNode, eps: float, tick: Callable[[], None] | None = None) -> None:
        for node in self._nodes():
            node.polygons = other.clip_polygons(node.polygons, eps, tick)

    def all_polygons(self) -> list[Polygon]:
        out: list[Polygon] = []
        for node in self._nodes():
            out.extend(node.polygons)
        return out


def bsp_union(a: BSPNode, b: BSPNode, eps: float, tick: Callable[[], None] | None = None) -> list[Polygon]:
    a.clip_to(b, eps, tick)
    b.clip_to(a, eps, tick)
    b.invert()
    b.clip_to(a, eps, tick)
    b.invert()
    a.build(b.all_polygons(), eps, tick)
    return a.all_polygons()


def bsp_difference(a: BSPNode, b: BSPNode, eps: float, tick: Callable[[], None] | None = None) -> list[Polygon]:
    a.invert()
    a.clip_to(b, eps, tick)
    b.clip_to(a, eps, tick)
    b.invert()
    b.clip_to(a, eps, tick)
    b.invert()
    a.build(b.all_polygons(), eps, tick)
    a.invert()
    return a.all_polygons()


def bsp_intersection(a: BSPNode, b: BSPNode, eps: float, tick: Callable[[], None] | None = None) -> list[Polygon]:
    a.invert()
    b.clip_to(a, eps, tick)
    b.invert()
    a.clip_to(b, eps, tick)
    b.clip_to(a, eps, tick)
    a.build(b.all_polygons(), eps, tick)
    a.invert()
    return a.all_polygons()
