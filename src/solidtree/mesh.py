"""Immutable triangle boundary meshes."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable

import numpy as np

DEFAULT_WELD_TOLERANCE = 1e-9


def _readonly(array: np.ndarray) -> np.ndarray:
    array.flags.writeable = False
    return array


@dataclass(frozen=True, eq=False)
class Mesh:
    """Triangulated boundary representation.

    ``vertices`` is an (N, 3) float64 array and ``faces`` an (M, 3) int64
    array of vertex indices wound counter-clockwise seen from outside. Both
    arrays are read-only so a Mesh can be shared between cache entries.
    """

    vertices: np.ndarray
    faces: np.ndarray

    @classmethod
    def from_arrays(cls, vertices: object, faces: object) -> Mesh:
        verts = np.array(vertices, dtype=np.float64).reshape(-1, 3)
        tris = np.array(faces, dtype=np.int64).reshape(-1, 3)
        return cls(vertices=_readonly(verts), faces=_readonly(tris))

    @classmethod
    def empty(cls) -> Mesh:
        return cls.from_arrays(np.zeros((0, 3)), np.zeros((0, 3)))

    @property
    def is_empty(self) -> bool:
        return len(self.faces) == 0

    def __len__(self) -> int:
        return len(self.faces)

    def __repr__(self) -> str:
        return f"Mesh(vertices={len(self.vertices)}, faces={len(self.faces)})"

    # -- measurements ------------------------------------------------------

    def face_points(self) -> np.ndarray:
        """(M, 3, 3) array of triangle corner positions."""
        return self.vertices[self.faces]

    def volume(self) -> float:
        """Signed volume (positive for outward-wound closed meshes)."""
        if self.is_empty:
            return 0.0
        tri = self.face_points()
        return float(np.einsum("ij,ij->i", tri[:, 0], np.cross(tri[:, 1], tri[:, 2])).sum() / 6.0)

    def area(self) -> float:
        if self.is_empty:
            return 0.0
        tri = self.face_points()
        cross = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
        return float(np.linalg.norm(cross, axis=1).sum() / 2.0)

    def face_normals(self) -> np.ndarray:
        tri = self.face_points()
        cross = np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0])
        lengths = np.linalg.norm(cross, axis=1)
        lengths[lengths == 0.0] = 1.0
        return cross / lengths[:, None]

    def bounds(self) -> tuple[np.ndarray, np.ndarray] | None:
        if len(self.vertices) == 0:
            return None
        used = self.vertices[np.unique(self.faces)] if len(self.faces) else self.vertices
        return used.min(axis=0), used.max(axis=0)

    def scale(self) -> float:
        """Largest bounding-box extent, at least 1.0; used to scale tolerances."""
        box = self.bounds()
        if box is None:
            return 1.0
        return max(float(np.max(box[1] - box[0])), 1.0)

    # -- topology ----------------------------------------------------------

    def edge_defects(self) -> list[tuple[int, int]]:
        """Directed edges that do not pair with exactly one reversed twin."""
        counts: Counter[tuple[int, int]] = Counter()
        for a, b, c in self.faces.tolist():
            counts[(a, b)] += 1
            counts[(b, c)] += 1
            counts[(c, a)] += 1
        defects = []
        for (a, b), n in counts.items():
            if n != 1 or counts.get((b, a), 0) != 1:
                defects.append((a, b))
        return sorted(defects)

    def is_closed(self) -> bool:
        """True when every edge borders exactly two consistently wound faces."""
        return not self.edge_defects()

    # -- derived meshes ----------------------------------------------------

    def transformed(self, matrix: np.ndarray) -> Mesh:
        """Apply a 4x4 affine matrix; winding is flipped for mirror images."""
        if self.is_empty:
            return self
        m = np.asarray(matrix, dtype=np.float64)
        verts = self.vertices @ m[:3, :3].T + m[:3, 3]
        faces = self.faces
        if np.linalg.det(m[:3, :3]) < 0:
            faces = faces[:, ::-1]
        return Mesh.from_arrays(verts, faces)

    def inverted(self) -> Mesh:
        return Mesh.from_arrays(self.vertices, self.faces[:, ::-1])

    def welded(self, tol: float = DEFAULT_WELD_TOLERANCE) -> Mesh:
        """Merge vertices closer than ``tol`` and drop collapsed faces."""
        if self.is_empty:
            return Mesh.empty()
        points, remap = weld_points(self.vertices, tol)
        faces = remap[self.faces]
        keep = (faces[:, 0] != faces[:, 1]) & (faces[:, 1] != faces[:, 2]) & (faces[:, 0] != faces[:, 2])
        return compact(points, faces[keep])

    def triangles(self) -> list[tuple[tuple[float, float, float], ...]]:
        """Ordered list of triangles, each three vertex positions."""
        return [tuple(tuple(float(c) for c in p) for p in tri) for tri in self.face_points()]

    def canonical(self, decimals: int = 6) -> tuple:
        """Vertex/face-permutation-insensitive form for comparing meshes.

        Each face keeps its winding but starts from its smallest corner.
        """
        tris = []
        for tri in np.round(self.face_points(), decimals).tolist():
            corners = [tuple(p) for p in tri]
            start = corners.index(min(corners))
            tris.append(tuple(corners[start:] + corners[:start]))
        return tuple(sorted(tris))

    def same_shape(self, other: Mesh, decimals: int = 6) -> bool:
        return self.canonical(decimals) == other.canonical(decimals)


def concat(meshes: Iterable[Mesh]) -> Mesh:
    """Concatenate meshes without merging any vertices."""
    verts = []
    faces = []
    offset = 0
    for mesh in meshes:
        if mesh.is_empty:
            continue
        verts.append(mesh.vertices)
        faces.append(mesh.faces + offset)
        offset += len(mesh.vertices)
    if not verts:
        return Mesh.empty()
    return Mesh.from_arrays(np.concatenate(verts, axis=0), np.concatenate(faces, axis=0))


def compact(vertices: np.ndarray, faces: np.ndarray) -> Mesh:
    """Build a mesh keeping only referenced vertices, in first-use order."""
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if len(faces) == 0:
        return Mesh.empty()
    flat = faces.ravel()
    _, first = np.unique(flat, return_index=True)
    order = flat[np.sort(first)]
    remap = np.full(len(vertices), -1, dtype=np.int64)
    remap[order] = np.arange(len(order))
    return Mesh.from_arrays(np.asarray(vertices)[order], remap[faces])


def weld_points(points: object, tol: float) -> tuple[np.ndarray, np.ndarray]:
    """Merge points within ``tol`` (Chebyshev distance) of an earlier point.

    Returns the surviving points in first-seen order and an index map from
    input positions to surviving points.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    remap = np.empty(len(pts), dtype=np.int64)
    if len(pts) == 0:
        return pts.copy(), remap
    cell_size = max(tol, 1e-15)
    cells = np.floor(pts / cell_size).astype(np.int64).tolist()
    coords = pts.tolist()
    grid: dict[tuple[int, int, int], list[int]] = {}
    kept: list[list[float]] = []
    for i, (cx, cy, cz) in enumerate(cells):
        x, y, z = coords[i]
        found = -1
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for dz in (-1, 0, 1):
                    for j in grid.get((cx + dx, cy + dy, cz + dz), ()):
                        px, py, pz = kept[j]
                        if abs(px - x) <= tol and abs(py - y) <= tol and abs(pz - z) <= tol:
                            found = j
                            break
                    if found >= 0:
                        break
                if found >= 0:
                    break
        if found < 0:
            found = len(kept)
            kept.append(coords[i])
            grid.setdefault((cx, cy, cz), []).append(found)
        remap[i] = found
    return np.array(kept, dtype=np.float64).reshape(-1, 3), remap
