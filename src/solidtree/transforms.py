"""Affine transform matrices and the accumulated transform used during evaluation."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from solidtree.errors import InvalidDimension
from solidtree.mesh import Mesh
from solidtree.profile import Profile

IDENTITY = np.eye(4, dtype=np.float64)
IDENTITY.flags.writeable = False


def _vec3(values: object, name: str, *, pad: float = 0.0) -> tuple[float, float, float]:
    if isinstance(values, (int, float)) and not isinstance(values, bool):
        raise InvalidDimension(f"{name} must be a vector, got scalar {values!r}")
    try:
        items = [float(v) for v in values]  # type: ignore[union-attr]
    except (TypeError, ValueError) as e:
        raise InvalidDimension(f"{name} must be a numeric vector: {e}") from e
    if len(items) == 2:
        items.append(pad)
    if len(items) != 3:
        raise InvalidDimension(f"{name} must have 2 or 3 components, got {len(items)}")
    if not all(math.isfinite(v) for v in items):
        raise InvalidDimension(f"{name} must be finite, got {items}")
    return items[0], items[1], items[2]


def _freeze(m: np.ndarray) -> np.ndarray:
    m = np.array(m, dtype=np.float64)
    m.flags.writeable = False
    return m


def translation_matrix(v: Sequence[float]) -> np.ndarray:
    tx, ty, tz = _vec3(v, "translate")
    m = np.eye(4, dtype=np.float64)
    m[:3, 3] = (tx, ty, tz)
    return _freeze(m)


def _euler_to_matrix(rx: float, ry: float, rz: float) -> np.ndarray:
    """Convert Euler angles (radians, XYZ order) to a 3x3 rotation matrix."""
    cx, sx = math.cos(rx), math.sin(rx)
    cy, sy = math.cos(ry), math.sin(ry)
    cz, sz = math.cos(rz), math.sin(rz)

    # Rotation order: X then Y then Z
    Rx = np.array([[1, 0, 0], [0, cx, -sx], [0, sx, cx]], dtype=np.float64)
    Ry = np.array([[cy, 0, sy], [0, 1, 0], [-sy, 0, cy]], dtype=np.float64)
    Rz = np.array([[cz, -sz, 0], [sz, cz, 0], [0, 0, 1]], dtype=np.float64)

    return Rz @ Ry @ Rx


def _axis_angle_to_matrix(axis: tuple[float, float, float], angle: float) -> np.ndarray:
    """Rodrigues rotation of ``angle`` radians about ``axis``."""
    a = np.array(axis, dtype=np.float64)
    length = np.linalg.norm(a)
    if length <= 1e-12:
        raise InvalidDimension("rotation axis has zero length")
    x, y, z = a / length
    c, s = math.cos(angle), math.sin(angle)
    t = 1.0 - c
    return np.array(
        [
            [t * x * x + c, t * x * y - s * z, t * x * z + s * y],
            [t * x * y + s * z, t * y * y + c, t * y * z - s * x],
            [t * x * z - s * y, t * y * z + s * x, t * z * z + c],
        ],
        dtype=np.float64,
    )


def _snap(rot: np.ndarray) -> np.ndarray:
    """Snap near-exact entries so quarter turns stay exact."""
    snapped = np.round(rot)
    close = np.abs(rot - snapped) < 1e-15
    return np.where(close, snapped, rot)


def rotation_matrix(
    angles: object = None,
    *,
    axis: Sequence[float] | None = None,
    angle: float | None = None,
) -> np.ndarray:
    """Rotation in degrees.

    ``angles`` is either ``[x, y, z]`` Euler angles (applied X, then Y, then Z)
    or a single number, meaning a rotation about Z. Alternatively ``angle``
    about ``axis``.
    """
    m = np.eye(4, dtype=np.float64)
    if axis is not None:
        if angle is None:
            raise InvalidDimension("rotate with an axis requires an angle")
        m[:3, :3] = _axis_angle_to_matrix(_vec3(axis, "rotate axis"), math.radians(float(angle)))
    elif isinstance(angles, (int, float)) and not isinstance(angles, bool):
        m[:3, :3] = _euler_to_matrix(0.0, 0.0, math.radians(float(angles)))
    elif angles is not None:
        rx, ry, rz = _vec3(angles, "rotate")
        m[:3, :3] = _euler_to_matrix(math.radians(rx), math.radians(ry), math.radians(rz))
    elif angle is not None:
        m[:3, :3] = _euler_to_matrix(0.0, 0.0, math.radians(float(angle)))
    m[:3, :3] = _snap(m[:3, :3])
    return _freeze(m)


def scale_matrix(v: object) -> np.ndarray:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        sx = sy = sz = float(v)
    else:
        sx, sy, sz = _vec3(v, "scale", pad=1.0)
    if 0.0 in (sx, sy, sz):
        raise InvalidDimension(f"scale factors must be non-zero, got {[sx, sy, sz]}")
    return _freeze(np.diag([sx, sy, sz, 1.0]))


def mirror_matrix(normal: Sequence[float]) -> np.ndarray:
    """Reflection through the plane through the origin with the given normal."""
    n = np.array(_vec3(normal, "mirror"), dtype=np.float64)
    length = np.linalg.norm(n)
    if length <= 1e-12:
        raise InvalidDimension("mirror normal has zero length")
    n = n / length
    m = np.eye(4, dtype=np.float64)
    m[:3, :3] = np.eye(3) - 2.0 * np.outer(n, n)
    return _freeze(m)


def affine_matrix(values: object) -> np.ndarray:
    """Accept a 3x4 or 4x4 nested list; the bottom row must be affine."""
    try:
        arr = np.array(values, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidDimension(f"multmatrix must be numeric: {e}") from e
    if arr.shape == (3, 4):
        arr = np.vstack([arr, [0.0, 0.0, 0.0, 1.0]])
    if arr.shape != (4, 4):
        raise InvalidDimension(f"multmatrix must be 3x4 or 4x4, got shape {arr.shape}")
    if not np.allclose(arr[3], [0.0, 0.0, 0.0, 1.0]):
        raise InvalidDimension("multmatrix bottom row must be [0, 0, 0, 1]")
    if not np.all(np.isfinite(arr)):
        raise InvalidDimension("multmatrix entries must be finite")
    return _freeze(arr)


def check_invertible(matrix: np.ndarray) -> None:
    if abs(np.linalg.det(np.asarray(matrix)[:3, :3])) <= 1e-12:
        raise InvalidDimension("transform matrix is singular")


def matrix_key(matrix: np.ndarray) -> tuple[float, ...]:
    """Hashable, rounding-tolerant key for a 4x4 matrix."""
    rounded = np.round(np.asarray(matrix, dtype=np.float64)[:3], 12) + 0.0
    return tuple(rounded.ravel().tolist())


@dataclass(frozen=True)
class AccumulatedTransform:
    """Ancestor transform carried down the tree while evaluating.

    ``descend`` post-multiplies a child's local matrix, so a vertex ends up
    as ``ancestor @ child @ local``. The product is applied once, when a
    leaf result is materialised.
    """

    matrix: np.ndarray = field(default_factory=lambda: IDENTITY)

    def descend(self, local: np.ndarray) -> AccumulatedTransform:
        return AccumulatedTransform(_freeze(self.matrix @ np.asarray(local, dtype=np.float64)))

    @property
    def is_identity(self) -> bool:
        return bool(np.array_equal(self.matrix, IDENTITY))

    def key(self) -> tuple[float, ...]:
        return matrix_key(self.matrix)

    def apply_mesh(self, mesh: Mesh) -> Mesh:
        if self.is_identity:
            return mesh
        return mesh.transformed(self.matrix)

    def apply_profile(self, profile: Profile) -> Profile:
        if self.is_identity:
            return profile
        return profile.transformed(self.matrix)


ROOT_TRANSFORM = AccumulatedTransform()
