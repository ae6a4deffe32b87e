"""Tests for linear and rotational extrusion."""

import math

import numpy as np
import pytest

from solidtree.errors import InvalidDimension, ProfileCrossesAxis
from solidtree.extrusion import linear_extrude, rotate_extrude
from solidtree.profile import make_profile
from solidtree.resolution import ResolutionContext


def _rect(x0, y0, x1, y1):
    return make_profile([[x0, y0], [x1, y0], [x1, y1], [x0, y1]])


def _layer(mesh, z):
    return mesh.vertices[np.isclose(mesh.vertices[:, 2], z)]


class TestLinearExtrude:
    def test_prism_volume(self):
        mesh = linear_extrude(_rect(0, 0, 2, 3), 4)
        assert mesh.volume() == pytest.approx(24.0)
        assert mesh.is_closed()

    def test_centered(self):
        lo, hi = linear_extrude(_rect(0, 0, 1, 1), 4, center=True).bounds()
        assert lo[2] == pytest.approx(-2.0)
        assert hi[2] == pytest.approx(2.0)

    def test_non_convex_profile(self):
        l_shape = make_profile([[0, 0], [2, 0], [2, 1], [1, 1], [1, 2], [0, 2]])
        mesh = linear_extrude(l_shape, 1)
        assert mesh.volume() == pytest.approx(3.0)
        assert mesh.is_closed()

    def test_twist_rotates_top_clockwise(self):
        mesh = linear_extrude(_rect(0, 0, 1, 1), 5, twist=90)
        bottom = _layer(mesh, 0.0)
        top = _layer(mesh, 5.0)
        rotated = np.column_stack([bottom[:, 1], -bottom[:, 0]])
        np.testing.assert_allclose(top[:, :2], rotated, atol=1e-12)
        assert mesh.is_closed()
        assert mesh.volume() > 0

    def test_asymmetric_twist_direction(self):
        mesh = linear_extrude(_rect(1, 0, 3, 1), 2, twist=90, slices=4)
        top = _layer(mesh, 2.0)
        # (3, 0) turns clockwise onto the negative y axis
        assert np.any(np.all(np.isclose(top[:, :2], [0, -3]), axis=1))
        assert mesh.is_closed()

    def test_default_slices_follow_resolution(self):
        profile = _rect(0, 0, 1, 1)
        coarse = linear_extrude(profile, 1, twist=180, resolution=ResolutionContext(fn=8))
        fine = linear_extrude(profile, 1, twist=180, resolution=ResolutionContext(fn=32))
        # 4 layers of 4 points vs 16 layers
        assert len(coarse.vertices) == 4 * 5
        assert len(fine.vertices) == 4 * 17

    def test_scale_tapers_top(self):
        mesh = linear_extrude(_rect(-1, -1, 1, 1), 3, scale=0.5)
        top = _layer(mesh, 3.0)
        np.testing.assert_allclose(np.abs(top[:, :2]).max(), 0.5)
        # frustum of a square pyramid: h/3 * (A1 + A2 + sqrt(A1*A2))
        assert mesh.volume() == pytest.approx(1.0 * (4 + 1 + 2))
        assert mesh.is_closed()

    def test_anisotropic_scale(self):
        mesh = linear_extrude(_rect(0, 0, 2, 2), 1, scale=[2, 1])
        top = _layer(mesh, 1.0)
        assert top[:, 0].max() == pytest.approx(4.0)
        assert top[:, 1].max() == pytest.approx(2.0)

    def test_zero_height(self):
        with pytest.raises(InvalidDimension, match="height"):
            linear_extrude(_rect(0, 0, 1, 1), 0)

    def test_bad_slices(self):
        with pytest.raises(InvalidDimension, match="slices"):
            linear_extrude(_rect(0, 0, 1, 1), 1, twist=10, slices=0)

    def test_zero_scale(self):
        with pytest.raises(InvalidDimension, match="scale"):
            linear_extrude(_rect(0, 0, 1, 1), 1, scale=0)


class TestRotateExtrude:
    def test_annulus_volume(self):
        n = 64
        mesh = rotate_extrude(_rect(1, 0, 2, 1), resolution=ResolutionContext(fn=n))
        pappus = 2 * math.pi * 1.5 * 1.0
        polygon_factor = n * math.sin(2 * math.pi / n) / (2 * math.pi)
        assert mesh.volume() == pytest.approx(pappus * polygon_factor)
        assert mesh.is_closed()

    def test_profile_touching_axis(self):
        mesh = rotate_extrude(_rect(0, 0, 1, 2), resolution=ResolutionContext(fn=16))
        assert mesh.is_closed()
        on_axis = np.isclose(mesh.vertices[:, 0], 0) & np.isclose(mesh.vertices[:, 1], 0)
        assert on_axis.sum() == 2
        assert mesh.volume() == pytest.approx(0.5 * 16 * math.sin(2 * math.pi / 16) * 2.0)

    def test_partial_sweep_is_closed(self):
        mesh = rotate_extrude(_rect(1, 0, 2, 1), 90, resolution=ResolutionContext(fn=64))
        assert mesh.is_closed()
        full = rotate_extrude(_rect(1, 0, 2, 1), resolution=ResolutionContext(fn=64))
        assert mesh.volume() == pytest.approx(full.volume() / 4)

    def test_explicit_fn(self):
        mesh = rotate_extrude(_rect(1, 0, 2, 1), resolution=ResolutionContext(fn=64), fn=6)
        assert len(mesh.vertices) == 6 * 4

    def test_crossing_axis(self):
        with pytest.raises(ProfileCrossesAxis):
            rotate_extrude(_rect(-1, 0, 1, 1))

    @pytest.mark.parametrize("angle", [0, -90, 400])
    def test_bad_angle(self, angle):
        with pytest.raises(InvalidDimension, match="angle"):
            rotate_extrude(_rect(1, 0, 2, 1), angle)
