"""Tests for mesh booleans."""

import math
import warnings

import pytest

from solidtree import nodes
from solidtree.boolean import boolean, mesh_to_polygons
from solidtree.errors import NonManifoldResult, WarningAsError
from solidtree.evaluator import evaluate_scene
from solidtree.mesh import Mesh
from solidtree.tessellation import cuboid, cylinder
from solidtree.transforms import translation_matrix
from solidtree.warning_policy import SolidTreeWarning, WarningPolicy


def _moved(mesh, v):
    return mesh.transformed(translation_matrix(v))


def _codes(caught):
    return [w.message.code for w in caught if isinstance(w.message, SolidTreeWarning)]


@pytest.fixture
def overlapping():
    a = cuboid(2, 2, 2)
    b = _moved(cuboid(2, 2, 2), [1, 1, 1])
    return a, b


class TestOverlappingCubes:
    def test_union(self, overlapping):
        mesh = boolean("union", *overlapping)
        assert mesh.volume() == pytest.approx(15.0)
        assert mesh.is_closed()

    def test_difference(self, overlapping):
        mesh = boolean("difference", *overlapping)
        assert mesh.volume() == pytest.approx(7.0)
        assert mesh.is_closed()

    def test_intersection(self, overlapping):
        mesh = boolean("intersection", *overlapping)
        assert mesh.volume() == pytest.approx(1.0)
        assert mesh.is_closed()
        lo, hi = mesh.bounds()
        assert lo.tolist() == pytest.approx([1, 1, 1])
        assert hi.tolist() == pytest.approx([2, 2, 2])

    def test_deterministic(self, overlapping):
        first = boolean("difference", *overlapping)
        second = boolean("difference", *overlapping)
        assert first.vertices.tolist() == second.vertices.tolist()
        assert first.faces.tolist() == second.faces.tolist()


class TestThroughHole:
    def test_cube_minus_cylinder(self):
        block = cuboid(10, 10, 10, center=True)
        n = 32
        drill = cylinder(5, 5, 12, n, center=True)
        mesh = boolean("difference", block, drill)
        exact = 1000.0 - math.pi * 2.5**2 * 10.0
        assert mesh.volume() == pytest.approx(exact, rel=0.02)
        hole = 0.5 * n * math.sin(2 * math.pi / n) * 2.5**2 * 10.0
        assert mesh.volume() == pytest.approx(1000.0 - hole, rel=1e-6)
        assert mesh.is_closed()

    def test_union_with_face_contact(self):
        a = cuboid(1, 1, 1)
        b = _moved(cuboid(1, 1, 1), [1, 0, 0])
        mesh = boolean("union", a, b)
        assert mesh.volume() == pytest.approx(2.0)
        assert mesh.is_closed()


class TestShortcuts:
    def test_empty_operands(self):
        a = cuboid(1, 1, 1)
        empty = Mesh.empty()
        assert boolean("union", a, empty) is a
        assert boolean("union", empty, a) is a
        assert boolean("difference", a, empty) is a
        assert boolean("union", empty, empty).is_empty

    def test_identical_operands(self):
        a = cuboid(1, 2, 3)
        assert boolean("union", a, a) is a
        assert boolean("intersection", a, a) is a

    def test_disjoint_union_keeps_both(self):
        a = cuboid(1, 1, 1)
        b = _moved(cuboid(1, 1, 1), [5, 0, 0])
        mesh = boolean("union", a, b)
        assert mesh.volume() == pytest.approx(2.0)
        assert len(mesh.faces) == 24

    def test_disjoint_difference_is_first(self):
        a = cuboid(1, 1, 1)
        b = _moved(cuboid(1, 1, 1), [5, 0, 0])
        assert boolean("difference", a, b) is a

    def test_unknown_op(self):
        with pytest.raises(ValueError, match="Unknown boolean"):
            boolean("xor", cuboid(1, 1, 1), cuboid(1, 1, 1))


def _tilted_spheres():
    a = nodes.translate([-1.517, -1.486, -2.682], nodes.rotate([326.06, 10.32, 49.36], nodes.sphere(2.3107, fn=11)))
    b = nodes.translate([0.072, -1.233, -2.033], nodes.rotate([287.68, 44.56, 106.50], nodes.sphere(2.3797, fn=10)))
    return a, b


class TestGeneralPosition:
    def test_union_of_rotated_spheres_is_closed(self):
        a, b = _tilted_spheres()
        outcome = evaluate_scene(nodes.union(a, b))
        assert outcome.ok, outcome.error
        assert outcome.mesh.is_closed()

    def test_difference_of_rotated_spheres_is_closed(self):
        a, b = _tilted_spheres()
        outcome = evaluate_scene(nodes.difference(a, b))
        assert outcome.ok, outcome.error
        assert outcome.mesh.is_closed()

    def test_union_minus_difference_is_second_operand(self):
        a, b = _tilted_spheres()
        union = evaluate_scene(nodes.union(a, b)).mesh.volume()
        difference = evaluate_scene(nodes.difference(a, b)).mesh.volume()
        second = evaluate_scene(b).mesh.volume()
        assert union - difference == pytest.approx(second, rel=1e-4)


class TestNonManifold:
    def test_tangent_hole_reported(self):
        tree = nodes.difference(
            nodes.cuboid(10),
            nodes.translate([2, 2, -1], nodes.cylinder(h=30, r=2, fn=16)),
        )
        outcome = evaluate_scene(tree)
        assert outcome.status == "failed"
        assert outcome.error["kind"] == NonManifoldResult.kind
        assert outcome.error["node_path"] == "difference"
        assert "closed 2-manifold" in outcome.error["message"]


class TestEmptyResultWarning:
    def test_disjoint_intersection_warns_w02(self):
        a = cuboid(1, 1, 1)
        b = _moved(cuboid(1, 1, 1), [5, 0, 0])
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            mesh = boolean("intersection", a, b)
        assert mesh.is_empty
        assert _codes(caught) == ["W02"]

    def test_self_difference_warns_w02(self):
        a = cuboid(1, 1, 1)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            assert boolean("difference", a, a).is_empty
        assert _codes(caught) == ["W02"]

    def test_swallowed_difference(self):
        small = _moved(cuboid(1, 1, 1), [1, 1, 1])
        big = cuboid(3, 3, 3)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            mesh = boolean("difference", small, big)
        assert mesh.is_empty
        assert _codes(caught) == ["W02"]

    def test_w02_as_error(self):
        policy = WarningPolicy(warn_as_error=frozenset({"W02"}))
        a = cuboid(1, 1, 1)
        b = _moved(cuboid(1, 1, 1), [5, 0, 0])
        with pytest.raises(WarningAsError, match="W02"):
            boolean("intersection", a, b, policy=policy)

    def test_empty_operands_do_not_warn(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            boolean("intersection", Mesh.empty(), Mesh.empty())
        assert _codes(caught) == []


class TestMeshToPolygons:
    def test_cuboid_faces_merge_into_quads(self):
        polygons = mesh_to_polygons(cuboid(1, 1, 1))
        assert len(polygons) == 6
        assert all(len(p.vertices) == 4 for p in polygons)

    def test_cylinder_caps_merge(self):
        polygons = mesh_to_polygons(cylinder(2, 2, 1, 8))
        sizes = sorted(len(p.vertices) for p in polygons)
        assert sizes[-2:] == [8, 8]
