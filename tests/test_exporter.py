"""Tests for GLB and JSON export."""

import json
import struct

import pygltflib
import pytest

from solidtree.errors import ExportError
from solidtree.exporter import build_gltf, export_glb, export_json, mesh_to_dict
from solidtree.mesh import Mesh
from solidtree.tessellation import circle, cuboid, square


@pytest.fixture
def box():
    return cuboid(1, 2, 3)


class TestGlb:
    def test_glb_magic_bytes(self, box, tmp_path):
        out = tmp_path / "box.glb"
        export_glb(box, out)
        data = out.read_bytes()
        assert data[:4] == b"glTF"
        assert struct.unpack_from("<I", data, 8)[0] == len(data)

    def test_reloadable_by_pygltflib(self, box, tmp_path):
        out = tmp_path / "box.glb"
        export_glb(box, out, name="box")
        gltf = pygltflib.GLTF2().load(str(out))
        assert len(gltf.meshes) == 1
        assert gltf.meshes[0].name == "box"
        assert gltf.nodes[0].mesh == 0

    def test_flat_shaded_corners(self, box):
        gltf = build_gltf(box)
        attributes = gltf.meshes[0].primitives[0].attributes
        positions = gltf.accessors[attributes.POSITION]
        normals = gltf.accessors[attributes.NORMAL]
        assert positions.count == 3 * len(box.faces)
        assert normals.count == positions.count
        assert positions.type == "VEC3"
        assert positions.componentType == pygltflib.FLOAT

    def test_position_bounds(self, box):
        gltf = build_gltf(box)
        positions = gltf.accessors[0]
        assert positions.min == [0.0, 0.0, 0.0]
        assert positions.max == [1.0, 2.0, 3.0]

    def test_deterministic_bytes(self, box, tmp_path):
        a, b = tmp_path / "a.glb", tmp_path / "b.glb"
        export_glb(box, a)
        export_glb(box, b)
        assert a.read_bytes() == b.read_bytes()

    def test_base_color_rounded(self, box, tmp_path):
        out = tmp_path / "box.glb"
        export_glb(box, out, color=(1.0, 0.5, 0.25, 1.0))
        data = out.read_bytes()
        length = struct.unpack_from("<I", data, 12)[0]
        chunk = data[20 : 20 + length].decode("utf-8")
        assert '"baseColorFactor":[1.0,0.5,0.25,1.0]' in chunk
        assert json.loads(chunk)["materials"][0]["alphaMode"] == "OPAQUE"

    def test_empty_mesh_rejected(self, tmp_path):
        with pytest.raises(ExportError, match="empty mesh"):
            export_glb(Mesh.empty(), tmp_path / "empty.glb")

    def test_bad_color(self, box, tmp_path):
        with pytest.raises(ExportError, match="4 components"):
            export_glb(box, tmp_path / "box.glb", color=(1.0, 0.0, 0.0))

    def test_unwritable_path(self, box, tmp_path):
        with pytest.raises(ExportError, match="Failed to export glTF"):
            export_glb(box, tmp_path / "missing" / "box.glb")


class TestJson:
    def test_mesh_dict(self, box):
        data = mesh_to_dict(box)
        assert len(data["vertices"]) == 8
        assert len(data["faces"]) == 12
        assert data["volume"] == pytest.approx(6.0)
        assert data["closed"] is True

    def test_mesh_file(self, box, tmp_path):
        out = tmp_path / "box.json"
        export_json(box, out)
        data = json.loads(out.read_text())
        assert data["volume"] == pytest.approx(6.0)

    def test_profiles_file(self, tmp_path):
        out = tmp_path / "profiles.json"
        export_json([square(2, 1), circle(1, 6)], out)
        data = json.loads(out.read_text())
        assert len(data["profiles"]) == 2
        assert data["profiles"][0] == [[0.0, 0.0], [2.0, 0.0], [2.0, 1.0], [0.0, 1.0]]
        assert len(data["profiles"][1]) == 6

    def test_unwritable_path(self, box, tmp_path):
        with pytest.raises(ExportError, match="Failed to write JSON"):
            export_json(box, tmp_path / "missing" / "box.json")
