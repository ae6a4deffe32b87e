"""Mesh output: deterministic binary glTF and JSON dumps."""

from __future__ import annotations

import json
import struct
from pathlib import Path
from typing import Any, Sequence

import numpy as np
import pygltflib

from solidtree.errors import ExportError
from solidtree.mesh import Mesh
from solidtree.profile import Profile

DEFAULT_COLOR = (0.8, 0.8, 0.8, 1.0)

GLB_MAGIC = 0x46546C67
CHUNK_JSON = 0x4E4F534A


def export_glb(
    mesh: Mesh,
    output_path: Path,
    *,
    name: str = "solidtree",
    color: Sequence[float] = DEFAULT_COLOR,
) -> None:
    """Write ``mesh`` as a single flat-shaded glTF primitive.

    Raises:
        ExportError: the mesh is empty or the file cannot be written.
    """
    try:
        output_path.write_bytes(glb_bytes(build_gltf(mesh, name=name, color=color)))
    except ExportError:
        raise
    except Exception as e:
        raise ExportError(f"Failed to export glTF: {e}") from e


class _BufferBuilder:
    """Appends typed arrays to one binary blob, one view and accessor each."""

    def __init__(self, gltf: pygltflib.GLTF2) -> None:
        self.gltf = gltf
        self.blob = bytearray()

    def add(
        self,
        array: np.ndarray,
        component_type: int,
        accessor_type: str,
        target: int,
        *,
        with_bounds: bool = False,
    ) -> int:
        data = array.tobytes()
        self.blob.extend(b"\x00" * (-len(self.blob) % 4))
        view = pygltflib.BufferView(buffer=0, byteOffset=len(self.blob), byteLength=len(data), target=target)
        self.blob.extend(data)
        self.gltf.bufferViews.append(view)

        accessor = pygltflib.Accessor(
            bufferView=len(self.gltf.bufferViews) - 1,
            byteOffset=0,
            componentType=component_type,
            count=len(array),
            type=accessor_type,
        )
        if with_bounds:
            accessor.min = array.min(axis=0).tolist()
            accessor.max = array.max(axis=0).tolist()
        self.gltf.accessors.append(accessor)
        return len(self.gltf.accessors) - 1

    def finish(self) -> None:
        self.gltf.buffers = [pygltflib.Buffer(byteLength=len(self.blob))]
        self.gltf.set_binary_blob(bytes(self.blob))


def build_gltf(
    mesh: Mesh,
    *,
    name: str = "solidtree",
    color: Sequence[float] = DEFAULT_COLOR,
) -> pygltflib.GLTF2:
    """Build the complete glTF2 structure for one mesh."""
    if mesh.is_empty:
        raise ExportError("cannot export an empty mesh")

    gltf = pygltflib.GLTF2(
        scene=0,
        scenes=[pygltflib.Scene(nodes=[0])],
        nodes=[pygltflib.Node(mesh=0, name=name)],
        materials=[_build_material(color)],
    )
    buffers = _BufferBuilder(gltf)

    # Unshared corners so every triangle keeps its own face normal
    positions = mesh.face_points().reshape(-1, 3).astype(np.float32)
    normals = np.repeat(mesh.face_normals(), 3, axis=0).astype(np.float32)
    indices = np.arange(len(positions), dtype=np.uint32)

    attributes = pygltflib.Attributes(
        POSITION=buffers.add(positions, pygltflib.FLOAT, pygltflib.VEC3, pygltflib.ARRAY_BUFFER, with_bounds=True),
        NORMAL=buffers.add(normals, pygltflib.FLOAT, pygltflib.VEC3, pygltflib.ARRAY_BUFFER),
    )
    index_accessor = buffers.add(indices, pygltflib.UNSIGNED_INT, pygltflib.SCALAR, pygltflib.ELEMENT_ARRAY_BUFFER)
    gltf.meshes.append(
        pygltflib.Mesh(
            name=name,
            primitives=[pygltflib.Primitive(attributes=attributes, indices=index_accessor, material=0)],
        )
    )
    buffers.finish()
    return gltf


def _build_material(color: Sequence[float]) -> pygltflib.Material:
    rgba = [float(c) for c in color]
    if len(rgba) != 4:
        raise ExportError(f"color must have 4 components (RGBA), got {len(rgba)}")
    return pygltflib.Material(
        name="solid",
        pbrMetallicRoughness=pygltflib.PbrMetallicRoughness(
            baseColorFactor=rgba,
            metallicFactor=0.0,
            roughnessFactor=1.0,
        ),
        alphaMode="OPAQUE" if rgba[3] == 1.0 else "BLEND",
        doubleSided=False,
    )


def glb_bytes(gltf: pygltflib.GLTF2) -> bytes:
    """Serialise ``gltf`` to GLB with a compact JSON chunk.

    Material colors are rounded to 6 decimals so equal inputs always give
    byte-identical files.
    """
    raw = b"".join(gltf.save_to_bytes())
    json_length, chunk_type = struct.unpack_from("<II", raw, 12)
    if chunk_type != CHUNK_JSON:
        raise ExportError("unexpected GLB layout: first chunk is not JSON")

    document = json.loads(raw[20 : 20 + json_length])
    for material in document.get("materials", []):
        pbr = material.get("pbrMetallicRoughness", {})
        if "baseColorFactor" in pbr:
            pbr["baseColorFactor"] = [round(v, 6) for v in pbr["baseColorFactor"]]

    chunk = json.dumps(document, separators=(",", ":")).encode("utf-8")
    chunk += b" " * (-len(chunk) % 4)
    tail = raw[20 + json_length :]
    header = struct.pack("<III", GLB_MAGIC, 2, 12 + 8 + len(chunk) + len(tail))
    return header + struct.pack("<II", len(chunk), CHUNK_JSON) + chunk + tail


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def mesh_to_dict(mesh: Mesh) -> dict[str, Any]:
    return {
        "vertices": mesh.vertices.tolist(),
        "faces": mesh.faces.tolist(),
        "volume": mesh.volume(),
        "closed": mesh.is_closed(),
    }


def profiles_to_dict(profiles: Sequence[Profile]) -> dict[str, Any]:
    return {"profiles": [p.to_list() for p in profiles]}


def export_json(result: Mesh | Sequence[Profile], output_path: Path) -> None:
    """Dump a mesh, or a list of 2D profiles, as JSON."""
    payload = mesh_to_dict(result) if isinstance(result, Mesh) else profiles_to_dict(result)
    try:
        output_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write JSON: {e}") from e
