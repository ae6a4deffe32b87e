"""Shared fixtures for solidtree tests."""

import pytest

from solidtree.resolution import ResolutionContext


@pytest.fixture
def fine_resolution():
    return ResolutionContext(fn=32)


@pytest.fixture
def minimal_scene_yaml():
    return """\
version: "0.1"
scene:
  cube: {size: 10, center: true}
"""


@pytest.fixture
def plate_scene_yaml():
    return """\
version: "0.1"
resolution: {fn: 16}
params:
  width: 20
  hole: 4
modules:
  bolt_hole:
    params:
      - name: x
        type: number
      - name: d
        type: number
        default: $hole
    assert: "$d > 0"
    body:
      translate: [$x, 0, 0]
      children:
        - cylinder: {d: $d, h: 6, center: true}
scene:
  difference:
    - cube: {size: [$width, 10, 2], center: true}
    - bolt_hole: {x: -5}
    - bolt_hole: {x: 5}
"""


@pytest.fixture
def profile_scene_yaml():
    return """\
version: "0.1"
scene:
  union:
    - square: [2, 1]
    - translate: [5, 0, 0]
      children:
        - circle: {r: 1, fn: 8}
"""


@pytest.fixture
def write_scene(tmp_path):
    def _write(text, name="scene.yaml"):
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write
