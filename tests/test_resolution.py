"""Tests for tessellation resolution settings."""

import pytest

from solidtree.errors import ResolutionError
from solidtree.resolution import DEFAULT_RESOLUTION, ResolutionContext, check_overrides


class TestFragments:
    def test_defaults(self):
        assert DEFAULT_RESOLUTION.key() == (0, 12.0, 2.0)

    def test_large_radius_limited_by_angle(self):
        # 360 / 12 = 30 beats 2*pi*10 / 2
        assert DEFAULT_RESOLUTION.fragments(10.0) == 30

    def test_small_radius_floor_of_five(self):
        assert DEFAULT_RESOLUTION.fragments(1.0) == 5

    def test_default_is_coarse(self):
        # 2*pi*2.5 / 2 = 7.85 -> 8
        assert DEFAULT_RESOLUTION.fragments(2.5) == 8

    def test_fixed_fn_wins(self):
        ctx = ResolutionContext(fn=16)
        assert ctx.fragments(0.5) == 16
        assert ctx.fragments(100.0) == 16

    def test_explicit_fn_argument(self):
        assert DEFAULT_RESOLUTION.fragments(10.0, fn=7) == 7

    def test_zero_radius(self):
        assert ResolutionContext(fn=64).fragments(0.0) == 3

    def test_fs_controls_medium_radius(self):
        ctx = ResolutionContext(fa=1.0, fs=1.0)
        # 2*pi*3 / 1 = 18.85 -> 19
        assert ctx.fragments(3.0) == 19


class TestValidation:
    @pytest.mark.parametrize("fn", [1, 2])
    def test_fn_below_minimum(self, fn):
        with pytest.raises(ResolutionError, match="below the minimum"):
            ResolutionContext(fn=fn)

    def test_negative_fn(self):
        with pytest.raises(ResolutionError):
            ResolutionContext(fn=-1)

    def test_non_integer_fn(self):
        with pytest.raises(ResolutionError, match="integer"):
            ResolutionContext(fn=3.5)

    def test_integral_float_fn_accepted(self):
        assert ResolutionContext(fn=8.0).fn == 8

    @pytest.mark.parametrize("field", ["fa", "fs"])
    def test_non_positive_angle_or_size(self, field):
        with pytest.raises(ResolutionError, match=field):
            ResolutionContext(**{field: 0})

    def test_explicit_fn_argument_validated(self):
        with pytest.raises(ResolutionError):
            DEFAULT_RESOLUTION.fragments(1.0, fn=2)

    def test_check_overrides_normalises(self):
        assert check_overrides({"fn": 16.0, "fs": 1}) == {"fn": 16, "fs": 1.0}

    def test_check_overrides_rejects(self):
        with pytest.raises(ResolutionError, match="fa must be > 0"):
            check_overrides({"fa": -1})


class TestPush:
    def test_push_returns_new_context(self):
        base = ResolutionContext()
        pushed = base.push(fn=24)
        assert pushed.fn == 24
        assert base.fn == 0
        assert pushed.fa == base.fa

    def test_push_records_layers(self):
        ctx = DEFAULT_RESOLUTION.push(fn=8).push(fs=0.5)
        assert ctx.layers == ((("fn", 8),), (("fs", 0.5),))
        assert ctx.key() == (8, 12.0, 0.5)

    def test_empty_push_is_identity(self):
        assert DEFAULT_RESOLUTION.push() is DEFAULT_RESOLUTION

    def test_layers_ignored_for_equality(self):
        assert DEFAULT_RESOLUTION.push(fn=8) == ResolutionContext(fn=8)

    def test_push_validates(self):
        with pytest.raises(ResolutionError):
            DEFAULT_RESOLUTION.push(fa=-1)
