"""Tests for expression scalars."""

import math

import pytest

from solidtree.errors import InvalidParameter
from solidtree.expressions import evaluate_expression, evaluate_predicate, is_expression


class TestIsExpression:
    def test_leading_equals(self):
        assert is_expression("=1 + 2")
        assert not is_expression("1 + 2")
        assert not is_expression("=")
        assert not is_expression(5)


class TestArithmetic:
    @pytest.mark.parametrize(
        "expr,expected",
        [
            ("=1 + 2 * 3", 7),
            ("=(1 + 2) * 3", 9),
            ("=10 / 4", 2.5),
            ("=7 % 3", 1),
            ("=-2 * -3", 6),
            ("=2 - 3 - 4", -5),
            ("=1.5e2", 150.0),
        ],
    )
    def test_precedence(self, expr, expected):
        assert evaluate_expression(expr) == expected

    def test_variables(self):
        assert evaluate_expression("=$width / 2 + 1", {"width": 10}) == 6.0

    def test_without_equals(self):
        assert evaluate_expression("$a * $b", {"a": 3, "b": 4}) == 12

    def test_quantized(self):
        assert evaluate_expression("=0.1 + 0.2") == 0.3

    def test_negative_zero_canonical(self):
        result = evaluate_expression("=-0.0 * 1")
        assert result == 0.0
        assert math.copysign(1.0, result) == 1.0

    def test_string_concat(self):
        assert evaluate_expression("='ab' + 'cd'") == "abcd"

    def test_division_by_zero(self):
        with pytest.raises(InvalidParameter, match="division by zero"):
            evaluate_expression("=1 / 0")

    def test_unknown_parameter(self):
        with pytest.raises(InvalidParameter, match="unknown parameter"):
            evaluate_expression("=$missing + 1", {})

    def test_type_error(self):
        with pytest.raises(InvalidParameter, match="needs numbers"):
            evaluate_expression("='a' * 2")

    def test_trailing_tokens(self):
        with pytest.raises(InvalidParameter, match="unexpected token"):
            evaluate_expression("=1 2")

    def test_bad_character(self):
        with pytest.raises(InvalidParameter, match="unexpected character"):
            evaluate_expression("=1 # 2")


class TestVectors:
    def test_list_literal(self):
        assert evaluate_expression("=[1, $x, 3]", {"x": 2}) == [1, 2, 3]

    def test_vector_add(self):
        assert evaluate_expression("=$a + [1, 1, 1]", {"a": [1, 2, 3]}) == [2, 3, 4]

    def test_vector_scale(self):
        assert evaluate_expression("=$a * 2", {"a": [1, 2]}) == [2, 4]
        assert evaluate_expression("=2 * $a", {"a": [1, 2]}) == [2, 4]

    def test_negate_vector(self):
        assert evaluate_expression("=-$a", {"a": [1, -2]}) == [-1, 2]

    def test_indexing(self):
        assert evaluate_expression("=$a[1]", {"a": [5, 6, 7]}) == 6

    def test_index_out_of_range(self):
        with pytest.raises(InvalidParameter, match="out of range"):
            evaluate_expression("=$a[3]", {"a": [5, 6, 7]})

    def test_mismatched_lengths(self):
        with pytest.raises(InvalidParameter):
            evaluate_expression("=[1, 2] + [1, 2, 3]")


class TestLogic:
    def test_comparison(self):
        assert evaluate_expression("=$w > 0", {"w": 3}) is True
        assert evaluate_expression("=$w == 3", {"w": 3}) is True

    def test_and_or_not(self):
        assert evaluate_expression("=true and not false") is True
        assert evaluate_expression("=false or 0") is False

    def test_ternary(self):
        assert evaluate_expression("=$n > 2 ? 10 : 20", {"n": 5}) == 10
        assert evaluate_expression("=$n > 2 ? 10 : 20", {"n": 1}) == 20

    def test_string_equality(self):
        assert evaluate_expression("=$kind == 'round'", {"kind": "round"}) is True

    def test_predicate(self):
        assert evaluate_predicate("$width > 0", {"width": 1})
        assert not evaluate_predicate("$width > 0", {"width": -5})


class TestFunctions:
    def test_trig_in_degrees(self):
        assert evaluate_expression("=sin(90)") == 1.0
        assert evaluate_expression("=cos(180)") == -1.0
        assert evaluate_expression("=atan2(1, 1)") == 45.0

    def test_min_max_clamp(self):
        assert evaluate_expression("=min(3, 1, 2)") == 1
        assert evaluate_expression("=max([4, 9])") == 9
        assert evaluate_expression("=clamp(15, 0, 10)") == 10

    def test_round_half_away_from_zero(self):
        assert evaluate_expression("=round(2.5)") == 3
        assert evaluate_expression("=round(-2.5)") == -3

    def test_sqrt_and_norm(self):
        assert evaluate_expression("=sqrt(16)") == 4.0
        assert evaluate_expression("=norm([3, 4])") == 5.0

    def test_len(self):
        assert evaluate_expression("=len($a)", {"a": [1, 2, 3]}) == 3

    def test_pi(self):
        assert evaluate_expression("=pi") == round(math.pi, 9)

    def test_sqrt_domain(self):
        with pytest.raises(InvalidParameter, match="domain"):
            evaluate_expression("=sqrt(-1)")

    def test_unknown_function(self):
        with pytest.raises(InvalidParameter, match="unknown function"):
            evaluate_expression("=frobnicate(1)")

    def test_wrong_arity(self):
        with pytest.raises(InvalidParameter, match="expects 2 arguments"):
            evaluate_expression("=pow(2)")
