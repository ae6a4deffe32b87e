"""Tests for parameterised modules: binding, validation and assertions."""

import pytest

from solidtree import nodes
from solidtree.errors import AssertionFailed, InvalidParameter, MissingRequired
from solidtree.modules import REQUIRED, Assertion, Module, Parameter, bind_arguments, instantiate
from solidtree.nodes import ModuleInstance


def _plate_body(width, height=2):
    return nodes.cuboid([width, 10, height])


@pytest.fixture
def plate():
    return Module(
        "plate",
        parameters=(
            Parameter("width", type="number"),
            Parameter("height", default=2, type="number", minimum=0.5),
        ),
        assertions=(Assertion("$width > 0", "width must be positive"),),
        body=_plate_body,
    )


class TestParameter:
    def test_required(self):
        assert Parameter("x").required
        assert not Parameter("x", default=None).required
        assert repr(REQUIRED) == "REQUIRED"

    def test_unknown_type(self):
        with pytest.raises(InvalidParameter, match="unknown type"):
            Parameter("x", type="matrix")

    def test_integer_accepts_integral_float(self):
        assert Parameter("n", type="integer").validate(3.0) == 3

    def test_integer_rejects_fraction(self):
        with pytest.raises(InvalidParameter, match="integer"):
            Parameter("n", type="integer").validate(2.5)

    def test_boolean_is_not_number(self):
        with pytest.raises(InvalidParameter, match="number"):
            Parameter("w", type="number").validate(True)

    def test_vector(self):
        assert Parameter("v", type="vector").validate((1, 2, 3)) == [1, 2, 3]
        with pytest.raises(InvalidParameter, match="list of numbers"):
            Parameter("v", type="vector").validate([1, "a"])

    def test_range(self):
        p = Parameter("r", type="number", minimum=0, maximum=10)
        assert p.validate(10) == 10
        with pytest.raises(InvalidParameter, match=">= 0"):
            p.validate(-1)
        with pytest.raises(InvalidParameter, match="<= 10"):
            p.validate(11)


class TestBinding:
    def test_positional_and_default(self, plate):
        assert bind_arguments(plate, [4]) == {"width": 4, "height": 2}

    def test_named(self, plate):
        assert bind_arguments(plate, [], {"height": 3, "width": 1}) == {"width": 1, "height": 3}

    def test_missing_required(self, plate):
        with pytest.raises(MissingRequired, match="width"):
            bind_arguments(plate, [], {"height": 3})

    def test_unknown_argument(self, plate):
        with pytest.raises(InvalidParameter, match="no parameter 'depth'"):
            bind_arguments(plate, [1], {"depth": 3})

    def test_duplicate_argument(self, plate):
        with pytest.raises(InvalidParameter, match="twice"):
            bind_arguments(plate, [1], {"width": 2})

    def test_too_many_positional(self, plate):
        with pytest.raises(InvalidParameter, match="positional"):
            bind_arguments(plate, [1, 2, 3])

    def test_type_checked(self, plate):
        with pytest.raises(InvalidParameter, match="must be a number"):
            bind_arguments(plate, ["wide"])

    def test_range_checked(self, plate):
        with pytest.raises(InvalidParameter, match=">= 0.5"):
            bind_arguments(plate, [1], {"height": 0.1})

    def test_duplicate_declaration(self):
        with pytest.raises(InvalidParameter, match="twice"):
            Module("m", parameters=(Parameter("a"), Parameter("a")))


class TestInstantiate:
    def test_returns_module_instance(self, plate):
        inst = plate(5)
        assert isinstance(inst, ModuleInstance)
        assert inst.module_ref == "plate"
        assert dict(inst.bound_params) == {"width": 5, "height": 2}
        assert inst.body.params["size"] == (5.0, 10.0, 2.0)
        assert inst.dimension == 3

    def test_assertion_failure_aborts(self, plate):
        calls = []

        def body(width, height):
            calls.append(width)
            return nodes.cuboid(1)

        module = Module("plate", plate.parameters, plate.assertions, body)
        with pytest.raises(AssertionFailed, match="width must be positive") as exc_info:
            module(width=-5)
        assert exc_info.value.kind == "ParameterError::AssertionFailed"
        assert calls == []

    def test_callable_assertion(self):
        module = Module(
            "m",
            parameters=(Parameter("a"), Parameter("b")),
            assertions=(Assertion(lambda args: args["a"] < args["b"]),),
            body=lambda a, b: nodes.cuboid([a, b, 1]),
        )
        module(1, 2)
        with pytest.raises(AssertionFailed, match="assertion failed"):
            module(2, 1)

    def test_list_body_is_unioned(self):
        module = Module(
            "pair",
            body=lambda: [nodes.cuboid(1), nodes.translate([2, 0, 0], nodes.cuboid(1))],
        )
        inst = module()
        assert inst.body.label == "union"

    def test_body_must_return_node(self):
        module = Module("bad", body=lambda: 42)
        with pytest.raises(InvalidParameter, match="expected a Node"):
            module()

    def test_template_body_needs_expander(self):
        module = Module("t", body={"cube": 1})
        with pytest.raises(InvalidParameter, match="expander"):
            instantiate(module)

    def test_template_body_with_expander(self):
        module = Module("t", parameters=(Parameter("s", default=2),), body={"cube": "$s"})
        seen = {}

        def expand(template, bound):
            seen.update(bound)
            return nodes.cuboid(bound["s"])

        inst = instantiate(module, expand=expand)
        assert seen == {"s": 2}
        assert inst.body.params["size"] == (2.0, 2.0, 2.0)

    def test_same_arguments_same_digest(self, plate):
        assert plate(5).digest == plate(width=5).digest
        assert plate(5).digest != plate(6).digest
