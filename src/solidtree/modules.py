"""Parameterised modules: argument binding, validation and assertions."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence, Union

from solidtree.errors import AssertionFailed, InvalidParameter, MissingRequired
from solidtree.expressions import evaluate_predicate
from solidtree.nodes import ModuleInstance, Node, union

logger = logging.getLogger(__name__)

PARAM_TYPES: frozenset[str] = frozenset({"number", "integer", "boolean", "string", "vector", "any"})


class _Required:
    def __repr__(self) -> str:
        return "REQUIRED"


REQUIRED: Any = _Required()


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class Parameter:
    """A declared module parameter.

    ``type`` is one of :data:`PARAM_TYPES`; ``minimum``/``maximum`` bound
    numeric values inclusively.
    """

    name: str
    default: Any = REQUIRED
    type: str = "any"
    minimum: float | None = None
    maximum: float | None = None

    def __post_init__(self) -> None:
        if self.type not in PARAM_TYPES:
            raise InvalidParameter(
                f"parameter {self.name!r} has unknown type {self.type!r} (known: {sorted(PARAM_TYPES)})"
            )

    @property
    def required(self) -> bool:
        return self.default is REQUIRED

    def validate(self, value: Any) -> Any:
        """Check ``value`` against the declared type and range; returns the normalised value."""
        t = self.type
        if t == "number":
            if not _is_number(value) or not math.isfinite(value):
                raise InvalidParameter(f"parameter {self.name!r} must be a number, got {value!r}")
        elif t == "integer":
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidParameter(f"parameter {self.name!r} must be an integer, got {value!r}")
        elif t == "boolean":
            if not isinstance(value, bool):
                raise InvalidParameter(f"parameter {self.name!r} must be a boolean, got {value!r}")
        elif t == "string":
            if not isinstance(value, str):
                raise InvalidParameter(f"parameter {self.name!r} must be a string, got {value!r}")
        elif t == "vector":
            if not isinstance(value, (list, tuple)) or not all(_is_number(v) for v in value):
                raise InvalidParameter(f"parameter {self.name!r} must be a list of numbers, got {value!r}")
            value = list(value)

        if _is_number(value):
            if self.minimum is not None and value < self.minimum:
                raise InvalidParameter(
                    f"parameter {self.name!r} must be >= {self.minimum}, got {value}"
                )
            if self.maximum is not None and value > self.maximum:
                raise InvalidParameter(
                    f"parameter {self.name!r} must be <= {self.maximum}, got {value}"
                )
        return value


Predicate = Union[str, Callable[[Mapping[str, Any]], bool]]


@dataclass(frozen=True)
class Assertion:
    """Precondition on bound arguments.

    ``predicate`` is an expression string such as ``"$width > 0"`` or a
    callable receiving the bound arguments.
    """

    predicate: Predicate
    message: str | None = None

    def check(self, bound: Mapping[str, Any]) -> None:
        if callable(self.predicate):
            ok = bool(self.predicate(MappingProxyType(dict(bound))))
            described = getattr(self.predicate, "__name__", "predicate")
        else:
            ok = evaluate_predicate(self.predicate, bound)
            described = self.predicate
        if not ok:
            raise AssertionFailed(self.message or f"assertion failed: {described}")


BodyTemplate = Union[Callable[..., Any], Mapping[str, Any], Sequence[Any]]


@dataclass(frozen=True, eq=False)
class Module:
    """A named, parameterised sub-assembly.

    ``body`` is either a callable taking the bound arguments as keywords and
    returning a Node (or a list of Nodes), or a raw scene template expanded
    by :mod:`solidtree.preprocessing`.
    """

    name: str
    parameters: tuple[Parameter, ...] = ()
    assertions: tuple[Assertion, ...] = ()
    body: BodyTemplate | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", tuple(self.parameters))
        object.__setattr__(self, "assertions", tuple(self.assertions))
        seen: set[str] = set()
        for p in self.parameters:
            if p.name in seen:
                raise InvalidParameter(f"module {self.name!r} declares parameter {p.name!r} twice")
            seen.add(p.name)

    def __call__(self, *args: Any, **kwargs: Any) -> ModuleInstance:
        return instantiate(self, args, kwargs)


def bind_arguments(
    module: Module,
    args: Sequence[Any] = (),
    kwargs: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Bind positional then named arguments to the module's parameters.

    Raises:
        InvalidParameter: surplus positional, unknown or duplicate named
            arguments, or a value failing its type/range check.
        MissingRequired: a parameter without default was not supplied.
    """
    kwargs = dict(kwargs or {})
    params = module.parameters
    if len(args) > len(params):
        raise InvalidParameter(
            f"module {module.name!r} takes {len(params)} positional arguments, got {len(args)}"
        )

    supplied: dict[str, Any] = {}
    for param, value in zip(params, args):
        supplied[param.name] = value

    known = {p.name for p in params}
    for name, value in kwargs.items():
        if name not in known:
            raise InvalidParameter(f"module {module.name!r} has no parameter {name!r}")
        if name in supplied:
            raise InvalidParameter(f"module {module.name!r} got parameter {name!r} twice")
        supplied[name] = value

    bound: dict[str, Any] = {}
    for param in params:
        if param.name in supplied:
            value = supplied[param.name]
        elif param.required:
            raise MissingRequired(f"module {module.name!r} requires parameter {param.name!r}")
        else:
            value = param.default
        bound[param.name] = param.validate(value)
    return bound


def check_assertions(module: Module, bound: Mapping[str, Any]) -> None:
    for assertion in module.assertions:
        assertion.check(bound)


def instantiate(
    module: Module,
    args: Sequence[Any] = (),
    kwargs: Mapping[str, Any] | None = None,
    *,
    expand: Callable[[Any, Mapping[str, Any]], Node] | None = None,
) -> ModuleInstance:
    """Bind arguments, run assertions, then expand the body.

    Template bodies need ``expand``, the expander that turns a raw scene
    template plus variables into a Node.
    """
    bound = bind_arguments(module, args, kwargs)
    check_assertions(module, bound)

    body = module.body
    if body is None:
        raise InvalidParameter(f"module {module.name!r} has no body")
    if callable(body):
        result = body(**bound)
        if isinstance(result, (list, tuple)):
            result = union(*result)
        if not isinstance(result, Node):
            raise InvalidParameter(
                f"module {module.name!r} body returned {type(result).__name__}, expected a Node"
            )
    else:
        if expand is None:
            raise InvalidParameter(f"module {module.name!r} has a template body and needs an expander")
        result = expand(body, bound)

    logger.debug("instantiated module %s with %s", module.name, bound)
    return ModuleInstance(module.name, bound, result)
