"""Scene expansion: params, modules, conditionals and loops into a static Node tree.

Operates on the raw dicts/lists/scalars of a validated scene document. All
control flow (``if``, ``repeat``, ``for``, ``choose``) and module calls are
resolved here, so the evaluator only ever sees plain geometry nodes.
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any, Callable, Mapping

from solidtree import nodes
from solidtree.errors import InvalidParameter, ParseError, SolidTreeError
from solidtree.expressions import evaluate_expression, is_expression
from solidtree.modules import REQUIRED, Assertion, Module, Parameter, instantiate
from solidtree.nodes import Node

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PARAM_REF_RE = re.compile(r"^\$([A-Za-z_][A-Za-z0-9_]*)$")
_EMBEDDED_PARAM_RE = re.compile(r"\$[A-Za-z_][A-Za-z0-9_]*")
_UNRESOLVED_TOKEN_RE = re.compile(r"\$\{[A-Za-z_][A-Za-z0-9_]*\}")

MAX_MODULE_DEPTH = 64

# operation -> (builder, shorthand argument, accepted arguments)
_PRIMITIVES: dict[str, tuple[Callable[..., Node], str | None, frozenset[str]]] = {
    "cube": (nodes.cuboid, "size", frozenset({"size", "center"})),
    "cuboid": (nodes.cuboid, "size", frozenset({"size", "center"})),
    "cylinder": (
        nodes.cylinder,
        None,
        frozenset({"h", "r", "r1", "r2", "d", "d1", "d2", "center", "fn", "fa", "fs"}),
    ),
    "sphere": (nodes.sphere, "r", frozenset({"r", "d", "fn", "fa", "fs"})),
    "square": (nodes.square, "size", frozenset({"size", "center"})),
    "circle": (nodes.circle, "r", frozenset({"r", "d", "fn", "fa", "fs"})),
    "polygon": (nodes.polygon, "points", frozenset({"points"})),
}

_TRANSFORMS: dict[str, Callable[..., Node]] = {
    "translate": nodes.translate,
    "scale": nodes.scale,
    "mirror": nodes.mirror,
    "multmatrix": nodes.multmatrix,
}

_GROUPS: dict[str, Callable[..., Node]] = {
    "union": nodes.union,
    "difference": nodes.difference,
    "intersection": nodes.intersection,
    "hull": nodes.hull,
}

_EXTRUSIONS: dict[str, tuple[str | None, frozenset[str]]] = {
    "linear_extrude": ("height", frozenset({"height", "twist", "scale", "center", "slices", "fn", "fa", "fs"})),
    "rotate_extrude": ("angle", frozenset({"angle", "fn", "fa", "fs"})),
}

_CONTROL = frozenset({"if", "repeat", "for", "choose"})

RESERVED_NAMES: frozenset[str] = frozenset(
    set(_PRIMITIVES)
    | set(_TRANSFORMS)
    | set(_GROUPS)
    | set(_EXTRUSIONS)
    | _CONTROL
    | {"rotate", "resolution", "empty", "children", "then", "else"}
)


def _join(prefix: str, label: str) -> str:
    return f"{prefix}/{label}" if prefix else label


def _child_prefix(path: str, index: int, count: int) -> str:
    return f"{path}[{index}]" if count > 1 else path


def _as_list(raw: object) -> list:
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    return [raw]


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


def resolve_value(value: object, scope: Mapping[str, Any]) -> object:
    """Substitute ``$name`` references and evaluate ``=expr`` scalars, recursively."""
    if isinstance(value, str):
        m = _PARAM_REF_RE.match(value)
        if m:
            name = m.group(1)
            if name not in scope:
                raise InvalidParameter(f"unknown param reference: ${name}")
            return scope[name]
        if is_expression(value):
            return evaluate_expression(value, scope)
        if _UNRESOLVED_TOKEN_RE.search(value):
            raise ParseError(f"unresolved token in: {value!r}")
        if _EMBEDDED_PARAM_RE.search(value):
            raise ParseError(f"invalid param usage (not whole-scalar): {value!r}")
        return value
    if isinstance(value, dict):
        return {k: resolve_value(v, scope) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_value(v, scope) for v in value]
    return value


def _validate_params(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Evaluate global params in order; later params may refer to earlier ones."""
    params: dict[str, Any] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not _IDENTIFIER_RE.match(key):
            raise ParseError(f"invalid param identifier: {key!r}")
        if isinstance(value, dict):
            raise ParseError(f"param {key!r} must be a scalar or a list, got a mapping")
        params[key] = resolve_value(value, params)
    return params


# ---------------------------------------------------------------------------
# Repeat helpers
# ---------------------------------------------------------------------------


def _validate_repeat_block(block: object, scope: Mapping[str, Any]) -> tuple[int, str, object]:
    """Validate repeat block structure. Returns (count, as_name, body)."""
    if not isinstance(block, dict):
        raise ParseError("repeat value must be a mapping")

    extra = set(block.keys()) - {"count", "as", "body"}
    if extra:
        raise ParseError(f"unexpected keys in repeat block: {sorted(extra)}")
    for key in ("count", "as", "body"):
        if key not in block:
            raise ParseError(f"repeat block missing required key {key!r}")

    count = resolve_value(block["count"], scope)
    if isinstance(count, float) and count.is_integer():
        count = int(count)
    if not isinstance(count, int) or isinstance(count, bool):
        raise InvalidParameter(f"repeat.count must be an integer, got {count!r}")
    if count < 0:
        raise InvalidParameter(f"repeat.count must be >= 0, got {count}")

    as_name = block["as"]
    if not isinstance(as_name, str) or not _IDENTIFIER_RE.match(as_name):
        raise ParseError(f"repeat.as must be a valid identifier, got {as_name!r}")
    return count, as_name, block["body"]


def _substitute_index_token(obj: object, token_name: str, index: int) -> object:
    """Recursive substitution of ${token_name} with index value.

    Returns the substituted value (needed for scalar replacement in lists).
    Mutates dicts and lists in-place where possible.
    """
    token = "${" + token_name + "}"

    if isinstance(obj, str):
        if obj == token:
            return index
        if token in obj:
            return obj.replace(token, str(index))
        return obj
    elif isinstance(obj, dict):
        for key in list(obj.keys()):
            obj[key] = _substitute_index_token(obj[key], token_name, index)
        return obj
    elif isinstance(obj, list):
        for i, item in enumerate(obj):
            obj[i] = _substitute_index_token(item, token_name, index)
        return obj
    return obj


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------


class SceneExpander:
    """Turns raw scene templates into Node trees.

    ``modules`` maps call names to :class:`Module` objects whose bodies are
    raw templates (or Python callables); ``variables`` are the global params
    visible to every module body.
    """

    def __init__(
        self,
        modules: Mapping[str, Module] | None = None,
        variables: Mapping[str, Any] | None = None,
    ) -> None:
        self.modules = dict(modules or {})
        self.variables = dict(variables or {})
        for name in self.modules:
            if name in RESERVED_NAMES:
                raise ParseError(f"module name {name!r} shadows a built-in operation")
            if not _IDENTIFIER_RE.match(name):
                raise ParseError(f"invalid module name: {name!r}")

    def expand(self, raw: object) -> Node:
        return self.body(raw, self.variables, "", 0)

    # -- dispatch ----------------------------------------------------------

    def body(self, raw: object, scope: Mapping[str, Any], prefix: str, depth: int) -> Node:
        """A node mapping or a list of them (implicit union)."""
        if isinstance(raw, list):
            return nodes.union(*self.children(raw, scope, prefix, depth))
        if raw is None:
            return nodes.empty()
        items = self.expand_item(raw, scope, prefix, depth)
        return nodes.union(*items)

    def children(self, raw: object, scope: Mapping[str, Any], path: str, depth: int) -> list[Node]:
        """Expand a child list; control-flow entries splice in zero or more nodes."""
        if not isinstance(raw, list):
            raise ParseError(f"children must be a list, got {type(raw).__name__}")
        out: list[Node] = []
        for i, item in enumerate(raw):
            out.extend(self.expand_item(item, scope, _child_prefix(path, i, len(raw)), depth))
        return out

    def expand_item(self, raw: object, scope: Mapping[str, Any], prefix: str, depth: int) -> list[Node]:
        if not isinstance(raw, dict):
            raise ParseError(f"scene node must be a mapping, got {type(raw).__name__}", node_path=prefix or None)
        op = self._operation(raw, prefix)
        path = _join(prefix, op)
        try:
            if op in _CONTROL:
                return self._control(op, raw, scope, path, depth)
            return [self._node(op, raw, scope, path, depth)]
        except SolidTreeError as e:
            if e.node_path is None:
                e.node_path = path
            raise

    @staticmethod
    def _operation(raw: dict, prefix: str) -> str:
        if "if" in raw:
            extra = set(raw) - {"if", "then", "else"}
            if extra:
                raise ParseError(f"unexpected keys in if block: {sorted(extra)}", node_path=prefix or None)
            return "if"
        keys = [k for k in raw if k != "children"]
        if len(keys) != 1:
            raise ParseError(
                f"scene node must have exactly one operation key, got {sorted(map(str, keys))}",
                node_path=prefix or None,
            )
        return str(keys[0])

    # -- control flow ------------------------------------------------------

    def _control(self, op: str, raw: dict, scope: Mapping[str, Any], path: str, depth: int) -> list[Node]:
        if op == "if":
            if "then" not in raw:
                raise ParseError("if block requires 'then'")
            condition = resolve_value(raw["if"], scope)
            branch = raw["then"] if _truthy(condition) else raw.get("else")
            items = _as_list(branch)
            return self.children(items, scope, path, depth)

        if op == "repeat":
            count, as_name, template = _validate_repeat_block(raw["repeat"], scope)
            out: list[Node] = []
            for idx in range(count):
                instance = copy.deepcopy(template)
                instance = _substitute_index_token(instance, as_name, idx)
                inner = {**scope, as_name: idx}
                out.extend(self.children(_as_list(instance), inner, f"{path}[{idx}]", depth))
            return out

        if op == "for":
            block = raw["for"]
            if not isinstance(block, dict) or set(block) != {"as", "in", "body"}:
                raise ParseError("for block needs exactly the keys 'as', 'in' and 'body'")
            as_name = block["as"]
            if not isinstance(as_name, str) or not _IDENTIFIER_RE.match(as_name):
                raise ParseError(f"for.as must be a valid identifier, got {as_name!r}")
            values = resolve_value(block["in"], scope)
            if not isinstance(values, list):
                raise InvalidParameter(f"for.in must be a list, got {values!r}")
            out = []
            for idx, value in enumerate(values):
                inner = {**scope, as_name: value}
                out.extend(self.children(_as_list(block["body"]), inner, f"{path}[{idx}]", depth))
            return out

        block = raw["choose"]
        if not isinstance(block, dict) or "on" not in block or "options" not in block:
            raise ParseError("choose block needs 'on' and 'options'")
        extra = set(block) - {"on", "options", "default"}
        if extra:
            raise ParseError(f"unexpected keys in choose block: {sorted(extra)}")
        options = block["options"]
        if not isinstance(options, dict):
            raise ParseError("choose.options must be a mapping")
        key = resolve_value(block["on"], scope)
        if key in options:
            chosen = options[key]
        elif str(key) in options:
            chosen = options[str(key)]
        elif "default" in block:
            chosen = block["default"]
        else:
            raise InvalidParameter(f"choose: no option {key!r} (available: {sorted(map(str, options))})")
        return self.children(_as_list(chosen), scope, f"{path}[{key}]", depth)

    # -- geometry ----------------------------------------------------------

    def _node(self, op: str, raw: dict, scope: Mapping[str, Any], path: str, depth: int) -> Node:
        value = raw[op]

        if op in _PRIMITIVES:
            builder, shorthand, accepted = _PRIMITIVES[op]
            kwargs = _arguments(op, resolve_value(value, scope), shorthand, accepted)
            if "children" in raw:
                raise ParseError(f"{op} does not take children")
            return _call(builder, (), kwargs)

        if op == "empty":
            return nodes.empty()

        def kids() -> list[Node]:
            return self.children(raw.get("children", []), scope, path, depth)

        if op in _TRANSFORMS:
            return _call(_TRANSFORMS[op], (resolve_value(value, scope), *kids()), {})

        if op == "rotate":
            args = resolve_value(value, scope)
            if isinstance(args, dict):
                extra = set(args) - {"a", "axis"}
                if extra:
                    raise InvalidParameter(f"rotate: unknown arguments {sorted(extra)}")
                return _call(nodes.rotate, (args.get("a"), *kids()), {"axis": args.get("axis")})
            return _call(nodes.rotate, (args, *kids()), {})

        if op in _GROUPS:
            if isinstance(value, list):
                if "children" in raw:
                    raise ParseError(f"{op} takes its children either inline or under 'children'")
                members = self.children(value, scope, path, depth)
            else:
                members = kids()
            return _GROUPS[op](*members)

        if op in _EXTRUSIONS:
            shorthand, accepted = _EXTRUSIONS[op]
            kwargs = _arguments(op, resolve_value(value, scope), shorthand, accepted)
            if op == "linear_extrude":
                if "height" not in kwargs:
                    raise InvalidParameter("linear_extrude requires 'height'")
                height = kwargs.pop("height")
                return _call(nodes.linear_extrude, (height, *kids()), kwargs)
            return _call(nodes.rotate_extrude, tuple(kids()), kwargs)

        if op == "resolution":
            kwargs = _arguments(op, resolve_value(value, scope), None, frozenset({"fn", "fa", "fs"}))
            return _call(nodes.resolution, tuple(kids()), kwargs)

        if op in self.modules:
            return self._call_module(op, raw, scope, path, depth)

        raise ParseError(f"unknown operation: {op!r}")

    def _call_module(self, name: str, raw: dict, scope: Mapping[str, Any], path: str, depth: int) -> Node:
        if depth >= MAX_MODULE_DEPTH:
            raise ParseError(f"module calls nested deeper than {MAX_MODULE_DEPTH} levels")
        if "children" in raw:
            raise ParseError(f"module {name!r} does not take children")
        args = resolve_value(raw[name], scope)
        positional: tuple = ()
        named: dict[str, Any] = {}
        if isinstance(args, list):
            positional = tuple(args)
        elif isinstance(args, dict):
            named = args
        elif args is not None:
            positional = (args,)

        def expand(template: object, bound: Mapping[str, Any]) -> Node:
            inner = {**self.variables, **bound}
            return self.body(copy.deepcopy(template), inner, path, depth + 1)

        return instantiate(self.modules[name], positional, named, expand=expand)


def _truthy(value: object) -> bool:
    if isinstance(value, (list, str)):
        return len(value) > 0
    return bool(value)


def _arguments(op: str, value: object, shorthand: str | None, accepted: frozenset[str]) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        unknown = set(value) - accepted
        if unknown:
            raise InvalidParameter(f"{op}: unknown arguments {sorted(map(str, unknown))}")
        return dict(value)
    if shorthand is None:
        raise InvalidParameter(f"{op} arguments must be a mapping, got {value!r}")
    return {shorthand: value}


def _call(builder: Callable[..., Node], args: tuple, kwargs: Mapping[str, Any]) -> Node:
    try:
        return builder(*args, **kwargs)
    except (TypeError, ValueError) as e:
        raise InvalidParameter(str(e)) from e


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def build_modules(definitions: Mapping[str, Any], variables: Mapping[str, Any]) -> dict[str, Module]:
    """Build Module objects from a document's ``modules`` section.

    Parameter defaults may be expressions over the global params.
    """
    modules: dict[str, Module] = {}
    for name, definition in definitions.items():
        parameters = []
        for p in definition.params:
            default = resolve_value(p.default, variables) if not p.required else REQUIRED
            parameters.append(Parameter(p.name, default, p.type, p.minimum, p.maximum))
        assertions = [Assertion(a.expr, a.message) for a in definition.assertions]
        try:
            modules[name] = Module(name, tuple(parameters), tuple(assertions), definition.body)
        except SolidTreeError as e:
            e.node_path = e.node_path or f"modules/{name}"
            raise
    return modules


def expand_document(document: Any) -> Node:
    """Expand a validated SceneDocument into a static Node tree."""
    variables = _validate_params(document.params)
    modules = build_modules(document.modules, variables)
    expander = SceneExpander(modules, variables)
    root = expander.expand(document.scene)
    logger.debug("expanded scene: %d nodes", sum(1 for _ in root.walk()))
    return root


def expand_template(
    template: object,
    variables: Mapping[str, Any] | None = None,
    modules: Mapping[str, Module] | None = None,
) -> Node:
    """Expand a raw scene template with the given variables and modules."""
    return SceneExpander(modules, variables).expand(copy.deepcopy(template))
