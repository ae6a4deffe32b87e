"""Expression scalars: ``"=$width / 2 + 1"``.

A small recursive-descent language evaluated at expansion time. Variables
are referenced as ``$name``; trigonometric functions work in degrees.
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Mapping

from solidtree.errors import InvalidParameter

_EXPR_RE = re.compile(r"^=(.+)$", re.DOTALL)

_EXPR_TOKEN_RE = re.compile(
    r"""
    (?P<NUMBER>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
    |(?P<STRING>"[^"]*"|'[^']*')
    |(?P<PARAM>\$[A-Za-z_][A-Za-z0-9_]*)
    |(?P<IDENT>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<OP>==|!=|<=|>=|<|>|\+|-|\*|/|%|\?|:)
    |(?P<LPAREN>\()
    |(?P<RPAREN>\))
    |(?P<LBRACKET>\[)
    |(?P<RBRACKET>\])
    |(?P<COMMA>,)
    |(?P<WS>\s+)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"and", "or", "not", "true", "false", "pi"}


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _number(value: object, fn: str) -> float:
    if not _is_number(value):
        raise InvalidParameter(f"{fn}() expects a number, got {value!r}")
    return value  # type: ignore[return-value]


def _sqrt(x: object) -> float:
    x = _number(x, "sqrt")
    if x < 0:
        raise InvalidParameter(f"sqrt({x}): domain error (negative argument)")
    return math.sqrt(x)


def _inverse_trig(name: str, fn: Callable[[float], float]) -> Callable[[object], float]:
    def wrapped(x: object) -> float:
        x = _number(x, name)
        try:
            return math.degrees(fn(x))
        except ValueError as e:
            raise InvalidParameter(f"{name}({x}): domain error") from e

    return wrapped


def _extremum(name: str, pick: Callable[..., Any]) -> Callable[..., Any]:
    def wrapped(*args: object) -> Any:
        values = args[0] if len(args) == 1 and isinstance(args[0], list) else list(args)
        if not values:
            raise InvalidParameter(f"{name}() needs at least one value")
        return pick(_number(v, name) for v in values)

    return wrapped


def _length(value: object) -> int:
    if not isinstance(value, (list, str)):
        raise InvalidParameter(f"len() expects a list or string, got {value!r}")
    return len(value)


def _norm(value: object) -> float:
    if not isinstance(value, list):
        raise InvalidParameter(f"norm() expects a vector, got {value!r}")
    return math.sqrt(sum(_number(v, "norm") ** 2 for v in value))


# name -> (min args, max args or None for variadic, implementation)
_EXPR_FUNCTIONS: dict[str, tuple[int, int | None, Callable[..., Any]]] = {
    "min": (1, None, _extremum("min", min)),
    "max": (1, None, _extremum("max", max)),
    "clamp": (3, 3, lambda x, lo, hi: max(_number(lo, "clamp"), min(_number(hi, "clamp"), _number(x, "clamp")))),
    "abs": (1, 1, lambda x: abs(_number(x, "abs"))),
    "sqrt": (1, 1, _sqrt),
    "pow": (2, 2, lambda x, y: math.pow(_number(x, "pow"), _number(y, "pow"))),
    "sin": (1, 1, lambda x: math.sin(math.radians(_number(x, "sin")))),
    "cos": (1, 1, lambda x: math.cos(math.radians(_number(x, "cos")))),
    "tan": (1, 1, lambda x: math.tan(math.radians(_number(x, "tan")))),
    "asin": (1, 1, _inverse_trig("asin", math.asin)),
    "acos": (1, 1, _inverse_trig("acos", math.acos)),
    "atan": (1, 1, _inverse_trig("atan", math.atan)),
    "atan2": (2, 2, lambda y, x: math.degrees(math.atan2(_number(y, "atan2"), _number(x, "atan2")))),
    "floor": (1, 1, lambda x: math.floor(_number(x, "floor"))),
    "ceil": (1, 1, lambda x: math.ceil(_number(x, "ceil"))),
    "round": (1, 1, lambda x: int(math.copysign(math.floor(abs(_number(x, "round")) + 0.5), x))),
    "len": (1, 1, _length),
    "norm": (1, 1, _norm),
}


class _Token:
    __slots__ = ("kind", "value")

    def __init__(self, kind: str, value: object = None):
        self.kind = kind
        self.value = value


def _tokenize_expr(expr: str) -> list[_Token]:
    """Tokenize an expression string into tokens."""
    tokens: list[_Token] = []
    pos = 0
    while pos < len(expr):
        m = _EXPR_TOKEN_RE.match(expr, pos)
        if m is None:
            raise InvalidParameter(f"unexpected character in expression at position {pos}: {expr!r}")
        pos = m.end()
        kind = m.lastgroup
        text = m.group(kind)
        if kind == "WS":
            continue
        if kind == "NUMBER":
            value: object = float(text) if any(c in text for c in ".eE") else int(text)
            tokens.append(_Token("NUMBER", value))
        elif kind == "STRING":
            tokens.append(_Token("STRING", text[1:-1]))
        elif kind == "PARAM":
            tokens.append(_Token("PARAM", text[1:]))
        elif kind == "IDENT" and text in _KEYWORDS:
            tokens.append(_Token(text.upper()))
        elif kind == "OP":
            tokens.append(_Token(text))
        else:
            tokens.append(_Token(kind, text))
    tokens.append(_Token("EOF"))
    return tokens


def _arith(op: str, left: object, right: object) -> object:
    if op == "+" and isinstance(left, str) and isinstance(right, str):
        return left + right
    if isinstance(left, list) or isinstance(right, list):
        return _vector_arith(op, left, right)
    if not (_is_number(left) and _is_number(right)):
        raise InvalidParameter(f"operator {op!r} needs numbers, got {left!r} and {right!r}")
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if right == 0:
        raise InvalidParameter("division by zero in expression")
    if op == "/":
        return left / right
    return math.fmod(left, right)


def _vector_arith(op: str, left: object, right: object) -> list:
    if isinstance(left, list) and isinstance(right, list):
        if op not in ("+", "-") or len(left) != len(right):
            raise InvalidParameter(f"cannot apply {op!r} to vectors of length {len(left)} and {len(right)}")
        return [_arith(op, a, b) for a, b in zip(left, right)]
    if isinstance(left, list) and op in ("*", "/"):
        return [_arith(op, a, right) for a in left]
    if isinstance(right, list) and op == "*":
        return [_arith(op, left, b) for b in right]
    raise InvalidParameter(f"cannot apply {op!r} to {left!r} and {right!r}")


def _compare(op: str, left: object, right: object) -> bool:
    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    if not (_is_number(left) and _is_number(right)):
        raise InvalidParameter(f"operator {op!r} needs numbers, got {left!r} and {right!r}")
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _truthy(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return value != 0
    if isinstance(value, (str, list)):
        return len(value) > 0
    return value is not None


class _ExprParser:
    """Recursive descent parser for the expression language."""

    def __init__(self, tokens: list[_Token], variables: Mapping[str, object]):
        self.tokens = tokens
        self.pos = 0
        self.variables = variables

    def _peek(self) -> _Token:
        return self.tokens[self.pos]

    def _advance(self) -> _Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def _expect(self, kind: str) -> _Token:
        tok = self._advance()
        if tok.kind != kind:
            raise InvalidParameter(f"expected {kind}, got {tok.kind} in expression")
        return tok

    def parse(self) -> object:
        result = self._conditional()
        if self._peek().kind != "EOF":
            raise InvalidParameter(f"unexpected token after expression: {self._peek().kind}")
        return result

    def _conditional(self) -> object:
        cond = self._or()
        if self._peek().kind != "?":
            return cond
        self._advance()
        then = self._conditional()
        self._expect(":")
        otherwise = self._conditional()
        return then if _truthy(cond) else otherwise

    def _or(self) -> object:
        left = self._and()
        while self._peek().kind == "OR":
            self._advance()
            right = self._and()
            left = _truthy(left) or _truthy(right)
        return left

    def _and(self) -> object:
        left = self._not()
        while self._peek().kind == "AND":
            self._advance()
            right = self._not()
            left = _truthy(left) and _truthy(right)
        return left

    def _not(self) -> object:
        if self._peek().kind == "NOT":
            self._advance()
            return not _truthy(self._not())
        return self._comparison()

    def _comparison(self) -> object:
        left = self._additive()
        if self._peek().kind in ("==", "!=", "<", "<=", ">", ">="):
            op = self._advance().kind
            right = self._additive()
            return _compare(op, left, right)
        return left

    def _additive(self) -> object:
        left = self._multiplicative()
        while self._peek().kind in ("+", "-"):
            op = self._advance().kind
            left = _arith(op, left, self._multiplicative())
        return left

    def _multiplicative(self) -> object:
        left = self._unary()
        while self._peek().kind in ("*", "/", "%"):
            op = self._advance().kind
            left = _arith(op, left, self._unary())
        return left

    def _unary(self) -> object:
        if self._peek().kind == "-":
            self._advance()
            value = self._unary()
            if isinstance(value, list):
                return _vector_arith("*", value, -1)
            if not _is_number(value):
                raise InvalidParameter(f"cannot negate {value!r}")
            return -value
        if self._peek().kind == "+":
            self._advance()
            return self._unary()
        return self._postfix()

    def _postfix(self) -> object:
        value = self._atom()
        while self._peek().kind == "LBRACKET":
            self._advance()
            index = self._conditional()
            self._expect("RBRACKET")
            value = self._index(value, index)
        return value

    @staticmethod
    def _index(value: object, index: object) -> object:
        if not isinstance(value, (list, str)):
            raise InvalidParameter(f"cannot index into {value!r}")
        if not _is_number(index) or int(index) != index:
            raise InvalidParameter(f"index must be an integer, got {index!r}")
        i = int(index)
        if not 0 <= i < len(value):
            raise InvalidParameter(f"index {i} out of range for length {len(value)}")
        return value[i]

    def _atom(self) -> object:
        tok = self._peek()
        if tok.kind in ("NUMBER", "STRING"):
            self._advance()
            return tok.value
        if tok.kind == "TRUE":
            self._advance()
            return True
        if tok.kind == "FALSE":
            self._advance()
            return False
        if tok.kind == "PI":
            self._advance()
            return math.pi
        if tok.kind == "PARAM":
            self._advance()
            if tok.value not in self.variables:
                raise InvalidParameter(f"expression references unknown parameter: ${tok.value}")
            return self.variables[tok.value]
        if tok.kind == "IDENT":
            return self._function_call()
        if tok.kind == "LPAREN":
            self._advance()
            result = self._conditional()
            self._expect("RPAREN")
            return result
        if tok.kind == "LBRACKET":
            self._advance()
            return self._arguments("RBRACKET")
        raise InvalidParameter(f"unexpected token in expression: {tok.kind}")

    def _arguments(self, closing: str) -> list:
        args: list = []
        if self._peek().kind != closing:
            args.append(self._conditional())
            while self._peek().kind == "COMMA":
                self._advance()
                args.append(self._conditional())
        self._expect(closing)
        return args

    def _function_call(self) -> object:
        name = self._advance().value
        if name not in _EXPR_FUNCTIONS:
            raise InvalidParameter(f"unknown function in expression: {name!r}")
        lo, hi, fn = _EXPR_FUNCTIONS[name]
        self._expect("LPAREN")
        args = self._arguments("RPAREN")
        if len(args) < lo or (hi is not None and len(args) > hi):
            expected = str(lo) if lo == hi else f"at least {lo}"
            raise InvalidParameter(f"function {name!r} expects {expected} arguments, got {len(args)}")
        return fn(*args)


def _quantize(value: object) -> object:
    """Round floats to 1e-9, canonicalize -0 to 0; recurse into lists."""
    if isinstance(value, list):
        return [_quantize(v) for v in value]
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidParameter(f"expression produced non-finite result: {value}")
        result = round(value, 9)
        return 0.0 if result == 0.0 else result
    return value


def is_expression(value: object) -> bool:
    return isinstance(value, str) and _EXPR_RE.match(value) is not None


def evaluate_expression(expr: str, variables: Mapping[str, object] | None = None) -> object:
    """Evaluate an expression body (with or without the leading ``=``).

    >>> evaluate_expression("=$w / 2 + 1", {"w": 10})
    6.0
    """
    m = _EXPR_RE.match(expr)
    body = m.group(1) if m else expr
    parser = _ExprParser(_tokenize_expr(body), variables or {})
    return _quantize(parser.parse())


def evaluate_predicate(expr: str, variables: Mapping[str, object]) -> bool:
    return _truthy(evaluate_expression(expr, variables))
