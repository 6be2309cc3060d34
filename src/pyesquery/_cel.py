"""CEL filter expressions to :mod:`pyesquery.predicate` trees.

Lets callers write pushdown filters as CEL text, e.g.
``age >= 21 && name.startsWith("A") && tags in ["x", "y"]``. Anything
with no predicate counterpart becomes :class:`~pyesquery.predicate.Opaque`.
"""

from __future__ import annotations

import functools
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import celpy
from celpy import celtypes
from celpy.adapter import json_to_cel
from celpy.celparser import CELParseError, CELParser
from celpy.evaluation import CELEvalError, CELUnsupportedError
from lark import Token, Tree
from lark.visitors import Interpreter

from pyesquery._constants import DEFAULT_MAX_RECURSION_DEPTH
from pyesquery._errors import (
    ERR_MSG_LOCAL_GEO_FILTER,
    FilterSyntaxError,
    MaxDepthExceededError,
    UnsafePushdownError,
)
from pyesquery._operators import (
    CEL_COMPARISON_OPERATORS,
    CEL_GEO_FUNCTIONS,
    CEL_LIKE_FUNCTIONS,
    CEL_PATTERN_METHODS,
)
from pyesquery._utils import like_to_regex, validate_field_path
from pyesquery.predicate import (
    BoolOp,
    CompareOp,
    Comparison,
    Conjunction,
    GeoRelation,
    IsNotNull,
    IsNull,
    NestedAccess,
    Opaque,
    Pattern,
    Predicate,
    SetMembership,
    nested,
)

_parser = CELParser()


@dataclass(frozen=True)
class _Field:
    path: str


@dataclass(frozen=True)
class _Const:
    value: Any


_PREDICATE_TYPES = (
    Comparison,
    Conjunction,
    SetMembership,
    IsNull,
    IsNotNull,
    Pattern,
    GeoRelation,
    NestedAccess,
    Opaque,
)


def _strip_quotes(s: str) -> str:
    """Strip surrounding quotes from a CEL string literal token."""
    if s.startswith(('r"', "r'", 'R"', "R'")):
        s = s[1:]
    if s.startswith('"""') or s.startswith("'''"):
        return s[3:-3]
    if s.startswith('"') or s.startswith("'"):
        return s[1:-1]
    return s


_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"', "0": "\0"}


def _process_escapes(s: str) -> str:
    """Process CEL string escape sequences."""
    result = []
    i = 0
    while i < len(s):
        if s[i] != "\\" or i + 1 >= len(s):
            result.append(s[i])
            i += 1
            continue
        nxt = s[i + 1]
        width = {"x": 2, "u": 4}.get(nxt, 0)
        if nxt in _SIMPLE_ESCAPES:
            result.append(_SIMPLE_ESCAPES[nxt])
            i += 2
        elif width and i + 2 + width <= len(s):
            try:
                result.append(chr(int(s[i + 2 : i + 2 + width], 16)))
                i += 2 + width
            except ValueError:
                result.append(s[i])
                i += 1
        else:
            result.append(s[i])
            result.append(nxt)
            i += 2
    return "".join(result)


def _leaf(path: str, make: Any) -> Predicate:
    """Build a leaf for a dotted path as a chain of NestedAccess nodes."""
    if "." not in path:
        return make(path)
    parent, last = path.rsplit(".", 1)
    return nested(parent, make(last))


def _parse_timestamp(text: str) -> datetime:
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise FilterSyntaxError(
            "invalid timestamp literal",
            f"timestamp({text!r}) is not ISO-8601",
            exc,
        ) from exc


class PredicateBuilder(Interpreter):
    """Walks a CEL Lark parse tree and returns a predicate tree."""

    def __init__(self, max_depth: int = DEFAULT_MAX_RECURSION_DEPTH) -> None:
        self._max_depth = max_depth
        self._depth = 0

    def build(self, tree: Tree) -> Predicate:
        return self._as_predicate(self._visit_child(tree))

    def _visit_child(self, tree: Tree | Token) -> Any:
        """Visit a child node, incrementing depth."""
        self._depth += 1
        try:
            if self._depth > self._max_depth:
                raise MaxDepthExceededError(
                    "maximum recursion depth exceeded",
                    f"depth {self._depth} exceeds limit {self._max_depth}",
                )
            if isinstance(tree, Token):
                return Opaque(str(tree))
            return self.visit(tree)
        finally:
            self._depth -= 1

    @staticmethod
    def _as_predicate(value: Any) -> Predicate:
        if isinstance(value, _Field):
            # a bare boolean field reference
            return _leaf(value.path, lambda f: Comparison(CompareOp.EQ, f, True))
        if isinstance(value, _PREDICATE_TYPES):
            return value
        return Opaque(f"non-boolean expression {value!r}")

    def __default__(self, tree: Tree) -> Any:
        if len(tree.children) == 1:
            return self._visit_child(tree.children[0])
        return Opaque(tree.data)

    # ---- Logical operators ----

    def expr(self, tree: Tree) -> Any:
        if len(tree.children) == 1:
            return self._visit_child(tree.children[0])
        return Opaque("conditional expression")

    def _logical(self, tree: Tree, op: BoolOp) -> Any:
        if len(tree.children) == 1:
            return self._visit_child(tree.children[0])
        children: list[Predicate] = []
        for child in tree.children:
            pred = self._as_predicate(self._visit_child(child))
            if isinstance(pred, Conjunction) and pred.op is op:
                children.extend(pred.children)
            else:
                children.append(pred)
        return Conjunction(op, tuple(children))

    def conditionalor(self, tree: Tree) -> Any:
        return self._logical(tree, BoolOp.OR)

    def conditionaland(self, tree: Tree) -> Any:
        return self._logical(tree, BoolOp.AND)

    # ---- Comparison / relation ----

    def relation(self, tree: Tree) -> Any:
        children = tree.children
        if len(children) == 1:
            return self._visit_child(children[0])
        op_node, rhs = children[0], children[1]
        if not isinstance(op_node, Tree) or not op_node.children:
            return Opaque("relation")
        left = self._visit_child(op_node.children[0])
        right = self._visit_child(rhs)

        if op_node.data == "relation_in":
            if isinstance(left, _Field) and isinstance(right, _Const) and isinstance(right.value, list):
                values = tuple(right.value)
                return _leaf(left.path, lambda f: SetMembership(f, values))
            return Opaque("in")

        op = CEL_COMPARISON_OPERATORS.get(op_node.data)
        if op is None:
            return Opaque(op_node.data)
        if isinstance(left, _Const) and isinstance(right, _Field):
            left, right, op = right, left, op.mirrored()
        if not isinstance(left, _Field) or not isinstance(right, _Const):
            return Opaque(f"comparison {op_node.data}")

        value = right.value
        if value is None:
            if op is CompareOp.EQ:
                return _leaf(left.path, IsNull)
            if op is CompareOp.NE:
                return _leaf(left.path, IsNotNull)
            return Opaque("ordered comparison with null")
        return _leaf(left.path, lambda f: Comparison(op, f, value))

    # ---- Unary ----

    def unary(self, tree: Tree) -> Any:
        children = tree.children
        if len(children) == 1:
            return self._visit_child(children[0])
        op_node, operand = children[0], children[1]
        if isinstance(op_node, Tree) and op_node.data == "unary_neg":
            value = self._visit_child(operand)
            if isinstance(value, _Const) and isinstance(value.value, (int, float)):
                return _Const(-value.value)
        return Opaque("unary expression")

    # ---- Member access ----

    def member_dot(self, tree: Tree) -> Any:
        """Field access: a.b"""
        obj = self._visit_child(tree.children[0])
        if not isinstance(obj, _Field):
            return Opaque("member access")
        path = f"{obj.path}.{tree.children[1]}"
        validate_field_path(path)
        return _Field(path)

    def member_dot_arg(self, tree: Tree) -> Any:
        """Method call: a.method(args)."""
        obj = self._visit_child(tree.children[0])
        method_name = str(tree.children[1])
        args = self._args(tree.children[2] if len(tree.children) > 2 else None)
        if method_name not in CEL_PATTERN_METHODS or not isinstance(obj, _Field):
            return Opaque(f"method {method_name}")
        if len(args) != 1 or not isinstance(args[0], _Const) or not isinstance(args[0].value, str):
            return Opaque(f"method {method_name}")
        literal = args[0].value
        if method_name == "startsWith":
            return _leaf(obj.path, lambda f: Pattern.prefix(f, literal))
        if method_name == "endsWith":
            return _leaf(obj.path, lambda f: Pattern.suffix(f, literal))
        return _leaf(obj.path, lambda f: Pattern.contains(f, literal))

    def ident(self, tree: Tree) -> Any:
        """Bare identifier."""
        name = str(tree.children[0])
        validate_field_path(name)
        return _Field(name)

    def ident_arg(self, tree: Tree) -> Any:
        """Function call: func(args)."""
        func_name = str(tree.children[0])
        args = self._args(tree.children[1] if len(tree.children) > 1 else None)

        if func_name == "has" and len(args) == 1 and isinstance(args[0], _Field):
            return _leaf(args[0].path, IsNotNull)
        if func_name == "timestamp" and len(args) == 1:
            if isinstance(args[0], _Const) and isinstance(args[0].value, str):
                return _Const(_parse_timestamp(args[0].value))
        if func_name in CEL_LIKE_FUNCTIONS and len(args) == 2:
            target, pattern = args
            if isinstance(target, _Field) and isinstance(pattern, _Const) and isinstance(pattern.value, str):
                ci = CEL_LIKE_FUNCTIONS[func_name]
                return _leaf(target.path, lambda f: Pattern(f, pattern.value, ci))
        if func_name in CEL_GEO_FUNCTIONS and len(args) == 2:
            kind = CEL_GEO_FUNCTIONS[func_name]
            first, second = args
            if isinstance(first, _Field) and isinstance(second, _Const):
                return _leaf(first.path, lambda f: GeoRelation(kind, f, second.value, True))
            if isinstance(first, _Const) and isinstance(second, _Field):
                return _leaf(second.path, lambda f: GeoRelation(kind, f, first.value, False))
        return Opaque(f"function {func_name}")

    def _args(self, args_node: Tree | None) -> list[Any]:
        if args_node is None:
            return []
        return [self._visit_child(child) for child in args_node.children]

    def paren_expr(self, tree: Tree) -> Any:
        return self._visit_child(tree.children[0])

    # ---- Literals ----

    def literal(self, tree: Tree) -> Any:
        token = tree.children[0]
        if not isinstance(token, Token):
            return Opaque("literal")
        text = str(token)
        if token.type == "NULL_LIT":
            return _Const(None)
        if token.type == "BOOL_LIT":
            return _Const(text.lower() == "true")
        if token.type == "INT_LIT":
            return _Const(int(text, 0))
        if token.type == "UINT_LIT":
            return _Const(int(text.rstrip("uU"), 0))
        if token.type == "FLOAT_LIT":
            return _Const(float(text))
        if token.type in ("STRING_LIT", "MLSTRING_LIT"):
            raw = _strip_quotes(text)
            if not text.startswith(("r'", 'r"', "R'", 'R"')):
                raw = _process_escapes(raw)
            return _Const(raw)
        return Opaque(f"literal {token.type}")

    def list_lit(self, tree: Tree) -> Any:
        values = self._args(tree.children[0] if tree.children else None)
        if not all(isinstance(v, _Const) for v in values):
            return Opaque("non-constant list")
        return _Const([v.value for v in values])

    def map_lit(self, tree: Tree) -> Any:
        items = self._args(tree.children[0] if tree.children else None)
        if not all(isinstance(v, _Const) for v in items):
            return Opaque("non-constant map")
        keys, values = items[0::2], items[1::2]
        return _Const({k.value: v.value for k, v in zip(keys, values)})


def parse_filter(expression: str, *, max_depth: int | None = None) -> Predicate:
    """Parse a CEL filter expression into a predicate tree.

    Args:
        expression: CEL boolean expression over document fields.
        max_depth: Maximum recursion depth. Defaults to 100.

    Returns:
        The predicate tree; sub-expressions with no predicate counterpart
        become :class:`~pyesquery.predicate.Opaque`.

    Raises:
        FilterSyntaxError: If the expression is not valid CEL.
        MaxDepthExceededError: If the expression nests too deeply.
    """
    try:
        tree = _parser.parse(expression)
    except CELParseError as exc:
        raise FilterSyntaxError("invalid filter expression", str(exc), exc) from exc
    builder = PredicateBuilder(max_depth if max_depth is not None else DEFAULT_MAX_RECURSION_DEPTH)
    return builder.build(tree)


# ---------------------------------------------------------------------------
# Client-side evaluation
# ---------------------------------------------------------------------------

_like_regex = functools.lru_cache(maxsize=256)(like_to_regex)


def _like_function(case_insensitive: bool) -> Any:
    def like(value: Any, pattern: Any) -> celtypes.BoolType:
        if not isinstance(value, str) or not isinstance(pattern, str):
            return celtypes.BoolType(False)
        regex = _like_regex(str(pattern), case_insensitive=case_insensitive)
        return celtypes.BoolType(regex.fullmatch(str(value)) is not None)

    return like


_LOCAL_FUNCTIONS = {name: _like_function(ci) for name, ci in CEL_LIKE_FUNCTIONS.items()}


class RowFilter:
    """A CEL filter evaluated against decoded rows.

    Used for the part of a filter Elasticsearch could not run. Every column
    of the row is a CEL variable; ``_id`` included. A result that is not
    ``true`` (false, null, or an evaluation error such as comparing a
    missing value) rejects the row.

    Raises:
        FilterSyntaxError: If the expression is not valid CEL.
        UnsafePushdownError: If the expression calls a geospatial function,
            which only Elasticsearch can evaluate.
    """

    def __init__(self, expression: str) -> None:
        env = celpy.Environment()
        try:
            ast = env.compile(expression)
        except CELParseError as exc:
            raise FilterSyntaxError("invalid filter expression", str(exc), exc) from exc
        idents = ast.scan_values(lambda v: isinstance(v, Token) and v.type == "IDENT")
        geo_calls = sorted({str(t) for t in idents if str(t) in CEL_GEO_FUNCTIONS})
        if geo_calls:
            raise UnsafePushdownError(
                ERR_MSG_LOCAL_GEO_FILTER,
                f"filter {expression!r} needs client-side evaluation but calls {', '.join(geo_calls)}",
            )
        self.expression = expression
        self._program = env.program(ast, functions=_LOCAL_FUNCTIONS)

    def __call__(self, row: Mapping[str, Any]) -> bool:
        activation = {name: json_to_cel(value) for name, value in row.items()}
        try:
            result = self._program.evaluate(activation)
        except (CELEvalError, CELUnsupportedError):
            return False
        return isinstance(result, celtypes.BoolType) and bool(result)

    def __repr__(self) -> str:
        return f"RowFilter({self.expression!r})"
