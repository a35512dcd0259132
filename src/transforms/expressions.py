"""Side-effect-free expression language for calculate and filter rules.

Expressions use a small subset of Python syntax, parsed with ``ast`` and
checked against an allow-list before evaluation. Names resolve to record
fields; ``value`` is the rule's source value. Missing fields evaluate to None.
"""

from __future__ import annotations

import ast
import operator
from dataclasses import dataclass
from typing import Any, Callable

from core.errors import SluiceTransformError
from core.types import JsonValue, RecordView

_MAX_EXPONENT = 1000
_MAX_POWER_BITS = 10_000
_MAX_REPEAT_LENGTH = 1_000_000

_BINARY_OPERATORS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPERATORS: dict[type, Callable[[Any], Any]] = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Not: operator.not_,
}
_COMPARISON_OPERATORS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
}
_LITERAL_NAMES: dict[str, JsonValue] = {"true": True, "false": False, "null": None}


def _concat(*parts: Any) -> str:
    return "".join("" if part is None else str(part) for part in parts)


def _coalesce(*values: Any) -> Any:
    return next((item for item in values if item is not None), None)


FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "upper": lambda text: str(text).upper(),
    "lower": lambda text: str(text).lower(),
    "concat": _concat,
    "coalesce": _coalesce,
}

_ALLOWED_NODES = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.BinOp,
    ast.UnaryOp,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.Compare,
    ast.IfExp,
    ast.Call,
    ast.List,
    ast.Tuple,
    *_BINARY_OPERATORS,
    *_UNARY_OPERATORS,
    *_COMPARISON_OPERATORS,
)


@dataclass(frozen=True)
class CompiledExpression:
    """Parsed and allow-listed expression, safe to share across threads."""

    source: str
    tree: ast.Expression

    def evaluate(self, view: RecordView, value: JsonValue = None) -> JsonValue:
        """Evaluate against a record view.

        Args:
            view: Progressive record view for field names.
            value: Source value bound to the name ``value``.

        Returns:
            Expression result.

        Raises:
            ValueError: If evaluation fails (type mismatch, division by zero).
        """
        try:
            return _evaluate(self.tree.body, view, value)
        except (TypeError, ArithmeticError) as error:
            raise ValueError(f"expression {self.source!r} failed: {error}") from error


def compile_expression(source: str, rule_name: str | None = None) -> CompiledExpression:
    """Parse and check an expression.

    Args:
        source: Expression text.
        rule_name: Owning rule name, used in error messages.

    Returns:
        Compiled expression.

    Raises:
        SluiceTransformError: If the expression is invalid or uses
            unsupported syntax or functions.
    """
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as error:
        raise SluiceTransformError(
            f"invalid expression {source!r}: {error.msg}.", rule_name
        ) from error
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise SluiceTransformError(
                f"unsupported syntax {type(node).__name__} in expression {source!r}.",
                rule_name,
            )
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
                raise SluiceTransformError(
                    f"unsupported function call in expression {source!r}. "
                    f"Allowed: {', '.join(sorted(FUNCTIONS))}.",
                    rule_name,
                )
            if node.keywords:
                raise SluiceTransformError(
                    f"keyword arguments are not supported in expression {source!r}.",
                    rule_name,
                )
    return CompiledExpression(source=source, tree=tree)


def _evaluate(node: ast.AST, view: RecordView, value: JsonValue) -> Any:
    if isinstance(node, ast.Constant):
        return node.value
    if isinstance(node, ast.Name):
        if node.id == "value":
            return value
        if node.id in view:
            return view[node.id]
        return _LITERAL_NAMES.get(node.id)
    if isinstance(node, ast.BinOp):
        left = _evaluate(node.left, view, value)
        right = _evaluate(node.right, view, value)
        _check_result_size(node.op, left, right)
        return _BINARY_OPERATORS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand, view, value))
    if isinstance(node, ast.BoolOp):
        return _evaluate_bool_op(node, view, value)
    if isinstance(node, ast.Compare):
        left = _evaluate(node.left, view, value)
        for op, comparator in zip(node.ops, node.comparators):
            right = _evaluate(comparator, view, value)
            if not _COMPARISON_OPERATORS[type(op)](left, right):
                return False
            left = right
        return True
    if isinstance(node, ast.IfExp):
        branch = node.body if _evaluate(node.test, view, value) else node.orelse
        return _evaluate(branch, view, value)
    if isinstance(node, ast.Call):
        function = FUNCTIONS[node.func.id]  # type: ignore[attr-defined]
        return function(*[_evaluate(argument, view, value) for argument in node.args])
    if isinstance(node, (ast.List, ast.Tuple)):
        return [_evaluate(element, view, value) for element in node.elts]
    raise TypeError(f"unsupported node {type(node).__name__}")


def _check_result_size(op: ast.operator, left: Any, right: Any) -> None:
    """Reject powers and repetitions whose result would be unreasonably large."""
    if isinstance(op, ast.Pow):
        if isinstance(right, (int, float)) and abs(right) > _MAX_EXPONENT:
            raise ArithmeticError(f"exponent {right} exceeds {_MAX_EXPONENT}")
        if isinstance(left, int) and isinstance(right, int) and right > 0:
            if left.bit_length() * right > _MAX_POWER_BITS:
                raise ArithmeticError(f"power result would exceed {_MAX_POWER_BITS} bits")
    elif isinstance(op, ast.Mult):
        for sequence, count in ((left, right), (right, left)):
            if isinstance(sequence, (str, list, tuple)) and isinstance(count, int):
                if len(sequence) * count > _MAX_REPEAT_LENGTH:
                    raise ArithmeticError(
                        f"repeated value would exceed {_MAX_REPEAT_LENGTH} items"
                    )


def _evaluate_bool_op(node: ast.BoolOp, view: RecordView, value: JsonValue) -> Any:
    result: Any = None
    for operand in node.values:
        result = _evaluate(operand, view, value)
        if isinstance(node.op, ast.And) and not result:
            return result
        if isinstance(node.op, ast.Or) and result:
            return result
    return result
