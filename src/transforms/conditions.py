"""Rule condition evaluation.

Conditions are compiled once per run and evaluated against the progressive
record view. A condition on a missing field is always false.
"""

from __future__ import annotations

import operator
import re
from typing import Any, Callable

from core.errors import SluiceTransformError
from core.pipeline_config import Condition
from core.types import JsonValue, RecordView

ConditionCheck = Callable[[RecordView], bool]


def compile_condition(condition: Condition, rule_name: str | None = None) -> ConditionCheck:
    """Compile a condition into a predicate over record views.

    Args:
        condition: Condition config.
        rule_name: Owning rule name, used in error messages.

    Returns:
        Predicate returning True when the rule should apply.

    Raises:
        SluiceTransformError: If the condition literal is unusable for its operator.
    """
    comparison = _build_comparison(condition, rule_name)
    field = condition.field

    def check(view: RecordView) -> bool:
        if field not in view:
            return False
        return comparison(view[field])

    return check


def _build_comparison(condition: Condition, rule_name: str | None) -> Callable[[JsonValue], bool]:
    expected = condition.value
    op = condition.operator
    if op in _ORDERING_OPERATORS:
        return _ordering(_ORDERING_OPERATORS[op], expected)
    if op == "equal":
        return lambda actual: _equals(actual, expected)
    if op == "not_equal":
        return lambda actual: not _equals(actual, expected)
    if op == "contains":
        return lambda actual: _contains(actual, expected)
    if op == "starts_with":
        return lambda actual: isinstance(actual, str) and actual.startswith(str(expected))
    if op == "ends_with":
        return lambda actual: isinstance(actual, str) and actual.endswith(str(expected))
    if op == "regex":
        try:
            pattern = re.compile(str(expected))
        except re.error as error:
            raise SluiceTransformError(
                f"invalid condition regex {expected!r}: {error}.", rule_name
            ) from error
        return lambda actual: isinstance(actual, str) and pattern.search(actual) is not None
    if op in ("in", "not_in"):
        if not isinstance(expected, list):
            raise SluiceTransformError(f"'{op}' condition requires a list value.", rule_name)
        if op == "in":
            return lambda actual: any(_equals(actual, item) for item in expected)
        return lambda actual: not any(_equals(actual, item) for item in expected)
    raise SluiceTransformError(f"unsupported condition operator '{op}'.", rule_name)


_ORDERING_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "greater_than": operator.gt,
    "less_than": operator.lt,
    "greater_equal": operator.ge,
    "less_equal": operator.le,
}


def _ordering(
    compare: Callable[[Any, Any], bool], expected: JsonValue
) -> Callable[[JsonValue], bool]:
    def check(actual: JsonValue) -> bool:
        if isinstance(actual, bool) or isinstance(expected, bool):
            return False
        try:
            return bool(compare(actual, expected))
        except TypeError:
            return False

    return check


def _equals(actual: JsonValue, expected: JsonValue) -> bool:
    """JSON equality: booleans never equal numbers."""
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return bool(actual == expected)


def _contains(actual: JsonValue, expected: JsonValue) -> bool:
    if isinstance(actual, str):
        return str(expected) in actual
    if isinstance(actual, list):
        return any(_equals(item, expected) for item in actual)
    if isinstance(actual, dict):
        return isinstance(expected, str) and expected in actual
    return False
