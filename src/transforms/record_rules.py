"""Per-record rule compilation and application.

Rules are compiled once (conditions, expressions, templates) and then applied
to each record against a progressive view: the output record written so far,
falling back to the input record.
"""

from __future__ import annotations

import re
from collections import ChainMap
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from core.errors import SluiceTransformError
from core.pipeline_config import (
    CalculateTransform,
    ConvertTransform,
    CustomTransform,
    FilterTransform,
    FormatTransform,
    LookupTransform,
    LowercaseTransform,
    MapTransform,
    TransformationRule,
    UppercaseTransform,
)
from core.types import JsonValue, Record, RecordView
from transforms.conditions import ConditionCheck, compile_condition
from transforms.expressions import compile_expression
from transforms.lookup_cache import LookupCache, lookup_value_text
from transforms.value_conversion import convert_value, display_text

_TEMPLATE_PATTERN = re.compile(r"\{\{|\}\}|\{([^{}]*)\}")

RuleApplier = Callable[[JsonValue, RecordView], Any]


class _DropRecord:
    """Marker returned by a rule that removes the record from the batch."""


DROP_RECORD = _DropRecord()


@dataclass(frozen=True)
class CompiledRule:
    """A per-record rule ready for concurrent application.

    Attributes:
        rule: Source rule config.
        applies: Condition predicate, or None when unconditional.
        apply: Function mapping (source value, view) to the new value or
            ``DROP_RECORD``.
    """

    rule: TransformationRule
    applies: ConditionCheck | None
    apply: RuleApplier


def compile_record_rules(
    rules: tuple[TransformationRule, ...] | list[TransformationRule],
    cache: LookupCache,
) -> list[CompiledRule]:
    """Compile per-record rules in declared order.

    Raises:
        SluiceTransformError: If any expression, template, or condition is invalid.
    """
    compiled: list[CompiledRule] = []
    for rule in rules:
        applies = None
        if rule.condition is not None:
            applies = compile_condition(rule.condition, rule.name)
        compiled.append(
            CompiledRule(rule=rule, applies=applies, apply=_build_applier(rule, cache))
        )
    return compiled


def apply_record_rules(
    record: Mapping[str, JsonValue],
    rules: list[CompiledRule],
    record_index: int,
) -> Record | None:
    """Apply compiled rules to one record.

    The output record starts empty. Each rule reads its source field from the
    progressive view and writes its target field; rules whose condition is
    false or whose source field is missing are skipped.

    Args:
        record: Read-only input record.
        rules: Compiled per-record rules.
        record_index: Position of the record, used in error messages.

    Returns:
        The new output record, or None when a filter dropped it.

    Raises:
        SluiceTransformError: If a rule fails on this record.
    """
    output: Record = {}
    view: ChainMap[str, JsonValue] = ChainMap(output, dict(record))
    for compiled in rules:
        rule = compiled.rule
        if compiled.applies is not None and not compiled.applies(view):
            continue
        if rule.source_field not in view:
            continue
        try:
            result = compiled.apply(view[rule.source_field], view)
        except (ValueError, TypeError, ArithmeticError) as error:
            raise SluiceTransformError(str(error), rule.name, record_index) from error
        if result is DROP_RECORD:
            return None
        output[rule.output_field] = result
    return output


def _build_applier(rule: TransformationRule, cache: LookupCache) -> RuleApplier:
    kind = rule.transformation
    if isinstance(kind, MapTransform):
        mapping = dict(kind.mapping)
        return lambda value, view: mapping.get(lookup_value_text(value), value)
    if isinstance(kind, CalculateTransform):
        expression = compile_expression(kind.expression, rule.name)
        return lambda value, view: expression.evaluate(view, value)
    if isinstance(kind, FormatTransform):
        return _template_applier(kind.template, rule.name)
    if isinstance(kind, ConvertTransform):
        to_type = kind.to_type
        return lambda value, view: convert_value(value, to_type)
    if isinstance(kind, FilterTransform):
        predicate = compile_expression(kind.condition, rule.name)
        return lambda value, view: value if predicate.evaluate(view, value) else DROP_RECORD
    if isinstance(kind, LookupTransform):
        table = kind.table
        return lambda value, view: cache.resolve(table, value)
    if isinstance(kind, UppercaseTransform):
        return lambda value, view: value.upper() if isinstance(value, str) else value
    if isinstance(kind, LowercaseTransform):
        return lambda value, view: value.lower() if isinstance(value, str) else value
    if isinstance(kind, CustomTransform):
        return _custom_applier(kind, rule.name, cache)
    raise SluiceTransformError(
        f"transformation '{kind.TYPE_TAG}' is batch-scoped and cannot run per record.",
        rule.name,
    )


def _template_applier(template: str, rule_name: str) -> RuleApplier:
    """Render ``{field}`` placeholders; ``{value}`` is the source value."""
    for match in _TEMPLATE_PATTERN.finditer(template):
        if match.group(1) is not None and not match.group(1).strip():
            raise SluiceTransformError(f"empty placeholder in template {template!r}.", rule_name)

    def render(value: JsonValue, view: RecordView) -> str:
        def replace(match: re.Match[str]) -> str:
            token = match.group(0)
            if token in ("{{", "}}"):
                return token[0]
            name = match.group(1).strip()
            if name == "value":
                return display_text(value)
            if name not in view:
                raise ValueError(f"template field '{name}' is missing from the record")
            return display_text(view[name])

        return _TEMPLATE_PATTERN.sub(replace, template)

    return render


def _custom_applier(kind: CustomTransform, rule_name: str, cache: LookupCache) -> RuleApplier:
    parameters = dict(kind.parameters or {})
    function = kind.function
    if function == "trim":
        return lambda value, view: value.strip() if isinstance(value, str) else value
    if function == "uppercase":
        return lambda value, view: value.upper() if isinstance(value, str) else value
    if function == "lowercase":
        return lambda value, view: value.lower() if isinstance(value, str) else value
    if function == "lookup":
        table = str(parameters.get("table", ""))
        return lambda value, view: cache.resolve(table, value)
    if function == "default":
        fallback = parameters.get("value")
        return lambda value, view: fallback if value is None or value == "" else value
    if function == "replace":
        old = str(parameters.get("old", ""))
        new = str(parameters.get("new", ""))
        if not old:
            raise SluiceTransformError("replace requires a non-empty 'old' parameter.", rule_name)
        return lambda value, view: value.replace(old, new) if isinstance(value, str) else value
    raise SluiceTransformError(f"unknown custom function '{function}'.", rule_name)
