"""Batch-scoped join and aggregate rules.

Both rule types need the whole batch, so the engine runs them outside the
parallel per-record phase: joins before it, aggregates after it.
"""

from __future__ import annotations

import json
import numbers
from typing import Sequence

from core.constants import GROUP_CONCAT_SEPARATOR
from core.errors import SluiceTransformError
from core.pipeline_config import AggregateTransform, JoinTransform, TransformationRule
from core.types import JsonValue, Record
from transforms.conditions import compile_condition
from transforms.value_conversion import display_text


def apply_join(
    records: Sequence[Record],
    rule: TransformationRule,
    join_records: Sequence[Record],
) -> list[Record]:
    """Join the batch with a second record source.

    The main-record key comes from ``source_field`` and the join-record key
    from ``join_key``; keys compare by JSON value. Each matching pair yields
    one record. Without ``target_field`` the join record's fields are merged
    flat, main-record fields winning collisions; with it the join record is
    nested under that field. Records failing the rule condition pass through
    unjoined.

    Args:
        records: Main batch.
        rule: Join rule.
        join_records: Records of the named join source.

    Returns:
        Joined records: main order first, then unmatched join records for
        right and full joins.
    """
    kind = rule.transformation
    if not isinstance(kind, JoinTransform):
        raise SluiceTransformError("rule is not a join.", rule.name)
    applies = compile_condition(rule.condition, rule.name) if rule.condition else None
    index: dict[str, list[int]] = {}
    for position, join_record in enumerate(join_records):
        key = _join_key(join_record, kind.join_key)
        if key is not None:
            index.setdefault(key, []).append(position)
    matched_positions: set[int] = set()
    output: list[Record] = []
    for record in records:
        if applies is not None and not applies(record):
            output.append(dict(record))
            continue
        key = _join_key(record, rule.source_field)
        positions = index.get(key, []) if key is not None else []
        for position in positions:
            matched_positions.add(position)
            output.append(_merge(record, join_records[position], rule.target_field))
        if not positions and kind.join_type in ("left", "full"):
            output.append(dict(record))
    if kind.join_type in ("right", "full"):
        for position, join_record in enumerate(join_records):
            if position not in matched_positions:
                output.append(_unmatched_join_record(join_record, rule.target_field))
    return output


def apply_aggregate(records: Sequence[Record], rule: TransformationRule) -> list[Record]:
    """Reduce the batch to one record per group.

    Groups are keyed by ``group_by`` fields in first-seen order; without
    ``group_by`` the whole batch is one group. Each output record holds the
    group fields and the aggregate under the rule's output field. Records
    failing the rule condition are excluded, and an empty batch yields no
    records.

    Raises:
        SluiceTransformError: If values cannot be aggregated, naming the
            first offending record.
    """
    kind = rule.transformation
    if not isinstance(kind, AggregateTransform):
        raise SluiceTransformError("rule is not an aggregate.", rule.name)
    applies = compile_condition(rule.condition, rule.name) if rule.condition else None
    group_fields = kind.group_by or ()
    groups: dict[str, tuple[Record, list[tuple[int, JsonValue]]]] = {}
    for record_index, record in enumerate(records):
        if applies is not None and not applies(record):
            continue
        group_values = {field: record.get(field) for field in group_fields}
        group_key = json.dumps([group_values[field] for field in group_fields], sort_keys=True)
        _, values = groups.setdefault(group_key, (group_values, []))
        value = record.get(rule.source_field)
        if value is not None:
            values.append((record_index, value))
    output: list[Record] = []
    for group_values, values in groups.values():
        result = _aggregate(kind.operation, values, rule.name)
        output.append({**group_values, rule.output_field: result})
    return output


def _aggregate(operation: str, values: list[tuple[int, JsonValue]], rule_name: str) -> JsonValue:
    if operation == "count":
        return len(values)
    if operation == "group_concat":
        return GROUP_CONCAT_SEPARATOR.join(display_text(value) for _, value in values)
    if operation in ("sum", "average"):
        for record_index, value in values:
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise SluiceTransformError(
                    f"{operation} requires numeric values, got {value!r}.",
                    rule_name,
                    record_index,
                )
        total = sum(value for _, value in values)
        if operation == "sum":
            return total
        return total / len(values) if values else None
    if operation in ("min", "max"):
        if not values:
            return None
        best = values[0][1]
        for record_index, value in values[1:]:
            try:
                better = value < best if operation == "min" else value > best
            except TypeError as error:
                raise SluiceTransformError(
                    f"{operation} cannot compare {value!r} with {best!r}.",
                    rule_name,
                    record_index,
                ) from error
            if better:
                best = value
        return best
    raise SluiceTransformError(f"unsupported aggregate operation '{operation}'.", rule_name)


def _join_key(record: Record, field: str) -> str | None:
    value = record.get(field)
    if value is None:
        return None
    return json.dumps(value, sort_keys=True)


def _merge(record: Record, join_record: Record, target_field: str | None) -> Record:
    if target_field:
        return {**record, target_field: dict(join_record)}
    return {**join_record, **record}


def _unmatched_join_record(join_record: Record, target_field: str | None) -> Record:
    if target_field:
        return {target_field: dict(join_record)}
    return dict(join_record)
