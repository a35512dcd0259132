"""Unit tests for join and aggregate rules."""

from __future__ import annotations

import pytest

from core.errors import SluiceTransformError
from core.pipeline_config import AggregateTransform, Condition, JoinTransform, TransformationRule
from transforms.batch_rules import apply_aggregate, apply_join

_CUSTOMERS = [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Bo"}, {"id": 3, "name": "Cy"}]
_ORDERS = [
    {"customer_id": 1, "item": "pen"},
    {"customer_id": 1, "item": "ink"},
    {"customer_id": 4, "item": "cup"},
]


def _join_rule(join_type: str, target_field: str | None = None) -> TransformationRule:
    return TransformationRule(
        "orders",
        "id",
        JoinTransform(join_source="orders", join_key="customer_id", join_type=join_type),
        target_field=target_field,
    )


def _aggregate_rule(operation: str, group_by: tuple[str, ...] | None = None) -> TransformationRule:
    return TransformationRule(
        "agg", "amount", AggregateTransform(operation, group_by), target_field="result"
    )


def test_inner_join_emits_one_record_per_match() -> None:
    """Inner joins should pair every matching main and join record."""
    joined = apply_join(_CUSTOMERS, _join_rule("inner"), _ORDERS)

    assert joined == [
        {"customer_id": 1, "item": "pen", "id": 1, "name": "Ada"},
        {"customer_id": 1, "item": "ink", "id": 1, "name": "Ada"},
    ]


def test_left_join_keeps_unmatched_main_records() -> None:
    """Left joins should keep main records without a match."""
    joined = apply_join(_CUSTOMERS, _join_rule("left"), _ORDERS)

    assert [record["name"] for record in joined] == ["Ada", "Ada", "Bo", "Cy"]


def test_full_join_appends_unmatched_join_records() -> None:
    """Full joins should add unmatched join records at the end."""
    joined = apply_join(_CUSTOMERS, _join_rule("full"), _ORDERS)

    assert len(joined) == 5
    assert joined[-1] == {"customer_id": 4, "item": "cup"}


def test_right_join_nests_under_target_field() -> None:
    """A target field should nest the join record instead of merging."""
    joined = apply_join(_CUSTOMERS, _join_rule("right", target_field="order"), _ORDERS)

    assert joined[0] == {"id": 1, "name": "Ada", "order": {"customer_id": 1, "item": "pen"}}
    assert joined[-1] == {"order": {"customer_id": 4, "item": "cup"}}
    assert len(joined) == 3


def test_main_record_wins_field_collisions() -> None:
    """Flat merges should keep the main record's value on collisions."""
    joined = apply_join([{"id": 1, "item": "main"}], _join_rule("inner"), _ORDERS[:1])

    assert joined == [{"customer_id": 1, "item": "main", "id": 1}]


def test_aggregate_sum_by_group_in_first_seen_order() -> None:
    """Aggregates should emit one record per group in first-seen order."""
    records = [
        {"region": "eu", "amount": 2},
        {"region": "us", "amount": 5},
        {"region": "eu", "amount": 3},
    ]

    result = apply_aggregate(records, _aggregate_rule("sum", ("region",)))

    assert result == [{"region": "eu", "result": 5}, {"region": "us", "result": 5}]


def test_aggregate_without_group_by_reduces_whole_batch() -> None:
    """Without group_by the whole batch forms one group."""
    records = [{"amount": 1}, {"amount": 4}, {"other": 9}]

    assert apply_aggregate(records, _aggregate_rule("average")) == [{"result": 2.5}]
    assert apply_aggregate(records, _aggregate_rule("count")) == [{"result": 2}]
    assert apply_aggregate(records, _aggregate_rule("max")) == [{"result": 4}]
    assert apply_aggregate(records, _aggregate_rule("group_concat")) == [{"result": "1,4"}]


def test_aggregate_of_empty_batch_yields_nothing() -> None:
    """An empty batch has no groups and produces no records."""
    assert apply_aggregate([], _aggregate_rule("count")) == []


def test_aggregate_condition_excludes_records() -> None:
    """Records failing the rule condition should not be aggregated."""
    rule = TransformationRule(
        "agg",
        "amount",
        AggregateTransform("sum"),
        target_field="result",
        condition=Condition(field="amount", operator="greater_than", value=1),
    )

    assert apply_aggregate([{"amount": 1}, {"amount": 5}], rule) == [{"result": 5}]


def test_aggregate_sum_rejects_non_numbers() -> None:
    """Summing text should fail naming the offending record."""
    records = [{"amount": 1}, {"amount": "two"}]

    with pytest.raises(SluiceTransformError) as error_info:
        apply_aggregate(records, _aggregate_rule("sum"))

    assert error_info.value.record_index == 1
