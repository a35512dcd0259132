"""Unit tests for the transformation engine."""

from __future__ import annotations

import pytest

from core.cancellation import CancellationToken
from core.errors import SluiceCancelledError, SluiceTransformError
from core.pipeline_config import (
    AggregateTransform,
    CalculateTransform,
    ConvertTransform,
    FilterTransform,
    JoinTransform,
    TransformationRule,
    UppercaseTransform,
)
from transforms.engine import transform, transform_batch
from transforms.lookup_cache import LookupCache

_EMPTY_CACHE = LookupCache({})


def _records(count: int) -> list[dict[str, object]]:
    return [{"id": index, "name": f"user-{index}"} for index in range(count)]


def _per_record_rules() -> list[TransformationRule]:
    return [
        TransformationRule("id", "id", CalculateTransform("value"), "id"),
        TransformationRule("upper", "name", UppercaseTransform(), "name"),
        TransformationRule("double", "id", CalculateTransform("value * 2"), "double"),
        TransformationRule("even", "double", FilterTransform("value % 4 == 0"), "double"),
    ]


def test_parallel_output_matches_sequential_output() -> None:
    """Worker count should never change the output or its order."""
    records = _records(500)

    sequential = transform(records, _per_record_rules(), _EMPTY_CACHE, max_workers=1)
    parallel = transform(records, _per_record_rules(), _EMPTY_CACHE, max_workers=8, chunk_size=7)

    assert parallel == sequential
    assert len(sequential) == 250
    assert sequential[0] == {"id": 0, "name": "USER-0", "double": 0}


def test_filter_shrinks_batch() -> None:
    """Filter rules should drop records from the output."""
    output = transform(_records(4), _per_record_rules(), _EMPTY_CACHE)

    assert [record["id"] for record in output] == [0, 2]


def test_no_per_record_rules_passes_records_through() -> None:
    """Without per-record rules, records should pass through unchanged."""
    rule = TransformationRule("count", "id", AggregateTransform("count"), "total")

    assert transform(_records(3), [rule], _EMPTY_CACHE) == [{"total": 3}]


def test_aggregate_reads_source_fields_alongside_rule_output() -> None:
    """Aggregates should see input fields that no per-record rule copied."""
    records = [
        {"region": "n", "amount": 2},
        {"region": "s", "amount": 3},
        {"region": "n", "amount": 5},
        {"region": "s", "amount": -1},
    ]
    rules = [
        TransformationRule("scaled", "amount", CalculateTransform("value * 10"), "scaled"),
        TransformationRule("positive", "amount", FilterTransform("value > 0"), "amount"),
        TransformationRule(
            "by-region", "amount", AggregateTransform("sum", ("region",)), "total"
        ),
    ]

    output = transform(records, rules, _EMPTY_CACHE, max_workers=4, chunk_size=1)

    assert output == [{"region": "n", "total": 7}, {"region": "s", "total": 3}]


def test_aggregate_reads_per_record_output_over_input() -> None:
    """Fields written by per-record rules should shadow the input values."""
    rules = [
        TransformationRule("scaled", "id", CalculateTransform("value * 10"), "id"),
        TransformationRule("sum", "id", AggregateTransform("sum"), "total"),
    ]

    assert transform(_records(3), rules, _EMPTY_CACHE) == [{"total": 30}]


def test_join_runs_before_per_record_rules() -> None:
    """Joined fields should be readable by per-record rules."""
    rules = [
        TransformationRule("orders", "id", JoinTransform("orders", "customer_id", "inner")),
        TransformationRule("item", "item", UppercaseTransform(), "item"),
    ]

    output = transform(
        _records(2),
        rules,
        _EMPTY_CACHE,
        join_records={"orders": [{"customer_id": 1, "item": "pen"}]},
    )

    assert output == [{"item": "PEN"}]


def test_parallel_failure_reports_lowest_failing_index() -> None:
    """The first failing record in input order should be reported."""
    records = [{"age": 1}] * 50 + [{"age": "x"}] * 50
    rule = TransformationRule("to-int", "age", ConvertTransform("integer"))

    with pytest.raises(SluiceTransformError) as error_info:
        transform(records, [rule], _EMPTY_CACHE, max_workers=4, chunk_size=5)

    assert error_info.value.record_index == 50


def test_invalid_expression_fails_before_processing() -> None:
    """Expression syntax errors should fail even for an empty batch."""
    rule = TransformationRule("bad", "id", CalculateTransform("value +"))

    with pytest.raises(SluiceTransformError) as error_info:
        transform([], [rule], _EMPTY_CACHE)

    assert error_info.value.rule_name == "bad"


def test_cancelled_token_stops_transformation() -> None:
    """A cancelled run should not transform records."""
    token = CancellationToken()
    token.cancel()

    with pytest.raises(SluiceCancelledError):
        transform(_records(10), _per_record_rules(), _EMPTY_CACHE, cancellation=token)


def test_transform_batch_attaches_metadata() -> None:
    """Batches should carry source, timestamp, and output count metadata."""
    batch = transform_batch(_records(4), _per_record_rules(), _EMPTY_CACHE, source="users.json")

    assert batch.metadata.source == "users.json"
    assert batch.metadata.record_count == len(batch.records) == 2
    assert "source" not in batch.records[0]
