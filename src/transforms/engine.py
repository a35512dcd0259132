"""Transformation engine.

This module applies an ordered rule list to a record batch. Join rules run
first over the whole batch, per-record rules then run on a bounded thread
pool, and aggregate rules finally reduce each record's output laid over its
input, so group and source fields need not be copied by an earlier rule.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Mapping, Sequence

from core.cancellation import CancellationToken
from core.constants import DEFAULT_RUN_CHUNK_SIZE
from core.logging_config import get_logger
from core.pipeline_config import AggregateTransform, JoinTransform, TransformationRule
from core.types import ProcessedBatch, Record, RunMetadata
from transforms.batch_rules import apply_aggregate, apply_join
from transforms.lookup_cache import LookupCache
from transforms.record_rules import CompiledRule, apply_record_rules, compile_record_rules

_LOGGER = get_logger(__name__)


def transform(
    records: Sequence[Record],
    rules: Sequence[TransformationRule],
    cache: LookupCache,
    *,
    join_records: Mapping[str, Sequence[Record]] | None = None,
    max_workers: int = 1,
    cancellation: CancellationToken | None = None,
    chunk_size: int = DEFAULT_RUN_CHUNK_SIZE,
) -> list[Record]:
    """Apply transformation rules to a batch.

    Args:
        records: Input records; never mutated.
        rules: Rules in declared order.
        cache: Frozen lookup cache shared by all workers.
        join_records: Records of each named join source.
        max_workers: Worker pool size for the per-record phase.
        cancellation: Optional run cancellation token.
        chunk_size: Records handed to a worker per task.

    Returns:
        Output records in input order, minus filtered records.

    Raises:
        SluiceTransformError: If a rule fails; the error names the rule and
            the lowest failing record index.
        SluiceCancelledError: If cancellation is observed.
    """
    token = cancellation or CancellationToken()
    aggregate_rules = [
        rule for rule in rules if isinstance(rule.transformation, AggregateTransform)
    ]
    record_rules = [rule for rule in rules if not rule.is_batch_scoped]
    compiled = compile_record_rules(record_rules, cache)

    batch: list[Record] = [dict(record) for record in records]
    for rule in rules:
        kind = rule.transformation
        if isinstance(kind, JoinTransform):
            token.raise_if_cancelled("transformation")
            batch = apply_join(batch, rule, (join_records or {}).get(kind.join_source, ()))

    if compiled:
        batch = _run_record_phase(
            batch,
            compiled,
            max(1, max_workers),
            token,
            chunk_size,
            merge_input=bool(aggregate_rules),
        )

    for rule in aggregate_rules:
        token.raise_if_cancelled("transformation")
        batch = apply_aggregate(batch, rule)
    return batch


def transform_batch(
    records: Sequence[Record],
    rules: Sequence[TransformationRule],
    cache: LookupCache,
    *,
    source: str,
    join_records: Mapping[str, Sequence[Record]] | None = None,
    max_workers: int = 1,
    cancellation: CancellationToken | None = None,
) -> ProcessedBatch:
    """Transform a batch and attach run metadata.

    Args:
        records: Input records.
        rules: Rules in declared order.
        cache: Frozen lookup cache.
        source: Source identifier recorded in the metadata.
        join_records: Records of each named join source.
        max_workers: Worker pool size.
        cancellation: Optional run cancellation token.

    Returns:
        Output records with their metadata.
    """
    output = transform(
        records,
        rules,
        cache,
        join_records=join_records,
        max_workers=max_workers,
        cancellation=cancellation,
    )
    metadata = RunMetadata(
        source=source,
        timestamp=datetime.now(timezone.utc),
        record_count=len(output),
    )
    _LOGGER.info(
        "transform_completed",
        source=source,
        input_count=len(records),
        output_count=len(output),
        rule_count=len(rules),
    )
    return ProcessedBatch(records=tuple(output), metadata=metadata)


def _run_record_phase(
    records: list[Record],
    rules: list[CompiledRule],
    max_workers: int,
    token: CancellationToken,
    chunk_size: int,
    *,
    merge_input: bool = False,
) -> list[Record]:
    """Apply per-record rules, in parallel when more than one worker is allowed.

    With ``merge_input`` each result is the rule output laid over its input
    record, which is the view aggregate rules reduce.
    """
    size = max(1, chunk_size)
    chunks = [(start, records[start : start + size]) for start in range(0, len(records), size)]
    if max_workers == 1 or len(chunks) <= 1:
        results = [
            _apply_chunk(start, chunk, rules, token, merge_input) for start, chunk in chunks
        ]
        return [record for chunk_result in results for record in chunk_result]

    output: list[Record] = []
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures: list[Future[list[Record]]] = []
        for start, chunk in chunks:
            if token.is_cancelled:
                break
            futures.append(executor.submit(_apply_chunk, start, chunk, rules, token, merge_input))
        try:
            for future in futures:
                output.extend(future.result())
        except BaseException:
            for future in futures:
                future.cancel()
            raise
    token.raise_if_cancelled("transformation")
    return output


def _apply_chunk(
    start: int,
    chunk: list[Record],
    rules: list[CompiledRule],
    token: CancellationToken,
    merge_input: bool,
) -> list[Record]:
    token.raise_if_cancelled("transformation")
    transformed: list[Record] = []
    for offset, record in enumerate(chunk):
        output = apply_record_rules(record, rules, start + offset)
        if output is None:
            continue
        transformed.append({**record, **output} if merge_input else output)
    return transformed

