"""Pipeline orchestration.

This module runs one pipeline through its stages: extraction, lookup cache
construction, transformation, and writing. Every state transition is logged
and reported to an optional progress sink.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Literal

import requests

from core.cancellation import CancellationToken
from core.config import SluiceConfig
from core.logging_config import get_logger
from core.pipeline_config import PipelineConfig
from core.types import LoadReceipt, ProcessedBatch, Record, RunMetadata
from ingest.database import DatabaseAdapter, SqlAlchemyDatabase
from ingest.extractor import ExtractionContext, describe_source, extract_with_context
from ingest.http_source import new_session
from ingest.object_store import Boto3ObjectStore, ObjectStoreAdapter
from ingest.retry import WaitFn
from store.loader import load
from transforms.engine import transform_batch
from transforms.lookup_cache import LookupCache, build_lookup_cache

_LOGGER = get_logger(__name__)

PipelineState = Literal[
    "extracting",
    "loading_mappings",
    "transforming",
    "writing",
    "done",
    "failed",
]


@dataclass(frozen=True)
class ProgressEvent:
    """One pipeline state transition.

    Attributes:
        pipeline: Pipeline name.
        state: State entered.
        previous_state: State left, or None for the first transition.
        timestamp: UTC time of the transition.
        detail: Optional human-readable detail, e.g. the failure message.
    """

    pipeline: str
    state: PipelineState
    previous_state: PipelineState | None
    timestamp: datetime
    detail: str | None = None


ProgressSink = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class PipelineAdapters:
    """Replaceable collaborators for a pipeline run.

    Attributes:
        session: requests session shared by API sources and destinations.
        object_store: Object-store adapter.
        database: Database adapter.
        wait: Backoff wait function used by extraction retries.
    """

    session: requests.Session | None = None
    object_store: ObjectStoreAdapter | None = None
    database: DatabaseAdapter | None = None
    wait: WaitFn | None = None


@dataclass(frozen=True)
class PipelineRunResult:
    """Outcome of a successful pipeline run.

    Attributes:
        state: Final state, always ``done``.
        record_count: Number of records written.
        receipt: Load receipt of the committed output.
        metadata: Run metadata of the transformed batch.
    """

    state: PipelineState
    record_count: int
    receipt: LoadReceipt
    metadata: RunMetadata


class PipelineRunner:
    """Stateful runner executing one pipeline config end to end."""

    def __init__(
        self,
        config: PipelineConfig,
        runtime: SluiceConfig,
        *,
        progress_sink: ProgressSink | None = None,
        cancellation: CancellationToken | None = None,
        adapters: PipelineAdapters | None = None,
        base_dir: Path | None = None,
    ) -> None:
        self._config = config
        self._runtime = runtime
        self._progress_sink = progress_sink
        self._cancellation = cancellation or CancellationToken()
        self._base_dir = base_dir
        chosen = adapters or PipelineAdapters()
        self._session = chosen.session or new_session()
        self._object_store = chosen.object_store or Boto3ObjectStore(runtime)
        self._database = chosen.database or SqlAlchemyDatabase()
        self._wait = chosen.wait
        self._state: PipelineState | None = None

    @property
    def state(self) -> PipelineState | None:
        """Return the current state, or None before the run starts."""
        return self._state

    def run(self) -> PipelineRunResult:
        """Execute every stage in order and return the run result.

        Raises:
            SluiceError: The first stage failure, unchanged, after the run
                transitions to ``failed``.
        """
        _log_run_settings(self._config)
        try:
            records, join_records = self._extract()
            cache = self._load_mappings()
            batch = self._transform(records, join_records, cache)
            receipt = self._write(batch)
        except Exception as error:
            failed_stage = self._state
            self._transition("failed", str(error))
            _LOGGER.error(
                "pipeline_failed",
                pipeline=self._config.name,
                stage=failed_stage,
                error_type=type(error).__name__,
                error=str(error),
            )
            raise
        self._transition("done", receipt.destination)
        _LOGGER.info(
            "pipeline_completed",
            pipeline=self._config.name,
            record_count=receipt.record_count,
            destination=receipt.destination,
        )
        return PipelineRunResult(
            state="done",
            record_count=receipt.record_count,
            receipt=receipt,
            metadata=batch.metadata,
        )

    def _extract(self) -> tuple[list[Record], dict[str, list[Record]]]:
        self._transition("extracting", describe_source(self._config.data_source))
        records = extract_with_context(
            self._config.data_source, self._extraction_context("data_source")
        )
        join_records: dict[str, list[Record]] = {}
        for name, source in (self._config.join_sources or {}).items():
            join_records[name] = extract_with_context(
                source, self._extraction_context(f"join_sources.{name}")
            )
        return records, join_records

    def _load_mappings(self) -> LookupCache:
        tables = self._config.lookup_tables or ()
        self._transition("loading_mappings", f"{len(tables)} lookup table(s)")
        self._cancellation.raise_if_cancelled("loading_mappings")
        return build_lookup_cache(tables, self._base_dir)

    def _transform(
        self,
        records: list[Record],
        join_records: dict[str, list[Record]],
        cache: LookupCache,
    ) -> ProcessedBatch:
        self._transition("transforming", f"{len(records)} record(s)")
        settings = self._config.settings
        max_workers = (settings.parallel_workers if settings else None) or self._runtime.max_workers
        return transform_batch(
            records,
            self._config.transformations,
            cache,
            source=describe_source(self._config.data_source),
            join_records=join_records,
            max_workers=max_workers,
            cancellation=self._cancellation,
        )

    def _write(self, batch: ProcessedBatch) -> LoadReceipt:
        self._transition("writing", f"{len(batch.records)} record(s)")
        self._cancellation.raise_if_cancelled("writing")
        settings = self._config.settings
        return load(
            batch.records,
            self._config.output,
            runtime=self._runtime,
            session=self._session,
            object_store=self._object_store,
            database=self._database,
            variables=settings.variables if settings else None,
            timeout_seconds=settings.timeout_seconds if settings else None,
            temp_directory=settings.temp_directory if settings else None,
        )

    def _extraction_context(self, field_prefix: str) -> ExtractionContext:
        settings = self._config.settings
        return ExtractionContext(
            runtime=self._runtime,
            cancellation=self._cancellation,
            session=self._session,
            object_store=self._object_store,
            database=self._database,
            variables=settings.variables if settings else None,
            timeout_seconds=settings.timeout_seconds if settings else None,
            wait=self._wait,
            field_prefix=field_prefix,
        )

    def _transition(self, state: PipelineState, detail: str | None = None) -> None:
        event = ProgressEvent(
            pipeline=self._config.name,
            state=state,
            previous_state=self._state,
            timestamp=datetime.now(timezone.utc),
            detail=detail,
        )
        self._state = state
        _LOGGER.info(
            "pipeline_state_changed",
            pipeline=event.pipeline,
            state=event.state,
            previous_state=event.previous_state,
            detail=event.detail,
        )
        if self._progress_sink is None:
            return
        try:
            self._progress_sink(event)
        except Exception as error:
            _LOGGER.warning(
                "progress_sink_failed",
                pipeline=event.pipeline,
                state=event.state,
                error=str(error),
            )


def run_pipeline(
    config: PipelineConfig,
    *,
    runtime: SluiceConfig,
    progress_sink: ProgressSink | None = None,
    cancellation: CancellationToken | None = None,
    adapters: PipelineAdapters | None = None,
    base_dir: Path | None = None,
) -> PipelineRunResult:
    """Run a pipeline config end to end.

    Args:
        config: Validated pipeline config.
        runtime: Runtime configuration.
        progress_sink: Optional callable receiving every state transition.
        cancellation: Optional run cancellation token.
        adapters: Optional replacement collaborators.
        base_dir: Directory relative lookup-table paths resolve against.

    Returns:
        Result of the completed run.

    Raises:
        SluiceError: The first stage failure, unchanged.
    """
    runner = PipelineRunner(
        config,
        runtime,
        progress_sink=progress_sink,
        cancellation=cancellation,
        adapters=adapters,
        base_dir=base_dir,
    )
    return runner.run()


def _log_run_settings(config: PipelineConfig) -> None:
    settings = config.settings
    _LOGGER.info(
        "pipeline_started",
        pipeline=config.name,
        rule_count=len(config.transformations),
        join_source_count=len(config.join_sources or {}),
        parallel_workers=settings.parallel_workers if settings else None,
    )
    if settings and settings.memory_limit_mb is not None:
        _LOGGER.info(
            "memory_limit_advisory",
            pipeline=config.name,
            memory_limit_mb=settings.memory_limit_mb,
        )
    if settings and settings.temp_directory is not None:
        _LOGGER.info(
            "temp_directory_override",
            pipeline=config.name,
            temp_directory=settings.temp_directory,
        )
