"""Public SDK surface for Sluice.

This module provides a stable import path for pipeline users.
It re-exports the run entry point, config helpers, and typed models.
"""

from __future__ import annotations

from core.cancellation import CancellationToken
from core.config import SluiceConfig
from core.errors import (
    SluiceAuthError,
    SluiceCancelledError,
    SluiceConfigError,
    SluiceError,
    SluiceExtractError,
    SluiceHttpError,
    SluiceLoadError,
    SluiceTransformError,
)
from core.pipeline_config import PipelineConfig
from core.pipeline_config_parsing import load_pipeline_config, parse_pipeline_config
from core.pipeline_config_serialization import serialize_pipeline_config
from core.pipeline_config_validation import validate_pipeline_config
from core.types import LoadReceipt, ProcessedBatch, Record, RunMetadata
from ingest.extractor import extract
from ingest.pipeline import PipelineAdapters, PipelineRunResult, ProgressEvent, run_pipeline
from store.loader import load
from transforms.engine import transform, transform_batch
from transforms.lookup_cache import LookupCache, build_lookup_cache

__all__ = [
    "CancellationToken",
    "LoadReceipt",
    "LookupCache",
    "PipelineAdapters",
    "PipelineConfig",
    "PipelineRunResult",
    "ProcessedBatch",
    "ProgressEvent",
    "Record",
    "RunMetadata",
    "SluiceAuthError",
    "SluiceCancelledError",
    "SluiceConfig",
    "SluiceConfigError",
    "SluiceError",
    "SluiceExtractError",
    "SluiceHttpError",
    "SluiceLoadError",
    "SluiceTransformError",
    "build_lookup_cache",
    "extract",
    "load",
    "load_pipeline_config",
    "parse_pipeline_config",
    "run_pipeline",
    "serialize_pipeline_config",
    "transform",
    "transform_batch",
    "validate_pipeline_config",
]
