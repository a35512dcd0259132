"""Run command wiring for Sluice CLI."""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
from typing import Any

from core.config import SluiceConfig
from core.logging_config import configure_logging
from core.pipeline_config_parsing import load_pipeline_config
from ingest.pipeline import ProgressEvent, run_pipeline


def add_run_command(subparsers: Any) -> None:
    """Register run subcommand."""
    parser = subparsers.add_parser("run", help="Run a pipeline config end to end")
    parser.add_argument("config", help="Pipeline config file (.json, .yaml, or .yml)")
    parser.add_argument(
        "--workers",
        type=_positive_int,
        help="Override the worker pool size for the per-record phase",
    )


def run_run_command(runtime: SluiceConfig, args: argparse.Namespace) -> int:
    """Load, validate, and execute a pipeline, then print its receipt."""
    config = load_pipeline_config(args.config)
    settings = config.settings
    configure_logging((settings.log_level if settings else None) or runtime.log_level)
    if args.workers is not None:
        runtime = replace(runtime, max_workers=args.workers)
        if settings is not None and settings.parallel_workers is not None:
            config = replace(config, settings=replace(settings, parallel_workers=args.workers))
    result = run_pipeline(
        config,
        runtime=runtime,
        progress_sink=_print_progress,
        base_dir=Path(args.config).expanduser().resolve().parent,
    )
    print(f"state={result.state}")
    print(f"record_count={result.record_count}")
    print(f"destination={result.receipt.destination}")
    print(f"artifact_count={result.receipt.artifact_count}")
    return 0


def _print_progress(event: ProgressEvent) -> None:
    print(f"[{event.pipeline}] {event.previous_state or '-'} -> {event.state}")


def _positive_int(raw_value: str) -> int:
    try:
        value = int(raw_value)
    except ValueError as error:
        raise argparse.ArgumentTypeError(f"expected an integer, got '{raw_value}'") from error
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value
