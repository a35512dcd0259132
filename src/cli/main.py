"""Sluice CLI entry points.
This module exposes commands to run, validate, and inspect pipeline configs.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Sequence

from cli.run_command import add_run_command, run_run_command
from core.config import SluiceConfig
from core.errors import SluiceError
from core.logging_config import configure_logging
from core.pipeline_config_parsing import load_pipeline_config
from core.pipeline_config_serialization import serialize_pipeline_config


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="sluice", description="Sluice ETL pipeline CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)
    add_run_command(subparsers)
    _add_validate_command(subparsers)
    _add_show_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Sluice CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code: 0 on success, 1 on a pipeline error.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        runtime = SluiceConfig.from_env()
        configure_logging(runtime.log_level)
        if args.command == "run":
            return run_run_command(runtime, args)
        if args.command == "validate":
            return _run_validate_command(args)
        if args.command == "show":
            return _run_show_command(args)
    except SluiceError as error:
        print(f"error: {error}", file=sys.stderr)
        return 1
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _run_validate_command(args: argparse.Namespace) -> int:
    """Handle validate command.

    Args:
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    config = load_pipeline_config(args.config)
    print(f"valid: {config.name} ({len(config.transformations)} rule(s))")
    return 0


def _run_show_command(args: argparse.Namespace) -> int:
    """Handle show command.

    Args:
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    config = load_pipeline_config(args.config)
    print(serialize_pipeline_config(config))
    return 0


def _add_validate_command(subparsers: Any) -> None:
    """Register validate subcommand."""
    parser = subparsers.add_parser("validate", help="Parse and validate a pipeline config")
    parser.add_argument("config", help="Pipeline config file (.json, .yaml, or .yml)")


def _add_show_command(subparsers: Any) -> None:
    """Register show subcommand."""
    parser = subparsers.add_parser("show", help="Print a pipeline config as normalized JSON")
    parser.add_argument("config", help="Pipeline config file (.json, .yaml, or .yml)")
