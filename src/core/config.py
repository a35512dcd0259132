"""Runtime configuration model for Sluice.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os

from core.constants import DEFAULT_HTTP_TIMEOUT_SECONDS, DEFAULT_LOG_LEVEL
from core.errors import SluiceConfigError

SUPPORTED_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


@dataclass(frozen=True)
class SluiceConfig:
    """Validated runtime configuration.

    Attributes:
        max_workers: Worker pool size for the per-record transform phase.
        http_timeout_seconds: Per-request timeout for HTTP sources and sinks.
        s3_region: Optional default AWS region for object-store operations.
        s3_profile: Optional AWS profile for boto3 session initialization.
        log_level: Minimum structured log level.
    """

    max_workers: int
    http_timeout_seconds: float
    s3_region: str | None
    s3_profile: str | None
    log_level: str

    @classmethod
    def from_env(cls) -> "SluiceConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            SluiceConfigError: If environment values are invalid.
        """
        default_workers = str(os.cpu_count() or 1)
        max_workers = _parse_positive_int(
            "SLUICE_MAX_WORKERS", os.getenv("SLUICE_MAX_WORKERS", default_workers)
        )
        timeout_value = os.getenv("SLUICE_HTTP_TIMEOUT_SECONDS", str(DEFAULT_HTTP_TIMEOUT_SECONDS))
        return cls(
            max_workers=max_workers,
            http_timeout_seconds=_parse_positive_float(
                "SLUICE_HTTP_TIMEOUT_SECONDS", timeout_value
            ),
            s3_region=os.getenv("SLUICE_S3_REGION"),
            s3_profile=os.getenv("SLUICE_S3_PROFILE"),
            log_level=parse_log_level(
                os.getenv("SLUICE_LOG_LEVEL", DEFAULT_LOG_LEVEL), "SLUICE_LOG_LEVEL"
            ),
        )


def parse_log_level(raw_value: str, field_name: str) -> str:
    """Normalize and validate a log level name.

    Args:
        raw_value: Level name in any case.
        field_name: Source of the value for error messages.

    Returns:
        Lowercase level name.

    Raises:
        SluiceConfigError: If the level is unknown.
    """
    level = raw_value.strip().lower()
    if level not in SUPPORTED_LOG_LEVELS:
        raise SluiceConfigError(
            f"Invalid log level '{raw_value}'. Use one of: {', '.join(SUPPORTED_LOG_LEVELS)}.",
            field_name,
        )
    return level


def _parse_positive_int(name: str, raw_value: str) -> int:
    try:
        value = int(raw_value)
    except ValueError as error:
        raise SluiceConfigError(
            f"Invalid {name} value: expected integer, got '{raw_value}'. "
            f"Set {name} to a positive number."
        ) from error
    if value < 1:
        raise SluiceConfigError(f"Invalid {name} value {value}: must be at least 1.")
    return value


def _parse_positive_float(name: str, raw_value: str) -> float:
    try:
        value = float(raw_value)
    except ValueError as error:
        raise SluiceConfigError(
            f"Invalid {name} value: expected number, got '{raw_value}'. "
            f"Set {name} to a positive number of seconds."
        ) from error
    if value <= 0:
        raise SluiceConfigError(f"Invalid {name} value {value}: must be positive.")
    return value
