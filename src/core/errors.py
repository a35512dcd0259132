"""Sluice exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each pipeline stage raises a specific error type for debuggability.
"""

from __future__ import annotations


class SluiceError(Exception):
    """Base exception for all Sluice failures."""


class SluiceConfigError(SluiceError):
    """Raised for invalid pipeline or runtime configuration.

    Attributes:
        field_path: Dotted path of the offending field, when known.
    """

    def __init__(self, message: str, field_path: str | None = None) -> None:
        self.field_path = field_path
        if field_path:
            message = f"{field_path}: {message}"
        super().__init__(message)


class SluiceExtractError(SluiceError):
    """Raised for source acquisition and decode failures."""


class SluiceHttpError(SluiceExtractError):
    """Raised when an HTTP source answers with a non-2xx status.

    Attributes:
        status_code: Status code returned by the server.
        url: Requested URL.
    """

    def __init__(self, status_code: int, url: str, reason: str = "") -> None:
        self.status_code = status_code
        self.url = url
        detail = f" {reason}" if reason else ""
        super().__init__(
            f"HTTP {status_code}{detail} from {url}. "
            "The response is terminal and was not retried."
        )


class SluiceAuthError(SluiceError):
    """Raised for missing, invalid, or unsupported credentials."""


class SluiceTransformError(SluiceError):
    """Raised for rule evaluation failures.

    Attributes:
        rule_name: Name of the failing rule, when known.
        record_index: Zero-based index of the failing input record, when known.
    """

    def __init__(
        self,
        message: str,
        rule_name: str | None = None,
        record_index: int | None = None,
    ) -> None:
        self.rule_name = rule_name
        self.record_index = record_index
        location: list[str] = []
        if rule_name is not None:
            location.append(f"rule '{rule_name}'")
        if record_index is not None:
            location.append(f"record #{record_index}")
        if location:
            message = f"{', '.join(location)}: {message}"
        super().__init__(message)


class SluiceLoadError(SluiceError):
    """Raised for output encoding and write failures."""


class SluiceDependencyError(SluiceError):
    """Raised when an optional runtime dependency is missing."""


class SluiceCancelledError(SluiceError):
    """Raised when a run observes its cancellation signal."""
