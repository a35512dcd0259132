"""Run-level cancellation signal.

The token is shared by the retry loop and the transform worker pool so a
single ``cancel()`` aborts backoff waits and stops record dispatch.
"""

from __future__ import annotations

import threading

from core.errors import SluiceCancelledError


class CancellationToken:
    """Thread-safe, one-way cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Signal cancellation to every observer."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        """Return whether cancellation was requested."""
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Block up to ``seconds``; return True if cancelled meanwhile."""
        return self._event.wait(timeout=max(0.0, seconds))

    def raise_if_cancelled(self, stage: str) -> None:
        """Raise when cancelled.

        Args:
            stage: Stage name included in the error message.

        Raises:
            SluiceCancelledError: If cancellation was requested.
        """
        if self._event.is_set():
            raise SluiceCancelledError(f"Pipeline run cancelled during {stage}.")
