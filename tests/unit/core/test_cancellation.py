"""Unit tests for the run cancellation token."""

from __future__ import annotations

import pytest

from core.cancellation import CancellationToken
from core.errors import SluiceCancelledError


def test_wait_returns_false_when_not_cancelled() -> None:
    """Waiting on an active token should time out without cancellation."""
    token = CancellationToken()

    assert token.wait(0.0) is False
    assert token.is_cancelled is False


def test_cancel_wakes_waiters_and_raises() -> None:
    """A cancelled token should return immediately and raise for stages."""
    token = CancellationToken()
    token.cancel()

    assert token.wait(60.0) is True
    with pytest.raises(SluiceCancelledError, match="extraction"):
        token.raise_if_cancelled("extraction")
