"""Unit tests for the retry helper."""

from __future__ import annotations

import pytest

from core.cancellation import CancellationToken
from core.errors import SluiceCancelledError
from core.pipeline_config import RetryConfig
from ingest.retry import RetryPolicy, run_with_retry
from tests.fakes import RecordingWait


class _TransientError(Exception):
    pass


def _policy(max_attempts: int = 5) -> RetryPolicy:
    config = RetryConfig(
        max_attempts=max_attempts,
        initial_delay_ms=100,
        max_delay_ms=350,
        backoff_multiplier=2.0,
    )
    return RetryPolicy.from_config(config, lambda error: isinstance(error, _TransientError))


def test_policy_defaults_when_config_absent() -> None:
    """Absent retry config should use the documented defaults."""
    policy = RetryPolicy.from_config(None, lambda error: True)

    assert policy.max_attempts == 3
    assert policy.initial_delay_seconds == 0.5
    assert policy.max_delay_seconds == 30.0
    assert policy.backoff_multiplier == 2.0


def test_delays_grow_and_are_capped() -> None:
    """Delays should grow geometrically up to the cap."""
    policy = _policy()

    delays = [policy.delay_before_retry(attempt) for attempt in range(1, 5)]

    assert delays == pytest.approx([0.1, 0.2, 0.35, 0.35])


def test_run_with_retry_stops_after_max_attempts() -> None:
    """Transient failures should be attempted at most max_attempts times."""
    attempts: list[int] = []
    wait = RecordingWait()

    def always_fail() -> None:
        attempts.append(1)
        raise _TransientError("flaky")

    with pytest.raises(_TransientError):
        run_with_retry(always_fail, _policy(max_attempts=4), description="op", wait=wait)

    assert len(attempts) == 4
    assert len(wait.delays) == 3
    assert wait.delays == sorted(wait.delays)
    assert max(wait.delays) <= 0.35


def test_run_with_retry_returns_first_success() -> None:
    """A success after transient failures should be returned."""
    outcomes: list[object] = [_TransientError("once"), "ok"]

    def flaky() -> str:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return str(outcome)

    assert run_with_retry(flaky, _policy(), description="op", wait=RecordingWait()) == "ok"


def test_run_with_retry_does_not_retry_terminal_errors() -> None:
    """Errors the predicate rejects should propagate immediately."""
    attempts: list[int] = []

    def fail_terminally() -> None:
        attempts.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        run_with_retry(fail_terminally, _policy(), description="op", wait=RecordingWait())

    assert len(attempts) == 1


def test_run_with_retry_aborts_when_cancelled_mid_backoff() -> None:
    """A wait reporting cancellation should abort the retry loop."""
    attempts: list[int] = []

    def always_fail() -> None:
        attempts.append(1)
        raise _TransientError("flaky")

    with pytest.raises(SluiceCancelledError):
        run_with_retry(
            always_fail, _policy(), description="op", wait=RecordingWait(cancel_after=1)
        )

    assert len(attempts) == 1


def test_run_with_retry_refuses_to_start_when_cancelled() -> None:
    """A cancelled token should prevent the first attempt."""
    token = CancellationToken()
    token.cancel()

    with pytest.raises(SluiceCancelledError):
        run_with_retry(lambda: "never", _policy(), description="op", cancellation=token)
