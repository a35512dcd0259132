"""Generic retry helper with exponential backoff.

This module owns the retry policy object and the loop that applies it.
It knows nothing about HTTP: callers inject the transient-error predicate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeVar

from core.cancellation import CancellationToken
from core.constants import (
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_INITIAL_DELAY_MS,
    DEFAULT_RETRY_MAX_ATTEMPTS,
    DEFAULT_RETRY_MAX_DELAY_MS,
)
from core.errors import SluiceCancelledError
from core.logging_config import get_logger
from core.pipeline_config import RetryConfig

_LOGGER = get_logger(__name__)

_T = TypeVar("_T")
WaitFn = Callable[[float], bool]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling, delay schedule, and transient-error predicate.

    Attributes:
        max_attempts: Total attempts including the first one.
        initial_delay_seconds: Wait before the second attempt.
        max_delay_seconds: Upper bound for any single wait.
        backoff_multiplier: Growth factor between consecutive waits.
        is_transient: Predicate deciding whether an error may be retried.
    """

    max_attempts: int
    initial_delay_seconds: float
    max_delay_seconds: float
    backoff_multiplier: float
    is_transient: Callable[[BaseException], bool]

    @classmethod
    def from_config(
        cls,
        retry: RetryConfig | None,
        is_transient: Callable[[BaseException], bool],
    ) -> "RetryPolicy":
        """Build a policy from config, applying defaults when absent."""
        if retry is None:
            retry = RetryConfig(
                max_attempts=DEFAULT_RETRY_MAX_ATTEMPTS,
                initial_delay_ms=DEFAULT_RETRY_INITIAL_DELAY_MS,
                max_delay_ms=DEFAULT_RETRY_MAX_DELAY_MS,
                backoff_multiplier=DEFAULT_RETRY_BACKOFF_MULTIPLIER,
            )
        return cls(
            max_attempts=retry.max_attempts,
            initial_delay_seconds=retry.initial_delay_ms / 1000.0,
            max_delay_seconds=retry.max_delay_ms / 1000.0,
            backoff_multiplier=float(retry.backoff_multiplier),
            is_transient=is_transient,
        )

    def delay_before_retry(self, failed_attempt: int) -> float:
        """Return the wait after the given one-based failed attempt."""
        delay = self.initial_delay_seconds * (self.backoff_multiplier ** (failed_attempt - 1))
        return min(delay, self.max_delay_seconds)


def run_with_retry(
    operation: Callable[[], _T],
    policy: RetryPolicy,
    *,
    description: str,
    cancellation: CancellationToken | None = None,
    wait: WaitFn | None = None,
) -> _T:
    """Run ``operation`` until it succeeds, fails terminally, or attempts run out.

    Args:
        operation: Zero-argument callable performing one attempt.
        policy: Retry policy to apply.
        description: Operation label used in log events.
        cancellation: Optional run cancellation token; aborts mid-backoff.
        wait: Wait function returning True when cancelled. Defaults to the
            token's wait, or a plain event wait when no token is given.

    Returns:
        Result of the first successful attempt.

    Raises:
        SluiceCancelledError: If cancellation is observed between attempts.
        BaseException: The last error when it is terminal or attempts are exhausted.
    """
    token = cancellation or CancellationToken()
    wait_fn = wait or token.wait
    attempt = 1
    while True:
        token.raise_if_cancelled(description)
        try:
            return operation()
        except Exception as error:
            if not policy.is_transient(error) or attempt >= policy.max_attempts:
                if policy.is_transient(error):
                    _LOGGER.error(
                        "retry_exhausted",
                        operation=description,
                        attempts=attempt,
                        error=str(error),
                    )
                raise
            delay = policy.delay_before_retry(attempt)
            _LOGGER.warning(
                "retry_scheduled",
                operation=description,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_seconds=delay,
                error=str(error),
            )
            if wait_fn(delay):
                raise SluiceCancelledError(
                    f"Pipeline run cancelled while waiting to retry {description}."
                ) from error
            attempt += 1
