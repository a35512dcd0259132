"""HTTP client for API sources and callback destinations.

This module sends one authenticated request per attempt through a requests
session. Transport failures are retried by policy; any received response is
final, and non-2xx responses surface as ``SluiceHttpError``.
"""

from __future__ import annotations

from typing import Any, Mapping

import requests

from core.cancellation import CancellationToken
from core.constants import DEFAULT_HTTP_METHOD, USER_AGENT
from core.errors import SluiceExtractError, SluiceHttpError
from core.logging_config import get_logger
from core.pipeline_config import ApiSource, AuthConfig
from ingest.auth import build_request_auth
from ingest.retry import RetryPolicy, WaitFn, run_with_retry

_LOGGER = get_logger(__name__)


def new_session() -> requests.Session:
    """Create a requests session with default headers."""
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def is_transient_http_error(error: BaseException) -> bool:
    """Classify timeouts and connection failures as retryable."""
    return isinstance(error, (requests.Timeout, requests.ConnectionError))


def fetch_api_payload(
    source: ApiSource,
    *,
    url: str,
    session: requests.Session,
    timeout_seconds: float,
    cancellation: CancellationToken | None = None,
    wait: WaitFn | None = None,
) -> bytes:
    """Fetch the raw response body of an API source.

    Args:
        source: API source config.
        url: Request URL with variables already substituted.
        session: requests session used to send the request.
        timeout_seconds: Per-request timeout.
        cancellation: Optional run cancellation token.
        wait: Optional backoff wait function, mainly for tests.

    Returns:
        Response body bytes.

    Raises:
        SluiceAuthError: If the auth config cannot be applied.
        SluiceHttpError: If the server answers with a non-2xx status.
        SluiceExtractError: If transport failures exhaust the retry policy.
    """
    request_auth = build_request_auth(source.auth)
    method = (source.method or DEFAULT_HTTP_METHOD).upper()
    headers = {**(source.headers or {}), **request_auth.headers}
    policy = RetryPolicy.from_config(source.retry, is_transient_http_error)

    def send_once() -> requests.Response:
        return session.request(
            method,
            url,
            headers=headers,
            auth=request_auth.handler,
            timeout=timeout_seconds,
        )

    try:
        response = run_with_retry(
            send_once,
            policy,
            description=f"{method} {url}",
            cancellation=cancellation,
            wait=wait,
        )
    except requests.RequestException as error:
        raise SluiceExtractError(
            f"Failed to fetch {method} {url}: {error}. "
            "Check network access to the endpoint and retry."
        ) from error
    _raise_for_status(response, url)
    _LOGGER.info(
        "http_source_fetched",
        url=url,
        method=method,
        status_code=response.status_code,
        bytes=len(response.content),
    )
    return response.content


def send_json_payload(
    *,
    url: str,
    method: str,
    headers: Mapping[str, str] | None,
    auth: AuthConfig | None,
    payload: Any,
    session: requests.Session,
    timeout_seconds: float,
) -> int:
    """Send one JSON payload without retry.

    Returns:
        Response status code.

    Raises:
        SluiceHttpError: If the server answers with a non-2xx status.
        requests.RequestException: On transport failure.
    """
    request_auth = build_request_auth(auth)
    response = session.request(
        method.upper(),
        url,
        headers={**(headers or {}), **request_auth.headers},
        auth=request_auth.handler,
        json=payload,
        timeout=timeout_seconds,
    )
    _raise_for_status(response, url)
    return int(response.status_code)


def _raise_for_status(response: requests.Response, url: str) -> None:
    status_code = int(response.status_code)
    if 200 <= status_code < 300:
        return
    _LOGGER.warning("http_status_rejected", url=url, status_code=status_code)
    raise SluiceHttpError(status_code, url, getattr(response, "reason", "") or "")
