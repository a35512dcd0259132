"""Unit tests for the HTTP source client."""

from __future__ import annotations

import pytest
import requests

from core.errors import SluiceExtractError, SluiceHttpError
from core.pipeline_config import ApiSource, AuthConfig, AuthCredentials, RetryConfig
from ingest.http_source import fetch_api_payload, is_transient_http_error, send_json_payload
from tests.fakes import FakeResponse, FakeSession, RecordingWait, connection_error

_URL = "https://api.example.com/items"


def _source(**overrides: object) -> ApiSource:
    retry = RetryConfig(
        max_attempts=3, initial_delay_ms=100, max_delay_ms=150, backoff_multiplier=2.0
    )
    fields: dict[str, object] = {"url": _URL, "retry": retry}
    fields.update(overrides)
    return ApiSource(**fields)  # type: ignore[arg-type]


def test_is_transient_http_error_classifies_transport_failures() -> None:
    """Timeouts and connection errors should be retryable."""
    assert is_transient_http_error(requests.Timeout("slow"))
    assert is_transient_http_error(connection_error())
    assert not is_transient_http_error(ValueError("bad"))


def test_fetch_api_payload_returns_body_and_sends_auth() -> None:
    """A 2xx response body should be returned with auth headers attached."""
    session = FakeSession([FakeResponse(content=b'[{"id": 1}]')])
    auth = AuthConfig("bearer_token", AuthCredentials(token="t0k"))

    body = fetch_api_payload(
        _source(auth=auth, headers={"Accept": "application/json"}),
        url=_URL,
        session=session,  # type: ignore[arg-type]
        timeout_seconds=5.0,
    )

    assert body == b'[{"id": 1}]'
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["headers"] == {"Accept": "application/json", "Authorization": "Bearer t0k"}
    assert call["timeout"] == 5.0


def test_fetch_api_payload_retries_transient_failures_up_to_limit() -> None:
    """Transport failures should be attempted max_attempts times with capped delays."""
    session = FakeSession([connection_error()])
    wait = RecordingWait()

    with pytest.raises(SluiceExtractError, match="Failed to fetch"):
        fetch_api_payload(
            _source(),
            url=_URL,
            session=session,  # type: ignore[arg-type]
            timeout_seconds=1.0,
            wait=wait,
        )

    assert len(session.calls) == 3
    assert wait.delays == pytest.approx([0.1, 0.15])


def test_fetch_api_payload_recovers_after_transient_failure() -> None:
    """A success after a transient failure should return the body."""
    session = FakeSession([requests.Timeout("slow"), FakeResponse(content=b"{}")])

    body = fetch_api_payload(
        _source(),
        url=_URL,
        session=session,  # type: ignore[arg-type]
        timeout_seconds=1.0,
        wait=RecordingWait(),
    )

    assert body == b"{}" and len(session.calls) == 2


def test_fetch_api_payload_does_not_retry_non_2xx() -> None:
    """Non-2xx responses should surface the status without retrying."""
    session = FakeSession([FakeResponse(status_code=503, reason="Service Unavailable")])
    wait = RecordingWait()

    with pytest.raises(SluiceHttpError) as error_info:
        fetch_api_payload(
            _source(),
            url=_URL,
            session=session,  # type: ignore[arg-type]
            timeout_seconds=1.0,
            wait=wait,
        )

    assert error_info.value.status_code == 503
    assert len(session.calls) == 1 and wait.delays == []


def test_send_json_payload_posts_json_body() -> None:
    """Callback payloads should be sent as JSON with the given method."""
    session = FakeSession([FakeResponse(status_code=201)])

    status = send_json_payload(
        url=_URL,
        method="post",
        headers=None,
        auth=None,
        payload=[{"id": 1}],
        session=session,  # type: ignore[arg-type]
        timeout_seconds=2.0,
    )

    assert status == 201
    assert session.calls[0]["method"] == "POST"
    assert session.calls[0]["json"] == [{"id": 1}]
