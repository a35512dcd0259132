"""HTTP authentication injection.

This module turns an ``AuthConfig`` into request headers and a requests
auth handler. Unsupported schemes fail before any request is sent.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from requests.auth import AuthBase, HTTPBasicAuth

from core.constants import DEFAULT_API_KEY_HEADER
from core.errors import SluiceAuthError
from core.pipeline_config import AuthConfig


@dataclass(frozen=True)
class RequestAuth:
    """Authentication material attached to one outgoing request.

    Attributes:
        headers: Extra headers carrying tokens or API keys.
        handler: requests auth handler, used for basic auth.
    """

    headers: dict[str, str] = field(default_factory=dict)
    handler: AuthBase | None = None


def build_request_auth(auth: AuthConfig | None) -> RequestAuth:
    """Resolve request authentication for a configured scheme.

    Args:
        auth: Auth config, or None for unauthenticated requests.

    Returns:
        Headers and handler to attach to the request.

    Raises:
        SluiceAuthError: If credentials are missing or the scheme is unsupported.
    """
    if auth is None:
        return RequestAuth()
    credentials = auth.credentials
    if auth.auth_type == "basic_auth":
        if credentials.username is None:
            raise SluiceAuthError(
                "basic_auth requires credentials.username. Add it to the auth config."
            )
        return RequestAuth(handler=HTTPBasicAuth(credentials.username, credentials.password or ""))
    if auth.auth_type == "bearer_token":
        if not credentials.token:
            raise SluiceAuthError(
                "bearer_token requires credentials.token. Add it to the auth config."
            )
        return RequestAuth(headers={"Authorization": f"Bearer {credentials.token}"})
    if auth.auth_type == "api_key":
        if not credentials.api_key:
            raise SluiceAuthError(
                "api_key requires credentials.api_key. Add it to the auth config."
            )
        header_name = credentials.header_name or DEFAULT_API_KEY_HEADER
        return RequestAuth(headers={header_name: credentials.api_key})
    if auth.auth_type == "oauth2":
        raise SluiceAuthError(
            "oauth2 authentication is not supported yet. "
            "Use bearer_token with a pre-issued access token instead."
        )
    raise SluiceAuthError(f"Unsupported auth type '{auth.auth_type}'.")
