"""
Shared-token auth for the relay.

One process-wide token (PROXY_TOKEN). HTTP callers present it as
`Authorization: Bearer <token>` or `x-api-key: <token>`; WebSocket callers
as the `token` query parameter.
"""

from __future__ import annotations

import functools
import hmac
import logging
from typing import Callable, Mapping, Optional

from flask import current_app, request

from .errors import ConfigurationError, UnauthorizedError

log = logging.getLogger(__name__)

TOKEN_NOT_CONFIGURED = "PROXY_TOKEN not configured on server"


def token_matches(candidate: Optional[str], expected: str) -> bool:
    if not candidate or not expected:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def _require_configured(expected: Optional[str]) -> str:
    if not expected:
        log.error("AUTH_MISCONFIGURED | proxy token not set")
        raise ConfigurationError(TOKEN_NOT_CONFIGURED)
    return expected


def check_headers(headers: Mapping[str, str], expected: Optional[str]) -> None:
    """Raise unless the headers carry the proxy token."""
    expected = _require_configured(expected)

    auth = (headers.get("Authorization") or "").strip()
    if auth.lower().startswith("bearer "):
        if token_matches(auth[7:].strip(), expected):
            return
    if token_matches(headers.get("x-api-key") or "", expected):
        return

    raise UnauthorizedError()


def check_query_token(token: Optional[str], expected: Optional[str]) -> None:
    expected = _require_configured(expected)
    if not token_matches(token, expected):
        raise UnauthorizedError()


def require_proxy_auth(view: Callable) -> Callable:
    """Route decorator: reject the request before the view runs."""

    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        cfg = current_app.extensions["relay_config"]
        try:
            check_headers(request.headers, cfg.PROXY_TOKEN)
        except UnauthorizedError:
            log.warning(f"AUTH_REJECTED | path={request.path} | remote={request.remote_addr}")
            raise
        return view(*args, **kwargs)

    return wrapper
