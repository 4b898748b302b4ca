"""
Error taxonomy for the relay.

Every handler converts these into a response (HTTP) or an error message
(WebSocket); none of them escape a single request or connection.
"""

from __future__ import annotations


class RelayError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"error": self.message}


class MissingPromptError(RelayError):
    status_code = 400
    default_message = "Missing prompt in request body"


class UnauthorizedError(RelayError):
    status_code = 401
    default_message = "Unauthorized"


class ConfigurationError(RelayError):
    """Server-side misconfiguration; only the operator can fix it."""

    status_code = 500
    default_message = "Server misconfigured"


class UpstreamError(RelayError):
    status_code = 502
    default_message = "Upstream LLM request failed"
