"""
Request-scoped dataclasses. Nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .errors import MissingPromptError


@dataclass(frozen=True)
class ProxyRequest:
    prompt: str
    system: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ProxyRequest":
        """Build from a decoded JSON body; a missing or empty prompt is a client error."""
        if not isinstance(payload, dict):
            raise MissingPromptError()
        prompt = payload.get("prompt")
        if not prompt:
            raise MissingPromptError()
        system = payload.get("system") or None
        return cls(prompt=str(prompt), system=str(system) if system is not None else None)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class UpstreamEvent:
    """One parsed event from the upstream stream: a text delta or the terminal sentinel."""

    text: str = ""
    done: bool = False


DONE_EVENT = UpstreamEvent(done=True)
