from __future__ import annotations

import os
from dataclasses import dataclass

from ..config import env_flag

DEFAULT_BACKEND_URL = "http://127.0.0.1:8787"
DEFAULT_CONTACT_URL = "https://lorbachdigital.com/contact/"


@dataclass
class WidgetSettings:
    """Session-wide widget flags. The controller keeps its own copy."""

    tailored_content: bool = False
    use_websocket: bool = False
    backend_url: str = DEFAULT_BACKEND_URL
    # empty: derived from backend_url (same host, /ws)
    socket_url: str = ""
    proxy_token: str = ""
    contact_url: str = DEFAULT_CONTACT_URL
    timeout_seconds: float = 30.0
    max_retries: int = 2

    @classmethod
    def from_env(cls) -> "WidgetSettings":
        return cls(
            tailored_content=env_flag("USE_LLM"),
            use_websocket=env_flag("USE_WS"),
            backend_url=os.getenv("CHAT_BACKEND_URL", DEFAULT_BACKEND_URL).rstrip("/"),
            socket_url=os.getenv("CHAT_SOCKET_URL", ""),
            proxy_token=os.getenv("PROXY_TOKEN", ""),
            contact_url=os.getenv("CONTACT_URL", DEFAULT_CONTACT_URL),
            timeout_seconds=float(os.getenv("CHAT_TIMEOUT_SECONDS", "30")),
        )
