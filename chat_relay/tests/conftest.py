from __future__ import annotations

import threading
from typing import Iterable, List, Optional

import pytest

from chat_relay import create_app
from chat_relay.config import TestingConfig
from chat_relay.enums import UpstreamApi
from chat_relay.errors import ConfigurationError, UpstreamError
from chat_relay.models import ProxyRequest
from chat_relay.streaming.openai_stream import API_KEY_NOT_CONFIGURED
from chat_relay.ws_server import SocketRelay

TOKEN = "s3cret-token"

CHAT_SSE = (
    b'data: {"choices":[{"delta":{"role":"assistant"}}]}\n\n'
    b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
    b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
    b"data: [DONE]\n\n"
)


class FakeUpstream:
    """Stands in for OpenAIStreamer; records every call it gets."""

    def __init__(self, chunks: Iterable[bytes] = (CHAT_SSE,), answer: str = "All good.",
                 configured: bool = True, error: Optional[str] = None) -> None:
        self.chunks = list(chunks)
        self.answer = answer
        self.configured = configured
        self.error = error
        self.requests: List[ProxyRequest] = []
        self.apis: List[UpstreamApi] = []
        self.closed = 0
        self._lock = threading.Lock()

    @property
    def calls(self) -> int:
        return len(self.requests)

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError(API_KEY_NOT_CONFIGURED)

    def complete(self, req: ProxyRequest) -> str:
        self.requests.append(req)
        if self.error:
            raise UpstreamError(self.error)
        return self.answer

    def iter_chunks(self, req: ProxyRequest, *, api: UpstreamApi = UpstreamApi.CHAT):
        with self._lock:
            self.requests.append(req)
            self.apis.append(api)
        return self._generate()

    def _generate(self):
        try:
            yield from self.chunks
            if self.error:
                raise UpstreamError(self.error)
        finally:
            with self._lock:
                self.closed += 1


def make_config(token: str = TOKEN, api_key: str = "sk-test", **overrides) -> TestingConfig:
    cfg = TestingConfig()
    cfg.PROXY_TOKEN = token
    cfg.OPENAI_API_KEY = api_key
    cfg.WS_UPSTREAM_API = "responses"
    cfg.WS_PATH = "/ws"
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def app(upstream):
    return create_app(make_config(), upstream=upstream)


@pytest.fixture()
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture()
def auth_headers():
    return {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture()
def socket_server():
    """Factory: start a SocketRelay on an ephemeral port, return its ws:// URL."""
    servers = []

    def _start(upstream: FakeUpstream, cfg: Optional[TestingConfig] = None) -> str:
        relay = SocketRelay(cfg or make_config(), upstream)
        server = relay.serve(host="127.0.0.1", port=0)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        port = server.socket.getsockname()[1]
        return f"ws://127.0.0.1:{port}/ws"

    yield _start
    for server in servers:
        server.shutdown()
