"""
Widget-side calls to the relay.

`RelayClient.stream(prompt)` starts the transport (HTTP chunked text or
WebSocket) on a worker thread and returns a StreamHandle. The caller drains
it with `handle.consume(on_chunk, timeout)`, so chunks are delivered on the
caller's thread in arrival order.
"""

from __future__ import annotations

import codecs
import json
import logging
import queue
import threading
import time
from typing import Any, Callable, Optional, Tuple
from urllib.parse import quote

import requests
from websockets.sync.client import connect

from ..enums import SocketMessageType
from .settings import WidgetSettings

log = logging.getLogger(__name__)


class RelayClientError(Exception):
    pass


class RelayTimeout(RelayClientError):
    pass


class StreamHandle:
    """One in-flight relay call: a cancel operation plus a completion signal."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[Tuple[str, Any]]" = queue.Queue()
        self._cancelled = threading.Event()
        self.finished = threading.Event()
        self._closer: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self, transport: Callable[["StreamHandle"], None]) -> "StreamHandle":
        threading.Thread(target=self._run, args=(transport,), name="relay-stream", daemon=True).start()
        return self

    def _run(self, transport: Callable[["StreamHandle"], None]) -> None:
        try:
            transport(self)
            self._queue.put_nowait(("done", None))
        except Exception as exc:  # noqa: BLE001
            if not self.cancelled:
                log.error(f"RELAY_STREAM_ERROR | error={exc}")
                err = exc if isinstance(exc, RelayClientError) else RelayClientError(str(exc))
                self._queue.put_nowait(("error", err))
        finally:
            self.finished.set()

    # transport side
    def attach_closer(self, closer: Callable[[], None]) -> None:
        with self._lock:
            self._closer = closer
        if self.cancelled:
            self._close_transport()

    def emit(self, text: str) -> None:
        if text and not self.cancelled:
            self._queue.put_nowait(("chunk", text))

    def _close_transport(self) -> None:
        with self._lock:
            closer, self._closer = self._closer, None
        if closer is None:
            return
        try:
            closer()
        except Exception as exc:  # noqa: BLE001
            log.debug(f"RELAY_STREAM_CLOSE_FAILED | error={exc}")

    # caller side
    def cancel(self) -> None:
        if self.cancelled:
            return
        self._cancelled.set()
        self._queue.put_nowait(("cancelled", None))
        self._close_transport()

    def consume(self, on_chunk: Callable[[str], None], timeout: float) -> bool:
        """
        Deliver chunks until completion. Returns False if the handle was
        cancelled. Raises RelayTimeout when `timeout` elapses first (the
        handle is cancelled) and RelayClientError when the transport fails.
        """
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            try:
                if remaining <= 0:
                    raise queue.Empty
                kind, payload = self._queue.get(timeout=remaining)
            except queue.Empty:
                self.cancel()
                raise RelayTimeout("Request timeout")

            if kind == "chunk":
                if not self.cancelled:
                    on_chunk(payload)
            elif kind == "done":
                return not self.cancelled
            elif kind == "cancelled":
                return False
            elif kind == "error":
                raise payload


class RelayClient:
    def __init__(self, settings: WidgetSettings, session: Optional[requests.Session] = None) -> None:
        self._settings = settings
        self._session = session or requests.Session()

    @property
    def settings(self) -> WidgetSettings:
        return self._settings

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self._settings.proxy_token:
            headers["Authorization"] = f"Bearer {self._settings.proxy_token}"
        return headers

    def socket_url(self) -> str:
        if self._settings.socket_url:
            base = self._settings.socket_url
        else:
            backend = self._settings.backend_url
            scheme = "wss" if backend.startswith("https") else "ws"
            host = backend.split("://", 1)[-1]
            base = f"{scheme}://{host}/ws"
        return f"{base}?token={quote(self._settings.proxy_token)}"

    def complete(self, prompt: str) -> str:
        """Buffered call to /api/llm."""
        try:
            resp = self._session.post(
                f"{self._settings.backend_url}/api/llm",
                json={"prompt": prompt},
                headers=self._headers(),
                timeout=self._settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise RelayClientError(str(exc)) from exc
        if not resp.ok:
            raise RelayClientError(f"LLM proxy error: {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise RelayClientError(f"LLM proxy returned non-JSON response: {resp.status_code}") from exc
        if not isinstance(data, dict):
            return json.dumps(data)
        return data.get("assistant") or json.dumps(data)

    def stream(self, prompt: str) -> StreamHandle:
        if self._settings.use_websocket and self._settings.proxy_token:
            transport = lambda handle: self._stream_socket(prompt, handle)  # noqa: E731
        else:
            transport = lambda handle: self._stream_http(prompt, handle)  # noqa: E731
        return StreamHandle().start(transport)

    def _stream_http(self, prompt: str, handle: StreamHandle) -> None:
        try:
            resp = self._session.post(
                f"{self._settings.backend_url}/api/llm-stream",
                json={"prompt": prompt},
                headers=self._headers(),
                stream=True,
                timeout=self._settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise RelayClientError(str(exc)) from exc

        handle.attach_closer(resp.close)
        try:
            if not resp.ok:
                raise RelayClientError(f"LLM stream proxy error: {resp.status_code}")
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            for chunk in resp.iter_content(chunk_size=None):
                if handle.cancelled:
                    return
                handle.emit(decoder.decode(chunk))
            handle.emit(decoder.decode(b"", final=True))
        except requests.RequestException as exc:
            raise RelayClientError(str(exc)) from exc
        finally:
            resp.close()

    def _stream_socket(self, prompt: str, handle: StreamHandle) -> None:
        with connect(self.socket_url(), open_timeout=self._settings.timeout_seconds) as ws:
            handle.attach_closer(ws.close)
            ws.send(json.dumps({"prompt": prompt}))
            for raw in ws:
                if handle.cancelled:
                    return
                try:
                    message = json.loads(raw)
                except ValueError:
                    log.warning(f"WS_CLIENT_BAD_MESSAGE | preview={str(raw)[:80]!r}")
                    continue
                kind = message.get("type")
                if kind == SocketMessageType.DELTA.value:
                    handle.emit(message.get("text") or "")
                elif kind == SocketMessageType.DONE.value:
                    return
                elif kind == SocketMessageType.ERROR.value:
                    raise RelayClientError(message.get("error") or "relay error")
