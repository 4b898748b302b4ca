"""
WebSocket transport for tailored responses.

Runs the `websockets` threaded server beside the Flask app. Protocol:

    connect   ws://host:WS_PORT/ws?token=<PROXY_TOKEN>
    send      {"prompt": "...", "system": "...", "id": "optional"}
    receive   {"type": "delta", "text": "..."} ... {"type": "done"}
              or {"type": "error", "error": "..."}

Messages on one socket are handled one at a time, in arrival order, so two
replies never interleave. An `id` sent by the client is echoed on every reply
for that message.
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from http import HTTPStatus
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlsplit

from websockets.exceptions import ConnectionClosed
from websockets.frames import CloseCode
from websockets.sync.server import Server, ServerConnection, serve

from .auth import check_query_token
from .config import BaseConfig
from .enums import SocketMessageType, UpstreamApi
from .errors import ConfigurationError, MissingPromptError, UnauthorizedError, UpstreamError
from .models import ProxyRequest
from .streaming import OpenAIStreamer, iter_deltas

log = logging.getLogger(__name__)


def _query_token(path: str) -> Optional[str]:
    values = parse_qs(urlsplit(path).query).get("token")
    return values[0] if values else None


class SocketRelay:
    def __init__(self, cfg: BaseConfig, upstream: OpenAIStreamer) -> None:
        self._cfg = cfg
        self._upstream = upstream
        try:
            self._api = UpstreamApi(cfg.WS_UPSTREAM_API)
        except ValueError:
            log.warning(f"WS_CONFIG | unknown WS_UPSTREAM_API={cfg.WS_UPSTREAM_API!r}, using responses")
            self._api = UpstreamApi.RESPONSES

    # ------------------------------------------------------------------
    # wiring
    # ------------------------------------------------------------------
    def process_request(self, connection: ServerConnection, request):
        if urlsplit(request.path).path != self._cfg.WS_PATH:
            return connection.respond(HTTPStatus.NOT_FOUND, "Endpoint not found\n")
        return None

    def serve(self, host: Optional[str] = None, port: Optional[int] = None) -> Server:
        host = self._cfg.WS_HOST if host is None else host
        port = self._cfg.WS_PORT if port is None else port
        server = serve(self.handle, host, port, process_request=self.process_request)
        log.info(f"WS_SERVER_READY | host={host} | port={server.socket.getsockname()[1]} | path={self._cfg.WS_PATH}")
        return server

    # ------------------------------------------------------------------
    # per connection
    # ------------------------------------------------------------------
    @staticmethod
    def _send(connection: ServerConnection, kind: SocketMessageType, request_id: Any = None, **fields: Any) -> None:
        message: Dict[str, Any] = {"type": kind.value, **fields}
        if request_id is not None:
            message["id"] = request_id
        connection.send(json.dumps(message, ensure_ascii=False))

    def handle(self, connection: ServerConnection) -> None:
        conn_id = str(uuid.uuid4())[:8]
        try:
            check_query_token(_query_token(connection.request.path), self._cfg.PROXY_TOKEN)
        except ConfigurationError as exc:
            self._send(connection, SocketMessageType.ERROR, error=exc.message)
            connection.close(CloseCode.INTERNAL_ERROR, "Server misconfigured")
            return
        except UnauthorizedError as exc:
            log.warning(f"WS_AUTH_REJECTED | conn={conn_id} | remote={connection.remote_address}")
            self._send(connection, SocketMessageType.ERROR, error=exc.message)
            connection.close(CloseCode.POLICY_VIOLATION, "Unauthorized")
            return

        log.info(f"WS_CONNECTED | conn={conn_id}")
        try:
            for raw in connection:
                self.handle_message(connection, raw, conn_id=conn_id)
        except ConnectionClosed as exc:
            log.info(f"WS_CLOSED | conn={conn_id} | code={getattr(exc.rcvd, 'code', None)}")
        else:
            log.info(f"WS_CLOSED | conn={conn_id}")

    def handle_message(self, connection: ServerConnection, raw: str | bytes, conn_id: str = "-") -> None:
        try:
            body = json.loads(raw)
        except ValueError:
            body = None
        request_id = body.get("id") if isinstance(body, dict) else None

        try:
            req = ProxyRequest.from_payload(body)
        except MissingPromptError:
            self._send(connection, SocketMessageType.ERROR, request_id, error="Missing prompt")
            return

        try:
            self._upstream.ensure_configured()
        except ConfigurationError as exc:
            self._send(connection, SocketMessageType.ERROR, request_id, error=exc.message)
            return

        start_ts = time.time()
        emitted = 0
        chunks = self._upstream.iter_chunks(req, api=self._api)
        try:
            for text in iter_deltas(chunks):
                self._send(connection, SocketMessageType.DELTA, request_id, text=text)
                emitted += 1
            self._send(connection, SocketMessageType.DONE, request_id)
            log.info(f"WS_STREAM_DONE | conn={conn_id} | deltas={emitted} | elapsed={time.time() - start_ts:.3f}s")
        except ConnectionClosed:
            log.info(f"WS_STREAM_ABANDONED | conn={conn_id} | deltas={emitted}")
            raise
        except UpstreamError as exc:
            log.error(f"WS_UPSTREAM_ERROR | conn={conn_id} | error={exc}")
            self._send(connection, SocketMessageType.ERROR, request_id, error=exc.message)
        except Exception as exc:  # noqa: BLE001
            log.error(f"WS_HANDLER_ERROR | conn={conn_id} | error={exc}", exc_info=True)
            self._send(connection, SocketMessageType.ERROR, request_id, error=str(exc))
        finally:
            chunks.close()


def start_socket_server(cfg: BaseConfig, upstream: OpenAIStreamer) -> tuple[Server, threading.Thread]:
    """Start the WebSocket server on a daemon thread."""
    server = SocketRelay(cfg, upstream).serve()
    thread = threading.Thread(target=server.serve_forever, name="ws-relay", daemon=True)
    thread.start()
    return server, thread
