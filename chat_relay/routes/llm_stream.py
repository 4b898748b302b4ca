from __future__ import annotations

import logging
import time
import uuid

from flask import Blueprint, Response, current_app, request

from ..auth import require_proxy_auth
from ..errors import UpstreamError
from ..models import ProxyRequest
from ..streaming import iter_deltas

log = logging.getLogger(__name__)

bp = Blueprint("llm_stream", __name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


@bp.post("/api/llm-stream")
@require_proxy_auth
def tailored_response_stream() -> Response:
    """
    Streamed relay over a plain-text chunked body.
    The body ends on the upstream [DONE] sentinel, the upstream end of stream,
    or an upstream error. If the client goes away the WSGI server closes the
    generator, which closes the upstream response.
    """
    streamer = current_app.extensions["upstream"]
    streamer.ensure_configured()

    req = ProxyRequest.from_payload(request.get_json(silent=True) or {})
    request_id = str(uuid.uuid4())

    def generate():
        start_ts = time.time()
        chunks = streamer.iter_chunks(req)
        emitted = 0
        try:
            for text in iter_deltas(chunks):
                emitted += 1
                yield text
            log.info(f"LLM_STREAM_DONE | req={request_id} | deltas={emitted} | elapsed={time.time() - start_ts:.3f}s")
        except UpstreamError as exc:
            log.error(f"LLM_STREAM_UPSTREAM_ERROR | req={request_id} | deltas={emitted} | error={exc}")
        except GeneratorExit:
            log.info(f"LLM_STREAM_CLIENT_GONE | req={request_id} | deltas={emitted}")
            raise
        finally:
            chunks.close()

    log.info(f"LLM_STREAM_OPEN | req={request_id} | prompt_chars={len(req.prompt)}")
    return Response(
        generate(),
        status=200,
        content_type="text/plain; charset=utf-8",
        headers=STREAM_HEADERS,
    )
