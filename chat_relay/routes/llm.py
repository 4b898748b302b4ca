from __future__ import annotations

import logging
import time

from flask import Blueprint, current_app, jsonify, request

from ..auth import require_proxy_auth
from ..models import ProxyRequest

log = logging.getLogger(__name__)

bp = Blueprint("llm", __name__)


@bp.post("/api/llm")
@require_proxy_auth
def tailored_response():
    """Buffered relay: one upstream completion, returned as {"assistant": text}."""
    streamer = current_app.extensions["upstream"]
    streamer.ensure_configured()

    req = ProxyRequest.from_payload(request.get_json(silent=True) or {})

    start_ts = time.time()
    assistant = streamer.complete(req)
    log.info(f"LLM_BUFFERED_DONE | chars={len(assistant)} | elapsed={time.time() - start_ts:.3f}s")
    return jsonify({"assistant": assistant})
