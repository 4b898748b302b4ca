"""
Chat Relay Application Factory
==============================

Proxy between the chat widget and the hosted LLM API:
- routes/ (health, buffered and streamed tailored responses)
- streaming/ (OpenAI client + event-stream reframer)
- ws_server.py (WebSocket transport, served beside Flask)
- widget/ (client-side conversation controller)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from .config import BaseConfig, get_config
from .errors import RelayError
from .streaming import OpenAIStreamer

log = logging.getLogger(__name__)

__version__ = "1.0.0"


def create_app(cfg: Optional[BaseConfig] = None, upstream: Optional[OpenAIStreamer] = None) -> Flask:
    """
    App factory.

    INITIALIZATION ORDER:
    1. Config (read once; treated as fixed afterwards)
    2. Upstream LLM client
    3. Routes
    4. Error handlers

    Args:
        cfg: configuration object; defaults to get_config()
        upstream: upstream client; tests pass a fake here
    """
    cfg = cfg or get_config()

    app = Flask(__name__)
    app.config["JSON_SORT_KEYS"] = cfg.JSON_SORT_KEYS
    app.config["TESTING"] = cfg.TESTING

    CORS(
        app,
        resources={r"/*": {
            "origins": cfg.cors_origins,
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization", "x-api-key"],
            # literal "*" rather than the echoed request origin
            "send_wildcard": cfg.cors_origins == ["*"],
        }},
        supports_credentials=False,
    )

    # ────────────────────────────────────────────────────────
    # STEP 1-2: shared, read-only objects for the routes
    # ────────────────────────────────────────────────────────
    app.extensions["relay_config"] = cfg
    app.extensions["upstream"] = upstream or OpenAIStreamer(cfg)
    if not cfg.PROXY_TOKEN:
        log.warning("INIT_AUTH | PROXY_TOKEN not set - every authenticated request will fail")
    if not cfg.OPENAI_API_KEY:
        log.warning("INIT_UPSTREAM | OPENAI_API_KEY not set - relay calls will fail")

    # ────────────────────────────────────────────────────────
    # STEP 3: Register Routes
    # ────────────────────────────────────────────────────────
    from .routes import register_routes

    registered = register_routes(app)
    log.info(f"REGISTER_ROUTES_SUCCESS | blueprints={registered}")

    # ────────────────────────────────────────────────────────
    # STEP 4: Error Handlers
    # ────────────────────────────────────────────────────────
    @app.errorhandler(RelayError)
    def handle_relay_error(error: RelayError):
        """Client, auth, config and upstream errors all become {"error": ...}."""
        if error.status_code >= 500:
            log.error(f"RELAY_ERROR | type={type(error).__name__} | error={error.message}")
        else:
            log.info(f"RELAY_REJECTED | type={type(error).__name__} | status={error.status_code}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(500)
    def handle_internal_error(error):
        """Handle internal server errors with proper logging."""
        log.error(f"INTERNAL_ERROR | error={error}", exc_info=True)
        return {
            "error": "Internal server error",
            "timestamp": datetime.now().isoformat(),
            "details": str(error) if app.debug else "Contact support"
        }, 500

    @app.errorhandler(404)
    def handle_not_found(error):
        """Handle 404 errors."""
        return {
            "error": "Endpoint not found",
            "timestamp": datetime.now().isoformat()
        }, 404

    log.info(f"APP_INIT_COMPLETE | version={__version__} | extensions={list(app.extensions.keys())}")
    app.version = __version__
    return app
