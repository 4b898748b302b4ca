#!/usr/bin/env python3
"""
Chat Relay Entry Point
- Works under both Gunicorn (WSGI import, HTTP only) and python CLI (HTTP + WebSocket).
- Ensures logging is initialized exactly once per process.
- Flask's app logger propagates to the root logger set up by logging_setup.
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv
from flask import request

# Load env before any other imports that might read it
load_dotenv()

# Local imports after env load
from chat_relay import create_app  # app factory
from chat_relay.config import BaseConfig, get_config
from chat_relay.logging_setup import setup_logging
from chat_relay.ws_server import start_socket_server

log = logging.getLogger("chat_relay.run")


# --------------------------------------------------------------------------------------
# Environment validation
# --------------------------------------------------------------------------------------

def validate_environment(strict: bool) -> None:
    """
    Check the secrets every relay call needs.
    - strict (CLI): print and exit when one is missing.
    - otherwise (WSGI): warn, so health checks still answer.
    Requests keep failing with a configuration error until the operator fixes this.
    """
    required = {
        "OPENAI_API_KEY": "upstream LLM calls",
        "PROXY_TOKEN": "widget authentication",
    }
    missing = [f"{k} (required for {v})" for k, v in required.items() if not os.getenv(k)]

    if missing:
        msg = "Missing required environment variables: " + ", ".join(missing)
        if strict:
            print("Error:", msg)
            sys.exit(1)
        else:
            log.warning(msg)


# --------------------------------------------------------------------------------------
# App construction
# --------------------------------------------------------------------------------------

def _wire_app_logger(app, level: int) -> None:
    """
    Route app.logger through the root handler.
    Drops Flask's own handler so lines are not printed twice.
    """
    if app.logger.handlers:
        app.logger.handlers.clear()
    app.logger.propagate = True
    app.logger.setLevel(level)


def create_application(cfg: BaseConfig, strict_env: bool = False):
    validate_environment(strict=strict_env)

    app = create_app(cfg)
    _wire_app_logger(app, setup_logging(cfg.LOG_LEVEL))

    @app.before_request
    def _log_request():
        app.logger.info("→ %s %s", request.method, request.path)

    return app


# --------------------------------------------------------------------------------------
# Local server (python run.py)
# --------------------------------------------------------------------------------------

def _print_startup_info(cfg: BaseConfig) -> None:
    print("Chat Relay Starting")
    print("=" * 60)
    print(f"HTTP:         http://{cfg.HOST}:{cfg.PORT}")
    print(f"WebSocket:    ws://{cfg.WS_HOST}:{cfg.WS_PORT}{cfg.WS_PATH}")
    print(f"Environment:  {os.getenv('APP_ENV', 'development')}")
    print(f"Model:        {cfg.OPENAI_MODEL}")
    print(f"Debug mode:   {cfg.DEBUG}")
    print(f"Process ID:   {os.getpid()}")
    print("=" * 60)


def main() -> None:
    setup_logging()
    cfg = get_config()
    app = create_application(cfg, strict_env=True)
    _print_startup_info(cfg)

    ws_server, _ = start_socket_server(cfg, app.extensions["upstream"])
    try:
        app.run(
            host=cfg.HOST,
            port=cfg.PORT,
            debug=cfg.DEBUG,
            use_reloader=False,  # Avoid double init/log handlers in dev
            threaded=True,
        )
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")
    finally:
        ws_server.shutdown()


# --------------------------------------------------------------------------------------
# WSGI entrypoint for Gunicorn: `gunicorn run:app` (HTTP endpoints only)
# --------------------------------------------------------------------------------------
if __name__ == "__main__":
    main()
else:
    setup_logging()
    app = create_application(get_config(), strict_env=False)
