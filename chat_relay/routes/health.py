# chat_relay/routes/health.py
"""
Liveness probe. Always 200 while Flask is up; lists the public endpoints.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)

ENDPOINTS = ["/api/llm", "/api/llm-stream"]


@bp.get("/")
def health_check():
    cfg = current_app.extensions["relay_config"]
    return jsonify({
        "status": "ok",
        "message": "AI Chat Widget Backend is running",
        "endpoints": ENDPOINTS + [cfg.WS_PATH],
    }), 200
