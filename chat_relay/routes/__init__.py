# chat_relay/routes/__init__.py
"""
Blueprint auto-registration.

Put any flask.Blueprint in `chat_relay/routes/<name>.py`
with the variable name **bp** and it will be discovered &
registered when `register_routes(app)` is called.

The app factory (chat_relay.__init__.py) stores shared
objects like `relay_config` and `upstream` into `app.extensions`
so the individual route modules can access them via
`from flask import current_app`.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from types import ModuleType

from flask import Blueprint, Flask

log = logging.getLogger(__name__)


def register_routes(app: Flask) -> list[str]:
    registered: list[str] = []
    for _finder, name, _ in pkgutil.iter_modules(__path__):
        module: ModuleType = importlib.import_module(f"{__name__}.{name}")
        bp: Blueprint | None = getattr(module, "bp", None)
        if isinstance(bp, Blueprint):
            app.register_blueprint(bp)
            registered.append(bp.name)
            log.info(f"REGISTER_ROUTES | blueprint={bp.name}")
    return registered
