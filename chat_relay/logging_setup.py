import logging, os, sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_CONFIGURED = False


def setup_logging(level_name: str | None = None) -> int:
    """Route the root logger to stdout once per process. Returns the level used."""
    global _CONFIGURED
    level = getattr(logging, (level_name or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    if not _CONFIGURED:
        for h in list(root.handlers):
            root.removeHandler(h)
        sh = logging.StreamHandler(sys.stdout)
        sh.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(sh)
        _CONFIGURED = True

    # Tidy / tune levels
    logging.captureWarnings(True)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)

    for name in (
        "chat_relay",            # whole package
        "chat_relay.ws_server",  # socket transport
        "werkzeug",              # dev server access log
        "gunicorn.error",
        "gunicorn.access",
    ):
        logging.getLogger(name).setLevel(level)
    return level
