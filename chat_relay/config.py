"""
Relay configuration.
Values are read from the environment once, when this module is imported.
"""
from __future__ import annotations

import logging
import os

log = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}

DEFAULT_SYSTEM_PROMPT = (
    "You are an expert assistant that provides concise, actionable, and professional "
    "recommendations. For website requests return numbered technical improvements; for "
    "AI/business requests return numbered benefits tailored to the business type. Keep "
    "replies short and use numbered bullets when listing items. Avoid technical jargon "
    "and acronyms - use plain language that any business owner can understand."
)


class BaseConfig:
    JSON_SORT_KEYS: bool = False
    DEBUG: bool = False
    TESTING: bool = False

    # HTTP server
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8787"))

    # WebSocket server (runs beside the Flask app)
    WS_HOST: str = os.getenv("WS_HOST", os.getenv("HOST", "127.0.0.1"))
    WS_PORT: int = int(os.getenv("WS_PORT", "8788"))
    WS_PATH: str = os.getenv("WS_PATH", "/ws")
    # "responses" or "chat"
    WS_UPSTREAM_API: str = os.getenv("WS_UPSTREAM_API", "responses").lower()

    # Upstream LLM - MUST be set via environment variable
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "600"))
    UPSTREAM_TIMEOUT_SECONDS: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "60"))
    SYSTEM_PROMPT: str = os.getenv("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)

    # Shared secret the widget presents
    PROXY_TOKEN: str = os.getenv("PROXY_TOKEN", "")

    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def cors_origins(self) -> list[str]:
        origins = [o.strip() for o in self.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
        return origins or ["*"]


class DevelopmentConfig(BaseConfig):
    DEBUG: bool = True


class ProductionConfig(BaseConfig):
    DEBUG: bool = False
    HOST: str = os.getenv("HOST", "0.0.0.0")
    WS_HOST: str = os.getenv("WS_HOST", os.getenv("HOST", "0.0.0.0"))


class TestingConfig(BaseConfig):
    TESTING: bool = True
    OPENAI_API_KEY: str = ""
    PROXY_TOKEN: str = ""


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def get_config() -> BaseConfig:
    """Get configuration instance directly - no complex manager."""
    env = os.getenv("APP_ENV", os.getenv("FLASK_ENV", "development")).lower()
    mapping = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = mapping.get(env, DevelopmentConfig)
    cfg = config_class()

    if not hasattr(get_config, "_logged_startup"):
        log.info(f"CONFIG_STARTUP | env={env} | config_class={config_class.__name__}")
        log.info(f"LLM_CONFIG | model={cfg.OPENAI_MODEL} | max_tokens={cfg.LLM_MAX_TOKENS} | base_url={cfg.OPENAI_BASE_URL}")
        log.info(f"AUTH_CONFIG | proxy_token_set={bool(cfg.PROXY_TOKEN)} | api_key_set={bool(cfg.OPENAI_API_KEY)}")
        log.info(f"WS_CONFIG | host={cfg.WS_HOST} | port={cfg.WS_PORT} | path={cfg.WS_PATH} | upstream_api={cfg.WS_UPSTREAM_API}")
        get_config._logged_startup = True

    return cfg
