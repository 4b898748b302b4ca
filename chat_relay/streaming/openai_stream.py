from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, Optional

import requests

from ..config import BaseConfig, get_config
from ..enums import UpstreamApi
from ..errors import ConfigurationError, UpstreamError
from ..models import ProxyRequest

log = logging.getLogger(__name__)

API_KEY_NOT_CONFIGURED = "OPENAI_API_KEY not configured on server"


def extract_assistant_text(data: Any) -> str:
    """First choice's text, or the raw payload when the expected shape is absent."""
    try:
        choice = data["choices"][0]
    except (KeyError, IndexError, TypeError):
        choice = None

    if isinstance(choice, dict):
        message = choice.get("message")
        if isinstance(message, dict) and message.get("content") is not None:
            return message["content"]
        if choice.get("text") is not None:
            return choice["text"]
    return json.dumps(data, ensure_ascii=False)


class OpenAIStreamer:
    """
    Thin wrapper over the OpenAI HTTP API using `requests`.
    - complete(): one buffered chat completion
    - iter_chunks(): raw event-stream bytes of a streaming call; closing the
      generator closes the upstream response
    """

    def __init__(self, cfg: Optional[BaseConfig] = None, session: Optional[requests.Session] = None) -> None:
        cfg = cfg or get_config()
        self._api_key = cfg.OPENAI_API_KEY
        self._model = cfg.OPENAI_MODEL
        self._base_url = cfg.OPENAI_BASE_URL.rstrip("/")
        self._max_tokens = cfg.LLM_MAX_TOKENS
        self._timeout = cfg.UPSTREAM_TIMEOUT_SECONDS
        self._system_prompt = cfg.SYSTEM_PROMPT
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def ensure_configured(self) -> None:
        if not self.configured:
            log.error("UPSTREAM_MISCONFIGURED | api key not set")
            raise ConfigurationError(API_KEY_NOT_CONFIGURED)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, req: ProxyRequest, *, api: UpstreamApi = UpstreamApi.CHAT, stream: bool = False) -> Dict[str, Any]:
        system = req.system or self._system_prompt
        if api == UpstreamApi.RESPONSES:
            return {
                "model": self._model,
                "input": req.prompt,
                "instructions": system,
                "max_output_tokens": self._max_tokens,
                "stream": True,
            }
        payload: Dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": req.prompt},
            ],
            "max_tokens": self._max_tokens,
        }
        if stream:
            payload["stream"] = True
        return payload

    def _url(self, api: UpstreamApi) -> str:
        path = "/responses" if api == UpstreamApi.RESPONSES else "/chat/completions"
        return f"{self._base_url}{path}"

    def complete(self, req: ProxyRequest) -> str:
        self.ensure_configured()
        log.info(f"UPSTREAM_COMPLETE | model={self._model} | prompt_chars={len(req.prompt)}")
        try:
            resp = self._session.post(
                self._url(UpstreamApi.CHAT),
                headers=self._headers(),
                json=self.build_payload(req),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            log.error(f"UPSTREAM_COMPLETE_FAILED | error={exc}")
            raise UpstreamError(str(exc)) from exc

        try:
            data = resp.json()
        except ValueError as exc:
            log.error(f"UPSTREAM_COMPLETE_BAD_JSON | status={resp.status_code}")
            raise UpstreamError(f"Upstream returned non-JSON response (HTTP {resp.status_code})") from exc

        if resp.status_code >= 400:
            log.warning(f"UPSTREAM_COMPLETE_STATUS | status={resp.status_code}")
        return extract_assistant_text(data)

    def iter_chunks(self, req: ProxyRequest, *, api: UpstreamApi = UpstreamApi.CHAT) -> Iterator[bytes]:
        self.ensure_configured()
        log.info(f"UPSTREAM_STREAM_OPEN | api={api.value} | model={self._model} | prompt_chars={len(req.prompt)}")
        try:
            resp = self._session.post(
                self._url(api),
                headers=self._headers(),
                json=self.build_payload(req, api=api, stream=True),
                stream=True,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            log.error(f"UPSTREAM_STREAM_CONNECT_FAILED | error={exc}")
            raise UpstreamError(str(exc)) from exc

        try:
            if resp.status_code >= 400:
                raise UpstreamError(f"Upstream returned HTTP {resp.status_code}")
            for chunk in resp.iter_content(chunk_size=None):
                if chunk:
                    yield chunk
        except requests.RequestException as exc:
            log.error(f"UPSTREAM_STREAM_ERROR | error={exc}")
            raise UpstreamError(str(exc)) from exc
        finally:
            resp.close()
            log.debug("UPSTREAM_STREAM_CLOSED")
