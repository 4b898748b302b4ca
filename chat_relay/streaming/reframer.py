"""
Incremental parser for the upstream event stream.

Framing: events separated by a blank line, each event made of `field: value`
lines; only `data` lines matter. A `[DONE]` payload terminates the response.

    parser = EventStreamParser()
    for chunk in chunks:
        for event in parser.feed(chunk):
            ...

The parser only holds the unconsumed tail of the stream, so it does not care
whether the deltas end up in an HTTP body or on a WebSocket.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..models import DONE_EVENT, UpstreamEvent

log = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
EVENT_SEPARATOR = "\n\n"


def _dig(obj: Any, *path: Any) -> Any:
    """Walk nested dicts/lists; None as soon as a step is missing."""
    for key in path:
        try:
            obj = obj[key]
        except (KeyError, IndexError, TypeError):
            return None
    return obj


def _chat_delta(payload: Any) -> Any:
    return _dig(payload, "choices", 0, "delta", "content")


def _completion_text(payload: Any) -> Any:
    return _dig(payload, "choices", 0, "text")


def _responses_text_delta(payload: Any) -> Any:
    if _dig(payload, "type") == "response.output_text.delta":
        return _dig(payload, "delta")
    return None


def _responses_output(payload: Any) -> Any:
    content = _dig(payload, "output", 0, "content")
    if not isinstance(content, list):
        return None
    parts = []
    for item in content:
        if isinstance(item, dict):
            parts.append(item.get("text") or item.get("value") or "")
    return "".join(p for p in parts if isinstance(p, str))


# Tried in order; the first non-empty string wins. New upstream shapes go here.
DELTA_EXTRACTORS: Sequence[Tuple[str, Callable[[Any], Any]]] = (
    ("chat_delta", _chat_delta),
    ("completion_text", _completion_text),
    ("responses_text_delta", _responses_text_delta),
    ("responses_output", _responses_output),
)


def extract_delta_text(payload: Any, extractors: Sequence[Tuple[str, Callable[[Any], Any]]] = DELTA_EXTRACTORS) -> str:
    for _name, extractor in extractors:
        text = extractor(payload)
        if isinstance(text, str) and text:
            return text
    return ""


class EventStreamParser:
    """Turns raw upstream bytes into UpstreamEvents, one per complete event."""

    def __init__(self, extractors: Sequence[Tuple[str, Callable[[Any], Any]]] = DELTA_EXTRACTORS) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._extractors = extractors
        self.done = False

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes | str) -> List[UpstreamEvent]:
        if self.done:
            return []
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        self._buffer = (self._buffer + text).replace("\r\n", "\n")

        parts = self._buffer.split(EVENT_SEPARATOR)
        # last piece is a partial event (or "")
        self._buffer = parts.pop()
        return self._process(parts)

    def flush(self) -> List[UpstreamEvent]:
        """Transport ended: handle whatever complete-looking event is left in the tail."""
        if self.done:
            return []
        tail = (self._buffer + self._decoder.decode(b"", final=True)).replace("\r\n", "\n")
        self._buffer = ""
        return self._process([tail])

    def _process(self, raw_events: Iterable[str]) -> List[UpstreamEvent]:
        events: List[UpstreamEvent] = []
        for raw in raw_events:
            event = self._parse_event(raw)
            if event is None:
                continue
            events.append(event)
            if event.done:
                self.done = True
                self._buffer = ""
                break
        return events

    def _parse_event(self, raw: str) -> Optional[UpstreamEvent]:
        data_lines = []
        for line in raw.strip().split("\n"):
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
        if not data_lines:
            return None

        data = "\n".join(data_lines).strip()
        if data == DONE_SENTINEL:
            return DONE_EVENT

        try:
            payload = json.loads(data)
        except ValueError:
            log.debug(f"STREAM_SKIP_MALFORMED | preview={data[:80]!r}")
            return None

        text = extract_delta_text(payload, self._extractors)
        if not text:
            return None
        return UpstreamEvent(text=text)


def iter_deltas(chunks: Iterable[bytes | str], parser: Optional[EventStreamParser] = None) -> Iterator[str]:
    """
    Yield delta text in arrival order until the sentinel or the end of `chunks`,
    whichever comes first. Completion happens exactly once: the generator returns.
    """
    parser = parser or EventStreamParser()
    for chunk in chunks:
        for event in parser.feed(chunk):
            if event.done:
                return
            yield event.text
    for event in parser.flush():
        if event.done:
            return
        yield event.text
