"""Upstream streaming: OpenAI client and event-stream reframing."""

from .openai_stream import OpenAIStreamer, extract_assistant_text
from .reframer import EventStreamParser, extract_delta_text, iter_deltas

__all__ = [
    "OpenAIStreamer",
    "EventStreamParser",
    "extract_assistant_text",
    "extract_delta_text",
    "iter_deltas",
]
