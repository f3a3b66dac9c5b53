"""Run event stream: tagged event models, emitter and SSE codec."""

from .events import (
    ProgressEvent,
    ProgressEventModel,
    LogEvent,
    ScenarioStartEvent,
    ScenarioCompleteEvent,
    TerminalEvent,
    ErrorEvent,
    parse_event,
    encode_json,
    encode_sse,
    is_closing,
)
from .emitter import ProgressEmitter
from .decoder import SSEDecoder

__all__ = [
    "ProgressEvent",
    "ProgressEventModel",
    "LogEvent",
    "ScenarioStartEvent",
    "ScenarioCompleteEvent",
    "TerminalEvent",
    "ErrorEvent",
    "parse_event",
    "encode_json",
    "encode_sse",
    "is_closing",
    "ProgressEmitter",
    "SSEDecoder",
]
