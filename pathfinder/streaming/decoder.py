"""Incremental decoder for the server-sent-events encoding of a run stream."""

import codecs
import logging
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from .events import parse_event


class SSEDecoder:
    """
    Reassembles SSE records that arrive split across arbitrary chunks.

    ``feed`` returns the events completed by the chunk; partial lines and
    partial records stay buffered until a later chunk completes them.
    """

    def __init__(self, strict: bool = True, logger: Optional[logging.Logger] = None):
        self.strict = strict
        self.logger = logger or logging.getLogger(__name__)
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self._event_name: Optional[str] = None
        self._data_lines: List[str] = []

    def feed(self, chunk) -> list:
        if isinstance(chunk, bytes):
            # A multi-byte character may straddle two chunks
            chunk = self._utf8.decode(chunk)
        self._buffer = (self._buffer + chunk).replace("\r\n", "\n")

        events = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            if line == "":
                event = self._dispatch()
                if event is not None:
                    events.append(event)
                continue
            self._consume_line(line)
        return events

    @property
    def pending(self) -> bool:
        """True while a partial record is buffered."""
        return bool(self._buffer or self._data_lines)

    def _consume_line(self, line: str) -> None:
        if line.startswith(":"):
            return
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event_name = value
        elif field == "data":
            self._data_lines.append(value)

    def _dispatch(self):
        if not self._data_lines:
            self._event_name = None
            return None

        data = "\n".join(self._data_lines)
        name = self._event_name
        self._data_lines = []
        self._event_name = None

        try:
            event = parse_event(data)
        except PydanticValidationError as e:
            if self.strict:
                raise
            self.logger.warning(f"Dropping malformed event record: {e}")
            return None

        if name is not None and name != event.kind:
            message = f"Event name '{name}' does not match payload kind '{event.kind}'"
            if self.strict:
                raise ValueError(message)
            self.logger.warning(message)
            return None
        return event
