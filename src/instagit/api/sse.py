"""Incremental Server-Sent Events parser.

Push-based: the caller hands in raw chunks as they arrive and gets back
the events completed by that chunk.  Partial UTF-8 sequences and partial
lines are buffered until the next ``feed()``.  Only the ``data`` field is
forwarded; ``event``, ``id``, ``retry`` and comments are ignored.
"""

from __future__ import annotations

import codecs
import logging
import re

from instagit.errors import MalformedEventError

from .events import ParsedEvent, Sentinel, decode_event

_logger = logging.getLogger(__name__)

_LINE_END = re.compile(r"\r\n|\r|\n")


class SSEParser:
    """Split an SSE byte stream into ``ParsedEvent`` values.

    Attributes
    ----------
    done:
        Set once the ``[DONE]`` sentinel has been seen.  Further input is
        ignored.
    dropped:
        Number of ``data`` payloads discarded because they failed to decode.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._data_lines: list[str] = []
        self._started = False
        self.done = False
        self.dropped = 0

    def feed(self, chunk: bytes | str) -> list[ParsedEvent]:
        """Consume *chunk* and return the events it completed."""
        if self.done:
            return []
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        if not self._started and text:
            self._started = True
            text = text.removeprefix("\ufeff")
        self._buffer += text

        events: list[ParsedEvent] = []
        for line in self._take_lines():
            event = self._process_line(line)
            if event is None:
                continue
            events.append(event)
            if isinstance(event, Sentinel):
                self.done = True
                break
        return events

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _take_lines(self) -> list[str]:
        """Pop every complete line off the buffer."""
        lines: list[str] = []
        pos = 0
        for match in _LINE_END.finditer(self._buffer):
            # A trailing CR may be the first half of a CRLF split across chunks
            if match.group() == "\r" and match.end() == len(self._buffer):
                break
            lines.append(self._buffer[pos:match.start()])
            pos = match.end()
        self._buffer = self._buffer[pos:]
        return lines

    def _process_line(self, line: str) -> ParsedEvent | None:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data_lines.append(value)
        return None

    def _dispatch(self) -> ParsedEvent | None:
        if not self._data_lines:
            return None
        data = "\n".join(self._data_lines)
        self._data_lines = []
        return self._try_decode(data)

    def _try_decode(self, data: str) -> ParsedEvent | None:
        """Decode *data*, discarding it if malformed."""
        try:
            return decode_event(data)
        except MalformedEventError as e:
            self.dropped += 1
            _logger.debug("Dropping malformed SSE payload %r: %s", data[:200], e)
            return None
