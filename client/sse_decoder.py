"""
Incremental SSE decoder for the chat stream.
Turns raw byte chunks into stream events, carrying partial state between reads.
"""
import codecs
import json
from typing import List, Optional
from models.chat_models import StreamEvent
from utils.errors import ParseError
from utils.logger import client_logger


class StreamDecoder:
    """Decodes `data: <json>` blocks separated by blank lines.

    Byte chunks can end anywhere: inside a multi-byte UTF-8 character, inside
    a JSON payload or between the two newlines of a delimiter. The UTF-8
    decoder state and the undelimited text tail are kept until the next feed.
    """

    DELIMITER = "\n\n"
    DATA_PREFIX = "data:"

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self.buffer = ""
        self.parse_errors = 0

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        """Process a chunk of bytes and return the events it completes."""
        self.buffer += self._decoder.decode(chunk)
        return self._drain()

    def flush(self) -> List[StreamEvent]:
        """Decode whatever is left once the byte stream has ended.

        Returns:
            Events from a final block that was not followed by a delimiter
        """
        self.buffer += self._decoder.decode(b"", final=True)
        events = self._drain()

        tail = self.buffer
        self.buffer = ""
        if tail.strip():
            event = self._parse_block(tail)
            if event is not None:
                events.append(event)
        return events

    def reset(self):
        """Reset the decoder state."""
        self._decoder.reset()
        self.buffer = ""
        self.parse_errors = 0

    def _drain(self) -> List[StreamEvent]:
        if "\r" in self.buffer:
            self.buffer = self.buffer.replace("\r\n", "\n")

        events = []
        while self.DELIMITER in self.buffer:
            block, self.buffer = self.buffer.split(self.DELIMITER, 1)
            event = self._parse_block(block)
            if event is not None:
                events.append(event)
        return events

    def _parse_block(self, block: str) -> Optional[StreamEvent]:
        data_lines = []
        for line in block.split("\n"):
            if not line.startswith(self.DATA_PREFIX):
                continue
            data = line[len(self.DATA_PREFIX):]
            data_lines.append(data[1:] if data.startswith(" ") else data)

        if not data_lines:
            return None

        raw = "\n".join(data_lines)
        try:
            return self.parse_payload(raw)
        except ParseError as e:
            self.parse_errors += 1
            client_logger.error(f"Failed to parse server message: {raw!r} ({e.message})")
            return None

    @staticmethod
    def parse_payload(raw: str) -> StreamEvent:
        """
        Parse one event payload.

        Raises:
            ParseError: If the payload is not a JSON object
        """
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseError(str(e), raw=raw) from e

        if not isinstance(payload, dict):
            raise ParseError("Event payload is not an object", raw=raw)

        return StreamEvent.from_payload(payload)
