"""Wire decoders turning upstream byte streams into canonical chat chunks.

Upstream bodies arrive in fragments that need not line up with lines,
JSON objects or even UTF-8 characters. Both decoders buffer until a full
line is available and only then parse it.
"""

import asyncio
import codecs
from abc import ABC, abstractmethod
from typing import AsyncGenerator, AsyncIterator, Iterator, Optional

from pydantic import ValidationError

from .exceptions import DecodeError
from .models import OllamaWireChunk, OpenAIWireChunk, StreamChatChunk


class LineBuffer:
    """Accumulates byte fragments and hands out complete text lines."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="strict")
        self._buffer = ""

    def feed(self, fragment: bytes) -> Iterator[str]:
        """Append a fragment and yield every complete, non-empty line."""
        try:
            self._buffer += self._decoder.decode(fragment)
        except UnicodeDecodeError as e:
            raise DecodeError(f"invalid UTF-8 in upstream stream: {e}") from e

        while True:
            line_end = self._buffer.find("\n")
            if line_end < 0:
                break
            line = self._buffer[:line_end].strip()
            self._buffer = self._buffer[line_end + 1 :]
            if line:
                yield line

    def flush(self) -> Optional[str]:
        """Return the trailing unterminated line, if any, at end of input."""
        try:
            self._buffer += self._decoder.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise DecodeError(f"truncated UTF-8 at end of stream: {e}") from e

        line = self._buffer.strip()
        self._buffer = ""
        return line or None


class StreamDecoder(ABC):
    """Base class for the line-oriented wire decoders."""

    def __init__(self, model: str):
        self.model = model
        self._finished = False

    @abstractmethod
    async def _handle_line(self, line: str) -> AsyncGenerator[StreamChatChunk, None]:
        """Translate one complete line into zero or more chunks."""
        yield  # pragma: no cover

    async def decode(
        self, fragments: AsyncIterator[bytes]
    ) -> AsyncGenerator[StreamChatChunk, None]:
        """Decode a fragmented byte stream into chunks ending in one terminal chunk."""
        buffer = LineBuffer()

        async for fragment in fragments:
            for line in buffer.feed(fragment):
                async for chunk in self._handle_line(line):
                    yield chunk
                if self._finished:
                    return

        line = buffer.flush()
        if line is not None:
            async for chunk in self._handle_line(line):
                yield chunk
            if self._finished:
                return

        # Upstream closed without a terminal marker
        yield StreamChatChunk.terminal(self.model)


class NDJSONDecoder(StreamDecoder):
    """Decoder for Ollama-style newline-delimited JSON streams."""

    def __init__(self, model: str, pacing_delay: float = 0.0):
        super().__init__(model)
        self.pacing_delay = pacing_delay
        self._emitted = False

    async def _handle_line(self, line: str) -> AsyncGenerator[StreamChatChunk, None]:
        try:
            wire = OllamaWireChunk.model_validate_json(line)
        except ValidationError as e:
            raise DecodeError(f"malformed NDJSON line: {e.errors()[0]['msg']}") from e

        if wire.message is None:
            if wire.done:
                self._finished = True
                yield StreamChatChunk.terminal(self.model)
            return

        # Pacing applies between chunks, never before the first one
        if self.pacing_delay > 0 and self._emitted:
            await asyncio.sleep(self.pacing_delay)

        self._emitted = True
        self._finished = wire.done
        yield StreamChatChunk.delta(self.model, wire.message.content, done=wire.done)


class SSEDecoder(StreamDecoder):
    """Decoder for OpenAI-style server-sent event streams."""

    DONE_SENTINEL = "[DONE]"

    async def _handle_line(self, line: str) -> AsyncGenerator[StreamChatChunk, None]:
        if not line.startswith("data:"):
            # event:, id:, retry: and comment lines carry no content
            return

        data = line[len("data:") :]
        if data.startswith(" "):
            data = data[1:]

        if data.strip() == self.DONE_SENTINEL:
            self._finished = True
            yield StreamChatChunk.terminal(self.model)
            return

        try:
            wire = OpenAIWireChunk.model_validate_json(data)
        except ValidationError as e:
            raise DecodeError(f"malformed SSE payload: {e.errors()[0]['msg']}") from e

        content = wire.first_content()
        if content is not None:
            yield StreamChatChunk.delta(self.model, content)
