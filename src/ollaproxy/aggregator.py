"""Folding a chunk stream into one answer for non-streaming callers."""

from contextlib import aclosing
from typing import AsyncIterator

from .exceptions import AggregationError, OllaproxyError
from .models import StreamChatChunk


async def aggregate(chunks: AsyncIterator[StreamChatChunk]) -> str:
    """
    Drain a chunk stream and concatenate the content of its chunks.

    Reading stops at the terminal chunk, whose content is kept. The stream is
    closed afterwards whether or not it completed.

    Raises:
        AggregationError: If the stream fails; partial content is discarded
    """
    parts = []
    async with aclosing(chunks) as stream:
        try:
            async for chunk in stream:
                parts.append(chunk.message.content)
                if chunk.done:
                    break
        except OllaproxyError as e:
            raise AggregationError(e) from e
    return "".join(parts)
