"""Tests for the NDJSON and SSE wire decoders."""

import asyncio

import pytest

from ollaproxy.decoders import LineBuffer, NDJSONDecoder, SSEDecoder
from ollaproxy.exceptions import DecodeError

from upstream import (
    collect,
    fragments,
    ndjson,
    ollama_line,
    openai_delta,
    project,
    split_every,
    sse,
)

OLLAMA_BODY = ndjson(
    ollama_line("hel"),
    ollama_line("lo, "),
    ollama_line("wörld 日本"),
    ollama_line("", done=True),
)
OLLAMA_CHUNKS = [("hel", False), ("lo, ", False), ("wörld 日本", False), ("", True)]

OPENAI_BODY = sse(
    {"choices": [{"delta": {"role": "assistant"}}]},
    openai_delta("Hi"),
    openai_delta(" thére ✓"),
)
OPENAI_CHUNKS = [("Hi", False), (" thére ✓", False), ("", True)]


async def decode(decoder, parts):
    return project(await collect(decoder.decode(fragments(parts))))


def test_line_buffer_keeps_partial_lines():
    """Only complete lines are handed out."""
    buffer = LineBuffer()
    assert list(buffer.feed(b'{"a":')) == []
    assert list(buffer.feed(b' 1}\n\n  {"b"')) == ['{"a": 1}']
    assert buffer.flush() == '{"b"'
    assert buffer.flush() is None


async def test_ndjson_unfragmented():
    assert await decode(NDJSONDecoder("llama3"), [OLLAMA_BODY]) == OLLAMA_CHUNKS


async def test_ndjson_every_split_point():
    """Splitting the body at any byte offset yields the same chunks."""
    for offset in range(len(OLLAMA_BODY) + 1):
        parts = [OLLAMA_BODY[:offset], OLLAMA_BODY[offset:]]
        assert await decode(NDJSONDecoder("llama3"), parts) == OLLAMA_CHUNKS


async def test_ndjson_byte_by_byte():
    parts = split_every(OLLAMA_BODY, 1)
    assert await decode(NDJSONDecoder("llama3"), parts) == OLLAMA_CHUNKS


async def test_ndjson_chunks_carry_model_and_role():
    chunks = await collect(NDJSONDecoder("llama3").decode(fragments([OLLAMA_BODY])))
    assert all(chunk.model == "llama3" for chunk in chunks)
    assert all(chunk.message.role == "assistant" for chunk in chunks)
    assert all(chunk.created_at for chunk in chunks)


async def test_ndjson_done_without_message_emits_terminal_chunk():
    body = ndjson(ollama_line("a"), {"done": True, "total_duration": 12})
    assert await decode(NDJSONDecoder("m"), [body]) == [("a", False), ("", True)]


async def test_ndjson_line_without_message_is_skipped():
    body = ndjson({"done": False}, ollama_line("a", done=True))
    assert await decode(NDJSONDecoder("m"), [body]) == [("a", True)]


async def test_ndjson_stops_after_terminal_chunk():
    """Bytes after the terminal line are never parsed."""
    body = ndjson(ollama_line("a", done=True)) + b"this is not json\n"
    assert await decode(NDJSONDecoder("m"), [body]) == [("a", True)]


async def test_ndjson_parses_trailing_line_without_newline():
    body = ndjson(ollama_line("a")) + b'{"message": {"content": "b"}, "done": true}'
    assert await decode(NDJSONDecoder("m"), [body]) == [("a", False), ("b", True)]


async def test_ndjson_clean_eof_without_done_ends_with_terminal():
    body = ndjson(ollama_line("a"), ollama_line("b"))
    assert await decode(NDJSONDecoder("m"), [body]) == [
        ("a", False),
        ("b", False),
        ("", True),
    ]


async def test_ndjson_malformed_line_ends_stream_with_error():
    body = ndjson(ollama_line("a")) + b"{not json}\n" + ndjson(ollama_line("b"))
    received = []
    with pytest.raises(DecodeError):
        async for chunk in NDJSONDecoder("m").decode(fragments([body])):
            received.append(chunk.message.content)
    assert received == ["a"]


async def test_ndjson_invalid_utf8_raises():
    with pytest.raises(DecodeError):
        await decode(NDJSONDecoder("m"), [b'{"message": {"content": "\xff"}}\n'])


async def test_ndjson_truncated_utf8_at_eof_raises():
    with pytest.raises(DecodeError):
        await decode(NDJSONDecoder("m"), [ndjson(ollama_line("a")), "日".encode()[:2]])


async def test_ndjson_pacing_delay():
    """Consecutive chunks are spaced by the pacing delay."""
    loop = asyncio.get_running_loop()
    start = loop.time()
    result = await decode(NDJSONDecoder("m", pacing_delay=0.01), [OLLAMA_BODY])
    assert result == OLLAMA_CHUNKS
    assert loop.time() - start >= 0.025


async def test_ndjson_first_chunk_not_paced():
    loop = asyncio.get_running_loop()
    start = loop.time()
    body = ndjson(ollama_line("hi", done=True))
    result = await decode(NDJSONDecoder("m", pacing_delay=1.0), [body])
    assert result == [("hi", True)]
    assert loop.time() - start < 0.5


async def test_sse_unfragmented():
    assert await decode(SSEDecoder("gpt"), [OPENAI_BODY]) == OPENAI_CHUNKS


async def test_sse_every_split_point():
    """Any fragmentation yields the same chunks and exactly one terminal chunk."""
    for offset in range(len(OPENAI_BODY) + 1):
        parts = [OPENAI_BODY[:offset], OPENAI_BODY[offset:]]
        result = await decode(SSEDecoder("gpt"), parts)
        assert result == OPENAI_CHUNKS
        assert [done for _, done in result].count(True) == 1


async def test_sse_byte_by_byte():
    parts = split_every(OPENAI_BODY, 1)
    assert await decode(SSEDecoder("gpt"), parts) == OPENAI_CHUNKS


async def test_sse_done_sentinel_yields_single_terminal_chunk():
    body = b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\ndata: [DONE]\n\n'
    assert await decode(SSEDecoder("gpt"), [body]) == [("Hi", False), ("", True)]


async def test_sse_ignores_data_after_done():
    body = sse(openai_delta("a")) + b"data: {broken\n\n"
    assert await decode(SSEDecoder("gpt"), [body]) == [("a", False), ("", True)]


async def test_sse_skips_events_without_content():
    body = sse(
        {"choices": []},
        {"choices": [{"delta": None, "finish_reason": "stop"}]},
        {"choices": [{"delta": {}}]},
        openai_delta("x"),
    )
    assert await decode(SSEDecoder("gpt"), [body]) == [("x", False), ("", True)]


async def test_sse_only_first_choice_is_used():
    body = sse({"choices": [{"delta": {"content": "a"}}, {"delta": {"content": "b"}}]})
    assert await decode(SSEDecoder("gpt"), [body]) == [("a", False), ("", True)]


async def test_sse_ignores_non_data_lines():
    body = (
        b": keep-alive\n\n"
        b"event: message\n"
        b"id: 7\n"
        b'data:{"choices":[{"delta":{"content":"a"}}]}\r\n\r\n'
        b"data: [DONE]\n\n"
    )
    assert await decode(SSEDecoder("gpt"), [body]) == [("a", False), ("", True)]


async def test_sse_eof_without_done_ends_with_terminal():
    body = sse(openai_delta("a"), done=False)
    assert await decode(SSEDecoder("gpt"), [body]) == [("a", False), ("", True)]


async def test_sse_malformed_payload_raises():
    body = sse(openai_delta("a"), done=False) + b"data: {oops}\n\n"
    received = []
    with pytest.raises(DecodeError):
        async for chunk in SSEDecoder("gpt").decode(fragments([body])):
            received.append(chunk.message.content)
    assert received == ["a"]
