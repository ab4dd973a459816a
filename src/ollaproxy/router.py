"""FastAPI router with Ollama-compatible endpoints."""

import time
from typing import Any, AsyncGenerator, AsyncIterator, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from . import __version__
from .aggregator import aggregate
from .exceptions import DecodeError, OllaproxyError
from .logging import request_logger
from .middleware import get_request_id
from .models import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    GenerateChunk,
    GenerateRequest,
    GenerateResponse,
    ModelsResponse,
    StreamChatChunk,
    VersionResponse,
    utc_now,
)
from .registry import ProviderRegistry

router = APIRouter()

NDJSON_MEDIA_TYPE = "application/x-ndjson"

ChunkRenderer = Callable[[StreamChatChunk], str]


def get_registry(request: Request) -> ProviderRegistry:
    """Get the provider registry of the running application."""
    return request.app.state.registry


@router.api_route("/", methods=["GET", "HEAD"], response_class=PlainTextResponse)
async def root():
    """Liveness endpoint."""
    return "Ollama is running"


@router.get("/api/version", response_model=VersionResponse)
async def version():
    return VersionResponse(version=__version__)


@router.get("/api/tags", response_model=ModelsResponse)
async def list_models(registry: ProviderRegistry = Depends(get_registry)):
    """List the namespaced models of every provider."""
    return ModelsResponse(models=await registry.list_all_models())


@router.post("/api/chat")
async def chat(
    request: Request,
    chat_request: ChatRequest,
    registry: ProviderRegistry = Depends(get_registry),
):
    """Ollama-compatible chat endpoint."""
    log_context = request_logger.log_request_start(
        request_id=get_request_id(request),
        method="POST",
        path="/api/chat",
        model=chat_request.model,
        stream=chat_request.stream,
    )
    start_ns = time.perf_counter_ns()

    chunks = await _open_stream(
        registry,
        chat_request.model,
        chat_request.messages,
        chat_request.options,
        log_context,
    )

    if chat_request.stream:

        def render(chunk: StreamChatChunk) -> str:
            relabeled = chunk.model_copy(update={"model": chat_request.model})
            return relabeled.model_dump_json()

        return await _stream_response(chunks, render, log_context)

    content = await _aggregate(chunks, log_context)
    return ChatResponse(
        model=chat_request.model,
        created_at=utc_now(),
        message=ChatMessage(role="assistant", content=content),
        total_duration=time.perf_counter_ns() - start_ns,
    )


@router.post("/api/generate")
async def generate(
    request: Request,
    generate_request: GenerateRequest,
    registry: ProviderRegistry = Depends(get_registry),
):
    """Ollama-compatible generate endpoint, served as a one-turn chat."""
    log_context = request_logger.log_request_start(
        request_id=get_request_id(request),
        method="POST",
        path="/api/generate",
        model=generate_request.model,
        stream=generate_request.stream,
    )
    start_ns = time.perf_counter_ns()

    chunks = await _open_stream(
        registry,
        generate_request.model,
        generate_request.to_messages(),
        generate_request.options,
        log_context,
    )

    if generate_request.stream:

        def render(chunk: StreamChatChunk) -> str:
            return GenerateChunk(
                model=generate_request.model,
                created_at=chunk.created_at,
                response=chunk.message.content,
                done=chunk.done,
            ).model_dump_json()

        return await _stream_response(chunks, render, log_context)

    content = await _aggregate(chunks, log_context)
    return GenerateResponse(
        model=generate_request.model,
        created_at=utc_now(),
        response=content,
        total_duration=time.perf_counter_ns() - start_ns,
    )


async def _open_stream(
    registry: ProviderRegistry,
    model: str,
    messages: List[ChatMessage],
    options: Optional[Dict[str, Any]],
    log_context: dict,
) -> AsyncGenerator[StreamChatChunk, None]:
    """Resolve the namespaced model and start a lazy chat stream."""
    try:
        provider, local_model = await registry.resolve(model)
    except OllaproxyError as e:
        request_logger.log_request_complete(
            log_context, status_code=e.status_code, error=str(e)
        )
        raise

    return provider.chat(local_model, messages, options)


async def _aggregate(
    chunks: AsyncGenerator[StreamChatChunk, None], log_context: dict
) -> str:
    try:
        content = await aggregate(chunks)
    except OllaproxyError as e:
        request_logger.log_request_complete(
            log_context, status_code=e.status_code, error=str(e)
        )
        raise

    request_logger.log_request_complete(log_context, status_code=200)
    return content


async def _stream_response(
    chunks: AsyncGenerator[StreamChatChunk, None],
    render: ChunkRenderer,
    log_context: dict,
) -> StreamingResponse:
    """
    Relay a chunk stream as NDJSON.

    The first chunk is awaited before the response starts, so connection
    and upstream HTTP failures still get an error status.
    """
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        await chunks.aclose()
        error = DecodeError("upstream stream ended without any chunk")
        request_logger.log_request_complete(
            log_context, status_code=error.status_code, error=str(error)
        )
        raise error
    except OllaproxyError as e:
        await chunks.aclose()
        request_logger.log_request_complete(
            log_context, status_code=e.status_code, error=str(e)
        )
        raise

    return StreamingResponse(
        _ndjson_lines(first, chunks, render, log_context),
        media_type=NDJSON_MEDIA_TYPE,
    )


async def _ndjson_lines(
    first: StreamChatChunk,
    chunks: AsyncGenerator[StreamChatChunk, None],
    render: ChunkRenderer,
    log_context: dict,
) -> AsyncIterator[str]:
    """Serialize chunks one per line; a late failure becomes an error line."""
    count = 0
    try:
        yield render(first) + "\n"
        count += 1

        if not first.done:
            async for chunk in chunks:
                yield render(chunk) + "\n"
                count += 1

        request_logger.log_request_complete(log_context, status_code=200, chunks=count)

    except OllaproxyError as e:
        # Headers are already sent, report the failure in the body
        request_logger.log_request_complete(
            log_context, status_code=200, chunks=count, error=str(e)
        )
        yield ErrorResponse(error=str(e)).model_dump_json() + "\n"

    finally:
        # Releases the upstream response when the client goes away
        await chunks.aclose()
