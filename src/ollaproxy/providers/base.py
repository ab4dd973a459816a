"""Provider contract shared by the Ollama-style and OpenAI-style variants."""

import asyncio
import time
from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import (
    Any,
    AsyncGenerator,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
)

import httpx

from ..config import ProviderConfig, Settings, get_settings
from ..decoders import StreamDecoder
from ..exceptions import (
    ClientBuildError,
    DecodeError,
    OllaproxyError,
    ProviderError,
    StreamReadError,
    UpstreamHTTPError,
    UpstreamUnavailableError,
)
from ..logging import provider_logger
from ..models import ChatMessage, ModelDescriptor, StreamChatChunk, namespace_model


class CatalogCache:
    """Single-slot cache for a provider's model catalog.

    Filled once, never invalidated. Population runs under a lock so that
    concurrent first readers share one fetch; readers after that take no lock.
    """

    def __init__(self):
        self._models: Optional[List[ModelDescriptor]] = None
        self._lock = asyncio.Lock()

    @property
    def populated(self) -> bool:
        return self._models is not None

    async def get(
        self, fetch: Callable[[], Awaitable[List[ModelDescriptor]]]
    ) -> List[ModelDescriptor]:
        if self._models is not None:
            return self._models

        async with self._lock:
            if self._models is None:
                # Assigned only once the full list is built
                self._models = await fetch()
        return self._models


class Provider(ABC):
    """An upstream LLM provider reachable over HTTP."""

    chat_path: str
    catalog_path: str

    def __init__(
        self,
        config: ProviderConfig,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_settings()
        self.config = config
        self.name = config.name
        self.pacing_delay = settings.pacing_delay
        self.connect_timeout = settings.connect_timeout
        self.request_timeout = settings.request_timeout
        self.error_body_limit = settings.error_body_limit
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._catalog = CatalogCache()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.config.base_url!r})"

    @abstractmethod
    def create_decoder(self, model: str) -> StreamDecoder:
        """Create the wire decoder for one chat stream."""

    @abstractmethod
    def parse_catalog(self, data: Any) -> List[ModelDescriptor]:
        """Translate a remote catalog response into namespaced descriptors."""

    def _auth_headers(self) -> Dict[str, str]:
        if self.config.secret is None or self.config.username is not None:
            return {}
        return {"Authorization": f"Bearer {self.config.secret.get_secret_value()}"}

    def _auth(self) -> Optional[httpx.BasicAuth]:
        if self.config.username is None:
            return None
        password = self.config.secret.get_secret_value() if self.config.secret else ""
        return httpx.BasicAuth(self.config.username, password)

    def _get_client(self) -> httpx.AsyncClient:
        """Build the HTTP client on first use."""
        if self._client is None:
            try:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    headers=self._auth_headers(),
                    auth=self._auth(),
                    timeout=httpx.Timeout(
                        self.request_timeout, connect=self.connect_timeout
                    ),
                    transport=self._transport,
                )
            except (httpx.InvalidURL, TypeError, ValueError) as e:
                raise ClientBuildError(
                    f"Failed to build HTTP client for {self.config.base_url}: {e}",
                    self.name,
                ) from e
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_request_body(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Upstream request body; options override the base fields."""
        body: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": message.role, "content": message.content}
                for message in messages
            ],
            "stream": True,
        }
        if options:
            body.update(options)
        return body

    async def chat(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        options: Optional[Dict[str, Any]] = None,
    ) -> AsyncGenerator[StreamChatChunk, None]:
        """
        Stream a chat completion from the provider.

        Nothing is sent until the returned iterator is first consumed.
        Failures are raised from the iterator and end the stream.

        Args:
            model: Model name as known to this provider
            messages: Conversation so far
            options: Fields merged on top of the request body

        Yields:
            Canonical chunks, ending with exactly one terminal chunk

        Raises:
            ProviderError: If the request or the stream fails
        """
        client = self._get_client()
        body = self.build_request_body(model, messages, options)

        provider_logger.log_upstream_request(self.name, model, self.chat_path)
        start_time = time.time()

        try:
            async with client.stream("POST", self.chat_path, json=body) as response:
                latency_ms = int((time.time() - start_time) * 1000)

                if not response.is_success:
                    error = await self._error_from_response(response)
                    provider_logger.log_upstream_response(
                        self.name,
                        model,
                        response.status_code,
                        latency_ms,
                        error=str(error),
                    )
                    raise error

                provider_logger.log_upstream_response(
                    self.name, model, response.status_code, latency_ms
                )

                decoder = self.create_decoder(model)
                async with aclosing(
                    decoder.decode(self._iter_body(response))
                ) as chunks:
                    async for chunk in chunks:
                        yield chunk

        except httpx.TimeoutException as e:
            latency_ms = int((time.time() - start_time) * 1000)
            error_msg = f"Timeout waiting for provider {self.name}"
            provider_logger.log_upstream_response(
                self.name, model, 0, latency_ms, error=error_msg
            )
            raise UpstreamUnavailableError(error_msg, self.name) from e

        except httpx.HTTPError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            error_msg = f"Failed to reach provider {self.name}: {e}"
            provider_logger.log_upstream_response(
                self.name, model, 0, latency_ms, error=error_msg
            )
            raise UpstreamUnavailableError(error_msg, self.name) from e

        except ProviderError as e:
            if e.provider is None:
                e.provider = self.name
            if not isinstance(e, UpstreamHTTPError):
                provider_logger.log_stream_error(self.name, model, str(e))
            raise

    async def _iter_body(self, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for fragment in response.aiter_bytes():
                yield fragment
        except httpx.HTTPError as e:
            raise StreamReadError(
                f"Error reading stream from provider {self.name}: {e}", self.name
            ) from e

    async def _error_from_response(
        self, response: httpx.Response
    ) -> UpstreamHTTPError:
        await response.aread()
        body = response.text[: self.error_body_limit]
        return UpstreamHTTPError(response.status_code, body, self.name)

    async def get_models(self) -> List[ModelDescriptor]:
        """
        List the models this provider serves, with namespaced names.

        A configured model list is returned as is. Otherwise the remote
        catalog is fetched once and cached for the process lifetime.
        """
        if self.config.models is not None:
            return [
                ModelDescriptor(name=namespace_model(self.name, model), model=model)
                for model in self.config.models
            ]

        try:
            models = await self._catalog.get(self._fetch_catalog)
        except OllaproxyError as e:
            provider_logger.log_catalog_fetch(self.name, 0, error=str(e))
            raise
        return list(models)

    async def _fetch_catalog(self) -> List[ModelDescriptor]:
        client = self._get_client()

        try:
            response = await client.get(self.catalog_path)
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(
                f"Failed to fetch model catalog from provider {self.name}: {e}",
                self.name,
            ) from e

        if not response.is_success:
            raise UpstreamHTTPError(
                response.status_code, response.text[: self.error_body_limit], self.name
            )

        try:
            models = self.parse_catalog(response.json())
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DecodeError(
                f"Malformed model catalog from provider {self.name}: {e}", self.name
            ) from e

        provider_logger.log_catalog_fetch(self.name, len(models))
        return models
