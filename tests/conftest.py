"""Shared fixtures: settings without pacing and providers backed by MockTransport."""

from typing import Callable, List, Optional

import httpx
import pytest

from ollaproxy.config import ApiType, ProviderConfig, Settings
from ollaproxy.providers import Provider, create_provider


@pytest.fixture
def settings() -> Settings:
    return Settings(pacing_delay_ms=0, _env_file=None)


@pytest.fixture
def make_provider(settings) -> Callable[..., Provider]:
    """Factory building a provider whose upstream is a request handler."""

    def factory(
        handler: Callable,
        name: str = "demo",
        api_type: ApiType = ApiType.OLLAMA,
        models: Optional[List[str]] = None,
        base_url: str = "http://upstream.test",
        **config,
    ) -> Provider:
        provider_config = ProviderConfig(
            name=name,
            base_url=base_url,
            api_type=api_type,
            models=models,
            **config,
        )
        return create_provider(
            provider_config, settings, transport=httpx.MockTransport(handler)
        )

    return factory


@pytest.fixture
def recorded_requests() -> List[httpx.Request]:
    return []
