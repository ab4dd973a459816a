"""Upstream providers."""

from typing import Optional

import httpx

from ..config import ApiType, ProviderConfig, Settings
from .base import CatalogCache, Provider
from .ollama import OllamaProvider
from .openai import OpenAIProvider

PROVIDER_TYPES = {
    ApiType.OLLAMA: OllamaProvider,
    ApiType.OPENAI: OpenAIProvider,
}


def create_provider(
    config: ProviderConfig,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Provider:
    """Build the provider variant matching the configured API type."""
    return PROVIDER_TYPES[config.api_type](config, settings, transport)


__all__ = [
    "CatalogCache",
    "OllamaProvider",
    "OpenAIProvider",
    "Provider",
    "create_provider",
]
