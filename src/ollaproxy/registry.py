"""Registry routing namespaced model names to configured providers."""

from typing import Iterable, List, Optional, Sequence, Tuple

import httpx

from .config import ProviderConfig, Settings
from .exceptions import ConfigurationError, ModelNotFoundError, OllaproxyError
from .logging import get_logger, provider_logger
from .models import ModelDescriptor
from .providers import Provider, create_provider

logger = get_logger("ollaproxy.registry")


class ProviderRegistry:
    """Owns the configured providers, in configuration order."""

    def __init__(self, providers: Iterable[Provider]):
        self.providers: List[Provider] = list(providers)

        names = [provider.name for provider in self.providers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Provider names must be unique, duplicated: {duplicates}"
            )

    @classmethod
    def from_configs(
        cls,
        configs: Sequence[ProviderConfig],
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ProviderRegistry":
        """Build one provider per configuration entry."""
        return cls(create_provider(config, settings, transport) for config in configs)

    def get_provider(self, name: str) -> Optional[Provider]:
        for provider in self.providers:
            if provider.name == name:
                return provider
        return None

    async def _catalog(
        self, provider: Provider
    ) -> Tuple[List[ModelDescriptor], Optional[OllaproxyError]]:
        try:
            return await provider.get_models(), None
        except OllaproxyError as e:
            logger.warning(
                "Skipping provider without catalog",
                provider=provider.name,
                error=str(e),
            )
            return [], e

    async def resolve(self, namespaced_model: str) -> Tuple[Provider, str]:
        """
        Find the provider serving a namespaced model.

        Args:
            namespaced_model: Model name as exposed by the gateway

        Returns:
            The provider and the model name it knows the model by

        Raises:
            ModelNotFoundError: If no provider lists the model
            ProviderError: If no provider lists the model and a catalog could
                not be fetched; the first such failure is raised
        """
        available = []
        catalog_error: Optional[OllaproxyError] = None
        for provider in self.providers:
            models, error = await self._catalog(provider)
            if catalog_error is None:
                catalog_error = error
            for descriptor in models:
                if descriptor.namespaced_name == namespaced_model:
                    return provider, descriptor.local_name
                available.append(descriptor.namespaced_name)

        if catalog_error is not None:
            raise catalog_error

        provider_logger.log_model_not_found(namespaced_model, available)
        raise ModelNotFoundError(namespaced_model, available)

    async def list_all_models(self) -> List[ModelDescriptor]:
        """Every provider's catalog, concatenated in configuration order."""
        models: List[ModelDescriptor] = []
        for provider in self.providers:
            provider_models, _ = await self._catalog(provider)
            models.extend(provider_models)
        return models

    async def aclose(self) -> None:
        """Close every provider's HTTP client."""
        for provider in self.providers:
            await provider.aclose()
