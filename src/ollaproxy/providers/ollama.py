"""Provider for upstreams speaking the native Ollama API."""

from typing import Any, List

from ..decoders import NDJSONDecoder
from ..models import ModelDescriptor, ModelDetails, namespace_model
from .base import Provider


class OllamaProvider(Provider):
    """Ollama-style provider: NDJSON chat stream, catalog at /api/tags."""

    chat_path = "/api/chat"
    catalog_path = "/api/tags"

    def create_decoder(self, model: str) -> NDJSONDecoder:
        return NDJSONDecoder(model, pacing_delay=self.pacing_delay)

    def parse_catalog(self, data: Any) -> List[ModelDescriptor]:
        models = []
        for entry in data.get("models", []):
            local_name = entry.get("name") or entry["model"]
            details = entry.get("details")
            models.append(
                ModelDescriptor(
                    name=namespace_model(self.name, local_name),
                    model=local_name,
                    modified_at=entry.get("modified_at"),
                    size=entry.get("size"),
                    digest=entry.get("digest"),
                    details=ModelDetails.model_validate(details) if details else None,
                )
            )
        return models
