"""Provider for OpenAI-compatible chat completions APIs."""

from datetime import datetime, timezone
from typing import Any, List

from ..decoders import SSEDecoder
from ..models import ModelDescriptor, namespace_model
from .base import Provider


class OpenAIProvider(Provider):
    """OpenAI-style provider: SSE chat stream, catalog at /models."""

    chat_path = "/chat/completions"
    catalog_path = "/models"

    def create_decoder(self, model: str) -> SSEDecoder:
        return SSEDecoder(model)

    def parse_catalog(self, data: Any) -> List[ModelDescriptor]:
        models = []
        for entry in data.get("data", []):
            created = entry.get("created")
            models.append(
                ModelDescriptor(
                    name=namespace_model(self.name, entry["id"]),
                    model=entry["id"],
                    modified_at=(
                        datetime.fromtimestamp(created, timezone.utc).isoformat()
                        if isinstance(created, int)
                        else None
                    ),
                )
            )
        return models
