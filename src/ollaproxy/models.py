"""Pydantic models for the Ollama-compatible API and upstream wire formats."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> str:
    """Current time as an RFC 3339 timestamp."""
    return datetime.now(timezone.utc).isoformat()


def namespace_model(provider_name: str, local_name: str) -> str:
    """Build the externally visible name of a provider's model."""
    return f"[{provider_name}]-{local_name}"


# Canonical chunk model


class ChatMessage(BaseModel):
    """A single chat message."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"] = Field(
        ..., description="The role of the message author"
    )
    content: str = Field(..., description="The content of the message")


class StreamChatChunk(BaseModel):
    """One normalized piece of streamed chat output."""

    model: str = Field(..., description="Model that produced the chunk")
    created_at: str = Field(default_factory=utc_now, description="Creation timestamp")
    message: ChatMessage = Field(..., description="Assistant message delta")
    done: bool = Field(False, description="Whether generation is complete")

    @classmethod
    def delta(cls, model: str, content: str, done: bool = False) -> "StreamChatChunk":
        return cls(
            model=model,
            message=ChatMessage(role="assistant", content=content),
            done=done,
        )

    @classmethod
    def terminal(cls, model: str) -> "StreamChatChunk":
        """Synthetic final chunk carrying no text."""
        return cls.delta(model, "", done=True)


# Model catalog


class ModelDetails(BaseModel):
    """Model metadata as reported by Ollama."""

    format: Optional[str] = None
    family: Optional[str] = None
    families: Optional[List[str]] = None
    parameter_size: Optional[str] = None
    quantization_level: Optional[str] = None


class ModelDescriptor(BaseModel):
    """A model offered by one provider, in the Ollama /api/tags shape."""

    name: str = Field(..., description="Namespaced model name")
    model: str = Field(..., description="Model name known to the provider")
    modified_at: Optional[str] = Field(None, description="Last modification time")
    size: Optional[int] = Field(None, description="Model size in bytes")
    digest: Optional[str] = Field(None, description="Model digest")
    details: Optional[ModelDetails] = Field(None, description="Model metadata")

    @property
    def local_name(self) -> str:
        return self.model

    @property
    def namespaced_name(self) -> str:
        return self.name


class ModelsResponse(BaseModel):
    """Response listing available models."""

    models: List[ModelDescriptor] = Field(..., description="List of models")


class VersionResponse(BaseModel):
    version: str


# Request models (Ollama compatible)


class ChatRequest(BaseModel):
    """Request for the chat endpoint."""

    model: str = Field(..., description="Namespaced model to use")
    messages: List[ChatMessage] = Field(
        ..., description="List of messages in the conversation"
    )
    stream: bool = Field(True, description="Whether to stream the response")
    options: Optional[Dict[str, Any]] = Field(
        None, description="Fields merged into the upstream request body"
    )


class GenerateRequest(BaseModel):
    """Request for the generate endpoint."""

    model: str = Field(..., description="Namespaced model to use")
    prompt: str = Field(..., description="Prompt to complete")
    system: Optional[str] = Field(None, description="Optional system message")
    stream: bool = Field(True, description="Whether to stream the response")
    options: Optional[Dict[str, Any]] = Field(
        None, description="Fields merged into the upstream request body"
    )

    def to_messages(self) -> List[ChatMessage]:
        messages = []
        if self.system:
            messages.append(ChatMessage(role="system", content=self.system))
        messages.append(ChatMessage(role="user", content=self.prompt))
        return messages


# Response models (Ollama compatible)


class ChatResponse(BaseModel):
    """Non-streaming chat response."""

    model: str
    created_at: str
    message: ChatMessage
    done: bool = True
    total_duration: int = 0
    load_duration: int = 0
    prompt_eval_count: int = 0
    eval_count: int = 0
    eval_duration: int = 0


class GenerateResponse(BaseModel):
    """Non-streaming generate response."""

    model: str
    created_at: str
    response: str
    done: bool = True
    context: Optional[List[int]] = None
    total_duration: int = 0
    load_duration: int = 0
    prompt_eval_count: int = 0
    eval_count: int = 0
    eval_duration: int = 0


class GenerateChunk(BaseModel):
    """One line of a streaming generate response."""

    model: str
    created_at: str
    response: str
    done: bool


class ErrorResponse(BaseModel):
    """Error body, as Ollama returns it."""

    error: str = Field(..., description="Error message")


# Upstream wire formats


class OllamaWireMessage(BaseModel):
    content: str = ""


class OllamaWireChunk(BaseModel):
    """One NDJSON line of an Ollama /api/chat stream."""

    message: Optional[OllamaWireMessage] = None
    done: bool = False


class OpenAIWireDelta(BaseModel):
    content: Optional[str] = None


class OpenAIWireChoice(BaseModel):
    delta: Optional[OpenAIWireDelta] = None


class OpenAIWireChunk(BaseModel):
    """Payload of one `data:` event of an OpenAI chat completions stream."""

    choices: List[OpenAIWireChoice] = Field(default_factory=list)

    def first_content(self) -> Optional[str]:
        if not self.choices or self.choices[0].delta is None:
            return None
        return self.choices[0].delta.content
