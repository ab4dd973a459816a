"""Exception hierarchy for ollaproxy.

Every exception carries the HTTP status code the API layer answers with.
"""

from typing import Optional


class OllaproxyError(Exception):
    """Base exception for ollaproxy errors."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(OllaproxyError):
    """Raised when configuration is invalid or a request cannot be resolved."""

    status_code = 400
    error_type = "configuration_error"


class ModelNotFoundError(ConfigurationError):
    """Raised when a namespaced model does not belong to any provider."""

    error_type = "model_not_found"

    def __init__(self, model: str, available_models: Optional[list[str]] = None):
        super().__init__(f"model '{model}' not found")
        self.model = model
        self.available_models = available_models or []


class ProviderError(OllaproxyError):
    """Base exception for failures talking to an upstream provider."""

    error_type = "provider_error"

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ClientBuildError(ProviderError):
    """Raised when the HTTP client for a provider cannot be built."""

    error_type = "client_build_error"


class UpstreamUnavailableError(ProviderError):
    """Raised on connect failures, timeouts and other transport errors."""

    status_code = 502
    error_type = "upstream_unavailable"


class StreamReadError(ProviderError):
    """Raised when reading the upstream response body fails."""

    status_code = 502
    error_type = "stream_read_error"


class UpstreamProtocolError(ProviderError):
    """Base exception for upstream responses that break the protocol."""

    error_type = "upstream_protocol_error"


class UpstreamHTTPError(UpstreamProtocolError):
    """Raised when the upstream answers with a non-2xx status."""

    error_type = "upstream_http_error"

    def __init__(self, upstream_status: int, body: str, provider: Optional[str] = None):
        super().__init__(f"upstream returned HTTP {upstream_status}: {body}", provider)
        self.upstream_status = upstream_status
        self.body = body


class DecodeError(UpstreamProtocolError):
    """Raised when an upstream stream cannot be decoded."""

    error_type = "decode_error"


class AggregationError(OllaproxyError):
    """Raised when a chunk stream fails before it could be aggregated."""

    error_type = "aggregation_error"

    def __init__(self, cause: OllaproxyError):
        super().__init__(cause.message)
        self.cause = cause
        self.status_code = cause.status_code
