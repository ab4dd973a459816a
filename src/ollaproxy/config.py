"""Configuration management for ollaproxy."""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError


class ApiType(str, Enum):
    """Wire protocol family spoken by an upstream provider."""

    OLLAMA = "ollama"
    OPENAI = "openai"


class ProviderConfig(BaseModel):
    """Configuration for a single upstream provider."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique provider name")
    base_url: str = Field(..., description="Base URL of the provider API")
    api_type: ApiType = Field(..., description="Protocol family of the provider")
    secret: Optional[SecretStr] = Field(
        None, description="Bearer token, or basic auth password when username is set"
    )
    username: Optional[str] = Field(None, description="Basic auth user name")
    models: Optional[List[str]] = Field(
        None, description="Static model list; fetched from the provider when unset"
    )

    @field_validator("base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        value = value.strip()
        if "://" not in value:
            value = f"http://{value}"
        return value.rstrip("/")


class ProvidersFile(BaseModel):
    """Schema of the providers YAML file."""

    providers: List[ProviderConfig] = Field(default_factory=list)

    @field_validator("providers")
    @classmethod
    def _unique_names(cls, providers: List[ProviderConfig]) -> List[ProviderConfig]:
        seen = set()
        for provider in providers:
            if provider.name in seen:
                raise ValueError(f"duplicate provider name: {provider.name}")
            seen.add(provider.name)
        return providers


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server settings
    host: str = Field("127.0.0.1", description="Host to bind the server to")
    port: int = Field(11434, description="Port to bind the server to")
    reload: bool = Field(False, description="Enable auto-reload for development")

    # Paths
    config_dir: Path = Field(
        Path("config"), description="Directory containing config files"
    )
    providers_config_file: str = Field(
        "providers.yaml", description="Providers configuration file"
    )

    # Upstream behaviour
    pacing_delay_ms: int = Field(
        20, ge=0, description="Delay between chunks of an Ollama-style stream"
    )
    connect_timeout: float = Field(10.0, gt=0, description="Upstream connect timeout")
    request_timeout: float = Field(120.0, gt=0, description="Upstream overall timeout")
    error_body_limit: int = Field(
        512, gt=0, description="Characters of an upstream error body to report"
    )

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_format: str = Field("json", description="Logging format (json or console)")

    # CORS
    cors_origins: list[str] = Field(["*"], description="CORS allowed origins")

    # Development
    debug: bool = Field(False, description="Enable debug mode")

    model_config = {"env_prefix": "OLLAPROXY_", "env_file": ".env"}

    @property
    def pacing_delay(self) -> float:
        return self.pacing_delay_ms / 1000


class ConfigManager:
    """Manages configuration loading and caching."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self._providers_cache: Optional[List[ProviderConfig]] = None

    @property
    def providers_config_path(self) -> Path:
        """Path to the providers configuration file."""
        return self.settings.config_dir / self.settings.providers_config_file

    def load_providers(self) -> List[ProviderConfig]:
        """Load provider configuration from the YAML file."""
        if self._providers_cache is not None:
            return self._providers_cache

        path = self.providers_config_path
        if not path.exists():
            raise ConfigurationError(
                f"Providers config file not found: {path} (run ollaproxy-init)"
            )

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        try:
            providers = ProvidersFile.model_validate(data).providers
        except ValidationError as e:
            raise ConfigurationError(f"Invalid providers config {path}: {e}") from e

        if not providers:
            raise ConfigurationError(f"No providers configured in {path}")

        self._providers_cache = providers
        return providers


def demo_config() -> Dict[str, Any]:
    """Sample providers configuration."""
    return {
        "providers": [
            {
                "name": "ollama",
                "base_url": "http://localhost:11435",
                "api_type": ApiType.OLLAMA.value,
            },
            {
                "name": "aliyun",
                "base_url": "https://dashscope.aliyuncs.com/compatible-mode/v1",
                "secret": "secret-key",
                "api_type": ApiType.OPENAI.value,
                "models": [
                    "qwen3-coder-plus",
                    "Moonshot-Kimi-K2-Instruct",
                    "qwen3-max",
                    "glm-4.5",
                ],
            },
            {
                "name": "tsinghua",
                "base_url": "https://llmapi.paratera.com/v1",
                "secret": "secret-key",
                "api_type": ApiType.OPENAI.value,
                "models": ["Qwen3-Coder-Plus", "GLM-4.5"],
            },
        ]
    }


def write_demo_config(path: Path) -> bool:
    """Write the sample configuration to path unless a file already exists."""
    if path.exists():
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(demo_config(), f, sort_keys=False)
    return True


# Global config manager instance
config_manager = ConfigManager()


def get_config_manager() -> ConfigManager:
    """Get the global config manager instance."""
    return config_manager


def get_settings() -> Settings:
    """Get application settings."""
    return config_manager.settings


def init_config() -> None:
    """Entry point writing a sample providers file to the configured location."""
    path = get_config_manager().providers_config_path
    if write_demo_config(path):
        print(f"Wrote sample configuration to {path}")
    else:
        print(f"{path} already exists, leaving it untouched")
