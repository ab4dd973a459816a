"""Tests for settings and provider configuration loading."""

import pytest

from ollaproxy.config import (
    ApiType,
    ConfigManager,
    ProviderConfig,
    Settings,
    demo_config,
    write_demo_config,
)
from ollaproxy.exceptions import ConfigurationError

PROVIDERS_YAML = """
providers:
  - name: ollama
    base_url: localhost:11435/
    api_type: ollama
  - name: aliyun
    base_url: https://dashscope.aliyuncs.com/compatible-mode/v1
    secret: secret-key
    api_type: openai
    models:
      - qwen3-max
      - glm-4.5
"""


@pytest.fixture
def config_manager(tmp_path):
    return ConfigManager(Settings(config_dir=tmp_path, _env_file=None))


def test_load_providers(config_manager, tmp_path):
    (tmp_path / "providers.yaml").write_text(PROVIDERS_YAML)

    providers = config_manager.load_providers()

    assert [p.name for p in providers] == ["ollama", "aliyun"]
    assert providers[0].base_url == "http://localhost:11435"
    assert providers[0].api_type is ApiType.OLLAMA
    assert providers[0].models is None
    assert providers[1].secret.get_secret_value() == "secret-key"
    assert providers[1].models == ["qwen3-max", "glm-4.5"]
    assert config_manager.load_providers() is providers


def test_secret_not_in_repr():
    config = ProviderConfig(
        name="p", base_url="http://x", api_type="openai", secret="hunter2"
    )
    assert "hunter2" not in repr(config)


def test_missing_file(config_manager):
    with pytest.raises(ConfigurationError, match="not found"):
        config_manager.load_providers()


def test_invalid_yaml(config_manager, tmp_path):
    (tmp_path / "providers.yaml").write_text("providers: [unclosed")
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        config_manager.load_providers()


def test_duplicate_names(config_manager, tmp_path):
    (tmp_path / "providers.yaml").write_text(
        "providers:\n"
        "  - {name: a, base_url: http://x, api_type: ollama}\n"
        "  - {name: a, base_url: http://y, api_type: openai}\n"
    )
    with pytest.raises(ConfigurationError, match="duplicate provider name"):
        config_manager.load_providers()


def test_unknown_api_type(config_manager, tmp_path):
    (tmp_path / "providers.yaml").write_text(
        "providers:\n  - {name: a, base_url: http://x, api_type: grpc}\n"
    )
    with pytest.raises(ConfigurationError):
        config_manager.load_providers()


def test_empty_file(config_manager, tmp_path):
    (tmp_path / "providers.yaml").write_text("")
    with pytest.raises(ConfigurationError, match="No providers"):
        config_manager.load_providers()


def test_demo_config_round_trip(config_manager):
    path = config_manager.providers_config_path

    assert write_demo_config(path) is True
    assert write_demo_config(path) is False

    providers = config_manager.load_providers()
    assert [p.name for p in providers] == [
        p["name"] for p in demo_config()["providers"]
    ]


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("OLLAPROXY_PORT", "9999")
    monkeypatch.setenv("OLLAPROXY_PACING_DELAY_MS", "0")

    settings = Settings(_env_file=None)

    assert settings.port == 9999
    assert settings.pacing_delay == 0
    assert settings.connect_timeout == 10.0
    assert settings.request_timeout == 120.0
