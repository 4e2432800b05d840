"""Tests for provider settings and configuration."""

import pytest

from agentrelay.core import ProviderConfig, ProviderSettings
from agentrelay.core.errors import ConfigError
from agentrelay.core.provider_config import OPENROUTER_BASE_URL


def test_settings_defaults(base_provider_settings):
    """Test default values when nothing is configured."""
    settings = base_provider_settings()

    assert settings.ollama_api_url == "http://localhost:11434"
    assert settings.ollama_model == "gemma3:4b"
    assert settings.ollama_keep_alive == "60s"
    assert settings.openrouter_api_key is None
    assert settings.openrouter_base_url == OPENROUTER_BASE_URL
    assert settings.your_site_name == "AgentForce ADK"


def test_settings_from_environment(monkeypatch):
    """Test that environment variables are picked up case-insensitively."""
    monkeypatch.setenv("OLLAMA_MODEL", "llama3.2")
    monkeypatch.setenv("openrouter_api_key", "sk-or-test")

    settings = ProviderSettings(env_file=None)

    assert settings.ollama_model == "llama3.2"
    assert settings.openrouter_api_key == "sk-or-test"


def test_settings_from_env_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("OPENAI_MODEL=gpt-4.1\nUNRELATED=1\n")

    settings = ProviderSettings(env_file=str(env_file))

    assert settings.openai_model == "gpt-4.1"


def test_ollama_config(base_provider_config):
    config = base_provider_config("ollama", ollama_keep_alive="5m")

    assert config.model == "gemma3:4b"
    assert config.base_url == "http://localhost:11434"
    assert config.extra_config == {"keep_alive": "5m"}
    assert config.is_configured


def test_openrouter_config(base_provider_config):
    """Test the attribution headers carried for OpenRouter."""
    config = base_provider_config("openrouter", openrouter_api_key="sk-or-test", your_site_name="Test Site")

    assert config.api_key == "sk-or-test"
    assert config.base_url == OPENROUTER_BASE_URL
    assert config.extra_config["default_headers"] == {
        "HTTP-Referer": "https://agentforce.zone",
        "X-Title": "Test Site",
    }


def test_openrouter_requires_key(base_provider_config):
    with pytest.raises(ConfigError, match="OpenRouter API key is required"):
        base_provider_config("openrouter")


def test_copilot_command_split(base_provider_config):
    config = base_provider_config("copilot", copilot_command="node server.js --stdio")

    assert config.extra_config["command"] == ["node", "server.js", "--stdio"]
    assert config.model == "gpt-4o"


def test_unsupported_provider(base_provider_settings):
    with pytest.raises(ConfigError, match="Unsupported provider: gemini"):
        ProviderConfig.from_settings("gemini", base_provider_settings())


@pytest.mark.parametrize("config,expected", [
    (ProviderConfig(model="m"), True),
    (ProviderConfig(), False),
    (ProviderConfig(model="m", base_url="https://api.example.com"), False),
    (ProviderConfig(model="m", base_url="https://api.example.com", api_key="k"), True),
])
def test_is_configured(config, expected):
    assert config.is_configured is expected
