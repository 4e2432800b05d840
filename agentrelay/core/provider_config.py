"""Provider configuration module.

This module provides configuration management for LLM providers,
with support for reading from environment variables and ``.env`` files.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

from agentrelay.core.errors import ConfigError

ProviderType = Literal["ollama", "openai", "openrouter", "copilot"]

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_SITE_URL = "https://agentforce.zone"


class ProviderSettings(BaseSettings):
    """Global settings for all LLM providers.

    Values are read from the environment (case-insensitive) and from an
    optional ``.env`` file.
    """

    # Ollama settings
    ollama_api_url: str = Field("http://localhost:11434", description="Ollama API URL")
    ollama_model: str = Field("gemma3:4b", description="Default Ollama model")
    ollama_keep_alive: str = Field("60s", description="How long Ollama keeps the model loaded")

    # OpenAI settings
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    openai_model: str = Field("gpt-4o-mini", description="Default OpenAI model")
    openai_base_url: Optional[str] = Field(None, description="Optional OpenAI API base URL")

    # OpenRouter settings
    openrouter_api_key: Optional[str] = Field(None, description="OpenRouter API key")
    openrouter_model: str = Field("openai/gpt-4o-mini", description="Default OpenRouter model")
    openrouter_base_url: str = Field(OPENROUTER_BASE_URL, description="OpenRouter API base URL")
    your_site_url: str = Field(DEFAULT_SITE_URL, description="Referer sent to OpenRouter")
    your_site_name: str = Field("AgentForce ADK", description="Title sent to OpenRouter")

    # GitHub Copilot settings
    copilot_command: str = Field(
        "copilot-language-server --stdio",
        description="Command that starts the Copilot language server",
    )
    copilot_model: str = Field("gpt-4o", description="Default Copilot model")

    def __init__(self, env_file: Optional[str] = ".env", **kwargs):
        super().__init__(_env_file=env_file, **kwargs)

    model_config = ConfigDict(
        case_sensitive=False,
        extra="ignore"
    )


@dataclass
class ProviderConfig:
    """Configuration for a specific LLM provider instance.

    Attributes:
        api_key: The API key for the provider
        model: The model name to use
        base_url: Optional base URL for the API
        extra_config: Additional provider-specific configuration
    """

    api_key: Optional[str] = None
    model: Optional[str] = None
    base_url: Optional[str] = None
    extra_config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_settings(
        cls,
        provider: ProviderType,
        settings: Optional[ProviderSettings] = None,
    ) -> "ProviderConfig":
        """Create a provider config from settings.

        Args:
            provider: The provider to load config for
            settings: Optional settings instance, will load from env if not provided

        Returns:
            A configured ProviderConfig instance

        Raises:
            ConfigError: If the provider is unsupported or lacks a required key
        """
        if settings is None:
            settings = ProviderSettings()

        provider_configs = {
            "ollama": lambda: cls(
                model=settings.ollama_model,
                base_url=settings.ollama_api_url,
                extra_config={"keep_alive": settings.ollama_keep_alive}
            ),
            "openai": lambda: cls(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                base_url=settings.openai_base_url
            ),
            "openrouter": lambda: cls(
                api_key=settings.openrouter_api_key,
                model=settings.openrouter_model,
                base_url=settings.openrouter_base_url,
                extra_config={
                    "default_headers": {
                        "HTTP-Referer": settings.your_site_url,
                        "X-Title": settings.your_site_name,
                    }
                }
            ),
            "copilot": lambda: cls(
                model=settings.copilot_model,
                extra_config={"command": settings.copilot_command.split()}
            ),
        }

        if provider not in provider_configs:
            raise ConfigError(f"Unsupported provider: {provider}")

        config = provider_configs[provider]()
        if provider == "openrouter" and not config.api_key:
            raise ConfigError(
                "OpenRouter API key is required. Set OPENROUTER_API_KEY environment variable.",
                provider_name="openrouter",
            )
        return config

    @property
    def is_configured(self) -> bool:
        """Check if the provider is properly configured.

        Returns:
            True if required settings are present, False otherwise
        """
        if self.model is None:
            return False

        # Hosted endpoints need a key
        if self.base_url and self.base_url.startswith("https://") and not self.api_key:
            return False

        return True
