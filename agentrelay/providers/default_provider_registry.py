"""Default provider registry implementation."""

from typing import Dict, List, Optional, Type

from agentrelay.core.errors import ConfigError
from agentrelay.core.executor import ToolExecutor
from agentrelay.core.provider import Provider
from agentrelay.core.provider_config import ProviderConfig, ProviderSettings
from agentrelay.core.provider_registry import ProviderRegistry
from agentrelay.core.sanitizer import ResultSanitizer
from agentrelay.types import ModelConfig
from .copilot import CopilotProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider, OpenRouterProvider

PROVIDER_CLASSES: Dict[str, Type[Provider]] = {
    "ollama": OllamaProvider,
    "openai": OpenAIProvider,
    "openrouter": OpenRouterProvider,
    "copilot": CopilotProvider,
}


class DefaultProviderRegistry(ProviderRegistry):
    """Creates providers from environment-backed settings.

    Every call to ``create`` returns a new provider; the caller owns it and
    must ``aclose`` it.
    """

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        executor: Optional[ToolExecutor] = None,
        sanitizer: Optional[ResultSanitizer] = None,
    ) -> None:
        self._settings = settings
        self.executor = executor or ToolExecutor()
        self.sanitizer = sanitizer
        self._classes: Dict[str, Type[Provider]] = dict(PROVIDER_CLASSES)

    @property
    def settings(self) -> ProviderSettings:
        if self._settings is None:
            self._settings = ProviderSettings()
        return self._settings

    def register(self, name: str, provider_class: Type[Provider]) -> None:
        """Register an additional provider class under ``name``."""
        if name in self._classes:
            raise ValueError(f"Provider '{name}' is already registered")
        self._classes[name] = provider_class

    def list_providers(self) -> List[str]:
        return sorted(self._classes)

    def create(
        self,
        name: str,
        model: Optional[str] = None,
        model_config: Optional[ModelConfig] = None,
    ) -> Provider:
        """Create a provider by name.

        Args:
            name: The name of the provider
            model: Model override
            model_config: Optional model tuning

        Returns:
            A new provider instance

        Raises:
            ConfigError: If the provider is unknown or misconfigured
        """
        provider_class = self._classes.get(name)
        if provider_class is None:
            raise ConfigError(f"Unsupported provider: {name}")

        if name in PROVIDER_CLASSES:
            config = ProviderConfig.from_settings(name, self.settings)
        else:
            config = ProviderConfig()
        if model:
            config.model = model

        return provider_class.from_config(
            config,
            model_config=model_config,
            executor=self.executor,
            sanitizer=self.sanitizer,
        )
