"""Provider factory interface for the agentrelay framework."""

from abc import ABC, abstractmethod
from typing import List, Optional

from agentrelay.core.provider import Provider
from agentrelay.types import ModelConfig


class ProviderRegistry(ABC):
    """Abstract factory interface for creating LLM providers."""

    @abstractmethod
    def create(
        self,
        name: str,
        model: Optional[str] = None,
        model_config: Optional[ModelConfig] = None,
    ) -> Provider:
        """Create a provider by name.

        Args:
            name: The name of the provider (e.g. 'ollama')
            model: Model to bind; the provider's configured default when None
            model_config: Optional model tuning
        """
        pass

    @abstractmethod
    def list_providers(self) -> List[str]:
        """Names accepted by ``create``."""
        pass
