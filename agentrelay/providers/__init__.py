"""Provider implementations for the agentrelay framework.

- Ollama local inference over its HTTP API
- OpenAI-compatible endpoints, including OpenRouter
- GitHub Copilot through its language server
"""

from .copilot import CopilotProvider
from .default_provider_registry import DefaultProviderRegistry
from .ollama import OllamaProvider
from .openai import OpenAIProvider, OpenRouterProvider

__all__ = [
    "CopilotProvider",
    "DefaultProviderRegistry",
    "OllamaProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
]
