"""Core module for the agentrelay framework."""

from .errors import (
    AgentRelayError,
    APIError,
    ConfigError,
    InvalidRequestError,
    ProviderError,
    ToolError,
)
from .executor import ToolExecutor
from .loop import ModelTurn, ToolOutcome, ToolUseBackend, ToolUseLoop
from .provider import Provider
from .provider_config import ProviderConfig, ProviderSettings
from .provider_registry import ProviderRegistry
from .registry import ToolRegistry
from .sanitizer import ResultSanitizer

__all__ = [
    "AgentRelayError",
    "APIError",
    "ConfigError",
    "InvalidRequestError",
    "ProviderError",
    "ToolError",
    "ToolExecutor",
    "ModelTurn",
    "ToolOutcome",
    "ToolUseBackend",
    "ToolUseLoop",
    "Provider",
    "ProviderConfig",
    "ProviderSettings",
    "ProviderRegistry",
    "ToolRegistry",
    "ResultSanitizer",
]
