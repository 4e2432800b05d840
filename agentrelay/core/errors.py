"""Error classes for the agentrelay framework."""

from typing import Optional


class AgentRelayError(Exception):
    """Base exception for all agentrelay errors."""
    pass


class ProviderError(AgentRelayError):
    """Base exception for all provider-related errors."""

    def __init__(self, message: str, *, provider_name: Optional[str] = None):
        self.provider_name = provider_name
        super().__init__(message)

    def __str__(self) -> str:
        if self.provider_name:
            return f"[{self.provider_name}] {super().__str__()}"
        return super().__str__()


class ConfigError(ProviderError):
    """Raised when there is an error in provider configuration."""
    pass


class APIError(ProviderError):
    """Raised when there is an error communicating with the provider's API."""
    pass


class ToolError(AgentRelayError):
    """Raised when a tool cannot be resolved or is called with invalid arguments."""
    pass


class InvalidRequestError(AgentRelayError):
    """Raised when an inbound HTTP request body fails validation."""
    pass
