"""HTTP glue exposing agents over Ollama and OpenAI compatible routes."""

from agentrelay.server.app import create_app

__all__ = ["create_app"]
