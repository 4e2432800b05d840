"""Common test fixtures for the entire test suite."""

import copy
from typing import Any, Callable, Dict, List, Optional

import pytest

from agentrelay.core import ProviderConfig, ProviderSettings, ToolExecutor, ToolRegistry
from agentrelay.core.loop import ModelTurn, ToolUseBackend
from agentrelay.types import ToolDefinition


class ScriptedBackend(ToolUseBackend):
    """Backend replaying a fixed list of model turns.

    Each entry in ``turns`` is returned by one ``send_turn`` call; a snapshot
    of the transcript is recorded per call so tests can inspect exactly what
    the model would have seen.
    """

    provider_label = "Scripted"

    def __init__(
        self,
        turns: List[Optional[ModelTurn]],
        plain_reply: str = "plain answer",
        per_call_messages: bool = False,
    ) -> None:
        self.turns = list(turns)
        self.plain_reply = plain_reply
        self.per_call_messages = per_call_messages
        self.sent: List[List[Dict[str, Any]]] = []
        self.plain_sent: List[List[Dict[str, Any]]] = []

    async def send_turn(self, messages, tools):
        self.sent.append(copy.deepcopy(messages))
        return self.turns.pop(0)

    async def send_plain(self, messages):
        self.plain_sent.append(copy.deepcopy(messages))
        return self.plain_reply


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    """Fixture to ensure no environment variables affect tests.

    This fixture runs automatically for all tests to ensure a clean environment.
    """
    env_vars = [
        "OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_BASE_URL",
        "OPENROUTER_API_KEY", "OPENROUTER_MODEL", "OPENROUTER_BASE_URL",
        "OLLAMA_MODEL", "OLLAMA_API_URL", "OLLAMA_KEEP_ALIVE",
        "YOUR_SITE_URL", "YOUR_SITE_NAME",
        "COPILOT_COMMAND", "COPILOT_MODEL",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def base_tool_definition():
    """Base fixture for creating tool definitions.

    Returns:
        Callable: A factory function that creates ToolDefinition instances.

    Example:
        def test_something(base_tool_definition):
            definition = base_tool_definition("add", "Add numbers", {"a": "number"})
    """
    def _make_definition(
        name: str,
        description: str = "Test tool",
        properties: Optional[Dict[str, str]] = None,
        required: Optional[List[str]] = None,
    ) -> ToolDefinition:
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {
                key: {"type": value, "description": f"The {key} value"}
                for key, value in (properties or {}).items()
            },
        }
        if required:
            schema["required"] = required
        return ToolDefinition.create(name, description, schema)
    return _make_definition


@pytest.fixture
def mock_async_handler():
    """Base fixture for creating async handlers.

    Returns:
        Callable: A factory function that creates async handlers with configurable return values.

    Example:
        def test_something(mock_async_handler):
            handler = mock_async_handler("Success!")
            result = await handler({"input": "test"})  # Returns "Success!"
    """
    def _make_handler(return_value: Any = None, error: Optional[Exception] = None):
        async def handler(params: Dict[str, Any]) -> Any:
            if error:
                raise error
            return return_value
        return handler
    return _make_handler


@pytest.fixture
def calculator_registry(base_tool_definition) -> ToolRegistry:
    """Registry holding an ``add`` tool and a failing ``explode`` tool."""
    registry = ToolRegistry()

    async def add(params: Dict[str, Any]) -> float:
        return params["a"] + params["b"]

    def explode(params: Dict[str, Any]) -> None:
        raise RuntimeError("kaboom")

    registry.register_tool(
        base_tool_definition("add", "Add two numbers", {"a": "number", "b": "number"}, ["a", "b"]),
        add,
    )
    registry.register_tool(base_tool_definition("explode", "Always fails"), explode)
    return registry


@pytest.fixture
def calculator_executor(calculator_registry) -> ToolExecutor:
    return ToolExecutor(calculator_registry)


@pytest.fixture
def scripted_backend() -> Callable[..., ScriptedBackend]:
    """Factory for backends replaying scripted model turns.

    Example:
        def test_something(scripted_backend):
            backend = scripted_backend([ModelTurn(content="done")])
    """
    return ScriptedBackend


@pytest.fixture
def tool_turn() -> Callable[..., ModelTurn]:
    """Factory for a model turn requesting a single tool call."""
    def _make_turn(name: str, arguments: Any, call_id: Optional[str] = None, content: str = "") -> ModelTurn:
        call: Dict[str, Any] = {"function": {"name": name, "arguments": arguments}}
        if call_id:
            call["id"] = call_id
        return ModelTurn(content=content, tool_calls=[call], finish_reason="tool_calls")
    return _make_turn


@pytest.fixture
def base_provider_settings():
    """Base fixture for provider settings isolated from any ``.env`` file.

    Example:
        def test_something(base_provider_settings):
            settings = base_provider_settings(openrouter_api_key="sk-or-test")
    """
    def _make_settings(**overrides: Any) -> ProviderSettings:
        return ProviderSettings(env_file=None, **overrides)
    return _make_settings


@pytest.fixture
def base_provider_config(base_provider_settings):
    """Base fixture for provider configuration built from settings."""
    def _make_config(provider_type: str, **overrides: Any) -> ProviderConfig:
        return ProviderConfig.from_settings(provider_type, base_provider_settings(**overrides))
    return _make_config


@pytest.fixture
def sample_messages():
    """Fixture for sample conversation messages."""
    return [
        {"role": "system", "content": "You are a helpful AI assistant."},
        {"role": "user", "content": "Hello, can you help me?"},
        {"role": "assistant", "content": "Of course! What can I help you with?"},
        {"role": "user", "content": "I need to use a tool."}
    ]
