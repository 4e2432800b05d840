"""Tests for the Agent facade."""

from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from agentrelay.agent import Agent
from agentrelay.core.errors import ProviderError
from agentrelay.core.provider import Provider
from agentrelay.mcp.registry import MCPRegistry
from agentrelay.providers import DefaultProviderRegistry


@pytest.fixture
def provider():
    provider = MagicMock(spec=Provider)
    provider.generate = AsyncMock(return_value="plain answer")
    provider.generate_with_tools = AsyncMock(return_value="tool answer")
    provider.aclose = AsyncMock()
    provider.get_name.return_value = "ollama"
    provider.get_model.return_value = "gemma3:4b"
    return provider


@pytest.fixture
def mcp_registry():
    registry = Mock(spec=MCPRegistry)
    registry.get_tool_definitions = AsyncMock(return_value=[])
    registry.load_resources = AsyncMock(return_value="# MCP Resources\n\n## MCP Resource: notes (files)\nhi")
    registry.load_prompts = AsyncMock(return_value="")
    registry.execute_mcp_tool = AsyncMock(return_value="remote result")
    registry.close = AsyncMock()
    return registry


def test_name_required():
    with pytest.raises(ValueError, match="Agent name cannot be empty"):
        Agent("  ")


def test_chainable_configuration(provider):
    agent = Agent("helper").use_llm(provider).system_prompt("Be terse.").prompt("Hi")

    assert agent.provider is provider
    assert agent.get_system_prompt() == "Be terse."
    assert agent.get_user_prompt() == "Hi"


def test_use_llm_by_name():
    factory = Mock(spec=DefaultProviderRegistry)
    agent = Agent("helper", provider_registry=factory)

    agent.use_llm("openrouter", "openai/gpt-4o-mini")

    factory.create.assert_called_once_with("openrouter", "openai/gpt-4o-mini", None)
    assert agent.provider is factory.create.return_value


def test_use_llm_instance_with_model(provider):
    Agent("helper").use_llm(provider, "llama3.2")
    provider.set_model.assert_called_once_with("llama3.2")


@pytest.mark.asyncio
async def test_run_requires_prompt_and_provider(provider):
    with pytest.raises(ValueError, match="No prompt set"):
        await Agent("helper").use_llm(provider).run()
    with pytest.raises(ValueError, match="No provider set"):
        await Agent("helper").prompt("hi").run()


@pytest.mark.asyncio
async def test_run_without_tools(provider):
    """Test that an agent without tools uses the plain completion path."""
    agent = Agent("helper").use_llm(provider).system_prompt("Be terse.").prompt("Hi")

    assert await agent.run() == "plain answer"

    provider.generate.assert_awaited_once_with("Hi", "Be terse.")
    provider.generate_with_tools.assert_not_awaited()
    assert agent.chat_history == [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "plain answer"},
    ]


@pytest.mark.asyncio
async def test_repeated_prompt_keeps_turns_paired(provider):
    """Test that asking the same prompt twice records both user turns."""
    provider.generate.side_effect = ["first", "second"]
    agent = Agent("helper").use_llm(provider).prompt("Hi")

    await agent.run()
    await agent.run()

    assert agent.chat_history == [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "first"},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "second"},
    ]


@pytest.mark.asyncio
async def test_run_with_tools(provider, calculator_registry):
    """Test that declared tools are resolved and the agent passed as caller."""
    agent = Agent("calc", tools=["add", "missing"], registry=calculator_registry).use_llm(provider).prompt("2+2")

    assert await agent.run() == "tool answer"

    args, kwargs = provider.generate_with_tools.await_args
    assert args[0] == "2+2"
    assert [d.name for d in args[1]] == ["add"]
    assert kwargs["caller"] is agent


@pytest.mark.asyncio
async def test_mcp_resources_enrich_system_prompt(provider, mcp_registry):
    agent = Agent("files", mcps=["files"], mcp_registry=mcp_registry).use_llm(provider).prompt("What do my notes say?")

    await agent.run()

    system = provider.generate.await_args.args[1]
    assert system.startswith("You are a helpful assistant\n\n# MCP Resources")
    mcp_registry.get_tool_definitions.assert_awaited_once_with(["files"])


@pytest.mark.asyncio
async def test_get_response_reports_errors(provider):
    """Test that get_response turns failures into an error string."""
    provider.generate.side_effect = ProviderError("Ollama provider error: refused", provider_name="ollama")
    agent = Agent("helper").use_llm(provider).prompt("Hi")

    with pytest.raises(ProviderError):
        await agent.run()
    assert await agent.get_response() == "Error: [ollama] Ollama provider error: refused"


@pytest.mark.asyncio
async def test_get_response_without_provider():
    response = await Agent("helper").prompt("Hi").get_response()
    assert response == "Error: Failed to get response - No provider set; call use_llm() first"


@pytest.mark.asyncio
async def test_execute_mcp_tool(mcp_registry):
    agent = Agent("files", mcps=["files"], mcp_registry=mcp_registry)

    assert await agent.execute_mcp_tool("mcp_files_read", {"path": "a"}) == "remote result"
    with pytest.raises(RuntimeError, match="No MCP registry"):
        await Agent("plain").execute_mcp_tool("mcp_files_read", {})


@pytest.mark.asyncio
async def test_aclose(provider, mcp_registry):
    agent = Agent("files", mcp_registry=mcp_registry).use_llm(provider)

    await agent.aclose()

    provider.aclose.assert_awaited_once()
    mcp_registry.close.assert_awaited_once()
