"""agentrelay: tool-enabled LLM agents served over HTTP.

The package drives a bounded tool-calling loop between an agent and a
pluggable LLM provider (Ollama, OpenAI-compatible endpoints such as
OpenRouter, or GitHub Copilot), executing local and MCP tools between
model turns until a final answer is produced.

Key Components:
    - ToolRegistry / ToolExecutor: local tool catalogue and safe execution
    - ToolUseLoop: the multi-round tool-calling state machine
    - Provider: per-backend adapters sharing one behavioral contract
    - Agent: chainable facade tying prompts, tools and a provider together

Example:
    ```python
    from agentrelay import Agent, ToolDefinition, ToolRegistry

    registry = ToolRegistry()
    registry.register_tool(
        ToolDefinition.create("add", "Add two numbers", {
            "type": "object",
            "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
        }),
        lambda args: args["a"] + args["b"],
    )

    agent = Agent("math", tools=["add"], registry=registry).use_llm("ollama", "gemma3:4b")
    answer = await agent.prompt("What is 2 + 40?").get_response()
    ```
"""

from agentrelay.agent import Agent
from agentrelay.core import (
    ProviderError,
    ResultSanitizer,
    ToolExecutor,
    ToolRegistry,
    ToolUseLoop,
)
from agentrelay.providers import DefaultProviderRegistry
from agentrelay.types import (
    Message,
    ModelConfig,
    ToolCall,
    ToolDefinition,
    ToolHandler,
    ToolImplementation,
    ToolResult,
)

__all__ = [
    "Agent",
    "ProviderError",
    "ResultSanitizer",
    "ToolExecutor",
    "ToolRegistry",
    "ToolUseLoop",
    "DefaultProviderRegistry",
    "Message",
    "ModelConfig",
    "ToolCall",
    "ToolDefinition",
    "ToolHandler",
    "ToolImplementation",
    "ToolResult",
]

__version__ = "0.1.0"
