"""Agent facade.

An Agent owns its identity, prompts, tool and MCP server selection, and the
provider it talks to. Prompt execution is delegated to the provider's
tool-use loop, with the agent itself passed as the caller so MCP-prefixed
tool calls are routed back through ``execute_mcp_tool``.

Example:
    ```python
    agent = (
        Agent("files-bot", tools=["fs_list_dir"], registry=registry)
        .use_llm("ollama", "gemma3:4b", ModelConfig(max_tool_rounds=5))
        .system_prompt("You manage files.")
        .prompt("List the files in /tmp")
    )
    try:
        print(await agent.get_response())
    finally:
        await agent.aclose()
    ```
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Union

from agentrelay.core.executor import ToolExecutor
from agentrelay.core.provider import Provider
from agentrelay.core.registry import ToolRegistry
from agentrelay.mcp.registry import MCPRegistry
from agentrelay.providers.default_provider_registry import DefaultProviderRegistry
from agentrelay.types import Message, ModelConfig, ToolDefinition

_module_logger = logging.getLogger(__name__)


class Agent:
    """A named, tool-enabled conversational agent."""

    def __init__(
        self,
        name: str,
        tools: Optional[Sequence[str]] = None,
        mcps: Optional[Sequence[str]] = None,
        registry: Optional[ToolRegistry] = None,
        mcp_registry: Optional[MCPRegistry] = None,
        provider_registry: Optional[DefaultProviderRegistry] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize an agent.

        Args:
            name: Agent name, used in logs and HTTP responses
            tools: Names of local tools the agent may call
            mcps: Names of MCP servers whose tools the agent may call
            registry: Local tool registry
            mcp_registry: Registry of MCP servers
            provider_registry: Factory used by ``use_llm`` for provider names
            logger: Logger for agent and loop traces
        """
        if not name or not name.strip():
            raise ValueError("Agent name cannot be empty")
        self.name = name
        self.tools: List[str] = list(tools or [])
        self.mcps: List[str] = list(mcps or [])
        self.registry = registry or ToolRegistry()
        self.mcp_registry = mcp_registry
        self.logger = logger or _module_logger
        self._provider_registry = provider_registry or DefaultProviderRegistry(
            executor=ToolExecutor(self.registry)
        )
        self._provider: Optional[Provider] = None
        self._system_prompt = "You are a helpful assistant"
        self._user_prompt = ""
        self.chat_history: List[Message] = []

    @property
    def provider(self) -> Optional[Provider]:
        return self._provider

    def use_llm(
        self,
        provider: Union[str, Provider] = "ollama",
        model: Optional[str] = None,
        model_config: Optional[ModelConfig] = None,
    ) -> "Agent":
        """Select the provider and model.

        Args:
            provider: Provider name or a ready provider instance
            model: Model to use; the provider default when omitted
            model_config: Optional model tuning

        Returns:
            The agent, for chaining
        """
        if isinstance(provider, Provider):
            if model:
                provider.set_model(model)
            self._provider = provider
        else:
            self._provider = self._provider_registry.create(provider, model, model_config)
        return self

    def system_prompt(self, text: str) -> "Agent":
        self._system_prompt = text
        return self

    def prompt(self, text: str) -> "Agent":
        self._user_prompt = text
        return self

    def get_system_prompt(self) -> str:
        return self._system_prompt

    def get_user_prompt(self) -> str:
        return self._user_prompt

    async def tool_definitions(self) -> List[ToolDefinition]:
        """Resolve the agent's local and MCP tools into definitions."""
        definitions = self.registry.get_definitions(self.tools)
        if self.mcps and self.mcp_registry is not None:
            definitions.extend(await self.mcp_registry.get_tool_definitions(self.mcps))
        return definitions

    async def _full_system_prompt(self) -> str:
        parts = [self._system_prompt]
        if self.mcps and self.mcp_registry is not None:
            parts.append(await self.mcp_registry.load_resources(self.mcps))
            parts.append(await self.mcp_registry.load_prompts(self.mcps))
        return "\n\n".join(part for part in parts if part)

    async def run(self) -> str:
        """Execute the current prompt.

        Returns:
            The provider's answer

        Raises:
            ValueError: If no prompt or provider is set
            ProviderError: If a plain (tool-free) provider call fails
        """
        if not self._user_prompt.strip():
            raise ValueError("No prompt set; call prompt() first")
        if self._provider is None:
            raise ValueError("No provider set; call use_llm() first")

        self.chat_history.append({"role": "user", "content": self._user_prompt})

        start_time = time.time()
        try:
            system = await self._full_system_prompt()
            tools = await self.tool_definitions()
            if tools:
                response = await self._provider.generate_with_tools(
                    self._user_prompt, tools, system, logger=self.logger, caller=self
                )
            else:
                response = await self._provider.generate(self._user_prompt, system)
        except Exception as e:
            self.chat_history.append({"role": "assistant", "content": f"Error: {e}"})
            raise

        self.chat_history.append({"role": "assistant", "content": response})
        self.logger.info("Agent response generated", extra={
            "agent": self.name,
            "provider": self._provider.get_name(),
            "model": self._provider.get_model(),
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        return response

    async def get_response(self) -> str:
        """Execute the current prompt, reporting failures as an error string."""
        try:
            return await self.run()
        except Exception as e:
            latest = self.chat_history[-1] if self.chat_history else None
            if latest and latest["role"] == "assistant" and latest["content"].startswith("Error:"):
                return latest["content"]
            self.logger.error("Failed to get response", extra={"agent": self.name, "error": str(e)})
            return f"Error: Failed to get response - {e}"

    async def execute_mcp_tool(self, name: str, args: Dict[str, Any]) -> Any:
        """Run an MCP-prefixed tool on behalf of the tool-use loop.

        Raises:
            RuntimeError: If the agent has no MCP registry
        """
        if self.mcp_registry is None:
            raise RuntimeError("No MCP registry configured for this agent")
        return await self.mcp_registry.execute_mcp_tool(name, args)

    async def aclose(self) -> None:
        """Release the provider and disconnect MCP servers."""
        if self._provider is not None:
            await self._provider.aclose()
        if self.mcp_registry is not None:
            await self.mcp_registry.close()
