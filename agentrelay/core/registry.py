"""Tool Registry for the agentrelay framework.

This module provides the registry of local tools. Names carrying the
reserved ``mcp_`` prefix belong to remote MCP servers and are never
resolved here; the executor routes them through the calling agent instead.
"""

import logging
from typing import Dict, Iterable, List, Optional, Union

from agentrelay.types import ToolDefinition, ToolHandler, ToolImplementation

logger = logging.getLogger(__name__)

MCP_PREFIX = "mcp_"


def is_mcp_tool(name: str) -> bool:
    """Check whether a tool name is routed to an MCP server."""
    return name.startswith(MCP_PREFIX)


class ToolRegistry:
    """Registry for managing local tool implementations.

    The registry maintains a collection of tools that can be used by an agent.
    It ensures that tool names are unique and resolves the tool names an
    agent declares into the definitions sent to a model.
    """

    def __init__(self) -> None:
        """Initialize an empty tool registry."""
        self._tools: Dict[str, ToolImplementation] = {}

    def register(self, tool: ToolImplementation) -> None:
        """Register a tool implementation.

        Args:
            tool: The implementation to register

        Raises:
            ValueError: If the name is already registered or uses the MCP prefix
        """
        if is_mcp_tool(tool.name):
            raise ValueError(f"Tool name '{tool.name}' uses the reserved '{MCP_PREFIX}' prefix")
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def register_tool(
        self,
        definition: Union[ToolDefinition, dict],
        handler: ToolHandler,
    ) -> ToolImplementation:
        """Register a definition together with its handler.

        Args:
            definition: The tool definition (either a ToolDefinition or its dict form)
            handler: Sync or async callable receiving the argument dict

        Returns:
            The registered implementation

        Raises:
            ValueError: If a tool with the same name already exists
        """
        if isinstance(definition, dict):
            definition = ToolDefinition(**definition)
        tool = ToolImplementation(definition=definition, execute=handler)
        self.register(tool)
        return tool

    def has_tool(self, name: str) -> bool:
        if is_mcp_tool(name):
            return False
        return name in self._tools

    def get_tool(self, name: str) -> Optional[ToolImplementation]:
        """Get a tool implementation by name.

        Args:
            name: The name of the tool to retrieve

        Returns:
            The implementation, or None for unknown and MCP-prefixed names
        """
        if is_mcp_tool(name):
            return None
        return self._tools.get(name)

    def list_tools(self) -> List[ToolImplementation]:
        """Get a list of all registered tools."""
        return list(self._tools.values())

    def get_definitions(self, names: Iterable[str]) -> List[ToolDefinition]:
        """Resolve tool names into the definitions sent to a model.

        Unknown names are skipped with a warning.

        Args:
            names: Tool names declared by an agent

        Returns:
            Definitions for the names that resolved, in request order
        """
        definitions = []
        for name in names:
            tool = self.get_tool(name)
            if tool is None:
                logger.warning("Tool not found in registry", extra={"tool_name": name})
                continue
            definitions.append(tool.definition)
        return definitions
