"""MCP server registry.

Exposes the tools of connected MCP servers under prefixed names
(``mcp_<server>_<tool>``) so they can sit next to local tools in a model's
tool list, and routes calls on those names back to the right session. It also
renders server resources and prompts into text for system-prompt enrichment.
"""

import logging
import re
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from mcp import ClientSession, types

from agentrelay.core.registry import MCP_PREFIX
from agentrelay.mcp.connection import MCPConnectionManager
from agentrelay.mcp.schemas import MCPConfig, MCPServerConfig
from agentrelay.types import ToolDefinition

logger = logging.getLogger(__name__)

MCP_TOOL_PATTERN = re.compile(r"^mcp_([^_]+)_(.+)$")

DEFAULT_INPUT_SCHEMA = {"type": "object", "properties": {}}


class MCPToolError(Exception):
    """Raised when an MCP tool reports an error result."""
    pass


def mcp_tool_name(server_name: str, tool_name: str) -> str:
    return f"{MCP_PREFIX}{server_name}_{tool_name}"


def parse_mcp_tool_name(name: str) -> Tuple[str, str]:
    """Split a prefixed tool name into (server, tool).

    Raises:
        ValueError: If the name is not in ``mcp_<server>_<tool>`` form
    """
    match = MCP_TOOL_PATTERN.match(name)
    if not match:
        raise ValueError(f"Invalid MCP tool name format: {name}")
    return match.group(1), match.group(2)


def flatten_tool_result(result: types.CallToolResult) -> Any:
    """Convert a CallToolResult into JSON-friendly data.

    Structured content wins when present. Otherwise text blocks are joined;
    images become data URLs so the result sanitizer can extract them.

    Raises:
        MCPToolError: If the server flagged the result as an error
    """
    parts: List[Any] = []
    for item in result.content:
        if isinstance(item, types.TextContent):
            parts.append(item.text)
        elif isinstance(item, types.ImageContent):
            parts.append({
                "type": "image",
                "mimeType": item.mimeType,
                "image": f"data:{item.mimeType};base64,{item.data}",
            })
        else:
            parts.append(item.model_dump(mode="json"))

    if result.isError:
        message = "\n".join(part for part in parts if isinstance(part, str))
        raise MCPToolError(message or "MCP tool reported an error")

    structured = getattr(result, "structuredContent", None)
    if structured is not None:
        return structured
    if all(isinstance(part, str) for part in parts):
        return "\n".join(parts)
    return {"content": parts}


class MCPRegistry:
    """Registry of configured MCP servers and their live sessions.

    Example:
        ```python
        registry = MCPRegistry(load_mcp_config("mcp.json"))
        try:
            tools = await registry.get_tool_definitions(["files"])
            result = await registry.execute_mcp_tool("mcp_files_read", {"path": "a.txt"})
        finally:
            await registry.close()
        ```
    """

    def __init__(
        self,
        config: Optional[MCPConfig] = None,
        manager: Optional[MCPConnectionManager] = None,
    ) -> None:
        self._configs: Dict[str, MCPServerConfig] = dict(config.servers) if config else {}
        self.manager = manager or MCPConnectionManager()

    def add_server(self, server_name: str, config: MCPServerConfig) -> None:
        """Register a server configuration.

        Raises:
            ValueError: If the name is taken or contains an underscore
        """
        if "_" in server_name:
            raise ValueError(f"Server name '{server_name}' cannot contain underscores")
        if server_name in self._configs:
            raise ValueError(f"Server '{server_name}' is already configured")
        self._configs[server_name] = config

    @property
    def server_names(self) -> List[str]:
        return list(self._configs)

    async def connect(self, server_name: str) -> ClientSession:
        """Return the session for a server, connecting on first use.

        Raises:
            ValueError: If the server is not configured
            ConnectionError: If the connection fails
        """
        session = self.manager.get_session(server_name)
        if session is not None:
            return session
        config = self._configs.get(server_name)
        if config is None:
            raise ValueError(f"MCP server not configured: {server_name}")
        return await self.manager.connect(server_name, config)

    async def list_tools(self, server_name: str) -> List[ToolDefinition]:
        """List a server's tools as prefixed tool definitions."""
        session = await self.connect(server_name)
        result = await session.list_tools()
        definitions = [
            ToolDefinition.create(
                mcp_tool_name(server_name, tool.name),
                f"[MCP:{server_name}] {tool.description or ''}".rstrip(),
                tool.inputSchema or DEFAULT_INPUT_SCHEMA,
            )
            for tool in result.tools
        ]
        logger.debug("Loaded MCP tools", extra={"server": server_name, "count": len(definitions)})
        return definitions

    async def get_tool_definitions(self, server_names: Iterable[str]) -> List[ToolDefinition]:
        """Collect tool definitions from several servers.

        Servers that fail to connect or list are logged and skipped.
        """
        definitions: List[ToolDefinition] = []
        for server_name in server_names:
            try:
                definitions.extend(await self.list_tools(server_name))
            except Exception as e:
                logger.warning("Failed to load MCP tools", extra={
                    "server": server_name,
                    "error": str(e)
                })
        return definitions

    async def execute_mcp_tool(self, name: str, args: Dict[str, Any]) -> Any:
        """Call a prefixed MCP tool.

        Args:
            name: Tool name in ``mcp_<server>_<tool>`` form
            args: Tool arguments

        Returns:
            The flattened tool result

        Raises:
            ValueError: If the name is malformed or the server unknown
            MCPToolError: If the tool reports an error
        """
        server_name, tool_name = parse_mcp_tool_name(name)
        session = await self.connect(server_name)
        start_time = time.time()
        result = await session.call_tool(tool_name, args)
        logger.debug("MCP tool executed", extra={
            "server": server_name,
            "tool_name": tool_name,
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        return flatten_tool_result(result)

    async def load_resources(self, server_names: Iterable[str]) -> str:
        """Render the text resources of several servers.

        Returns:
            A ``# MCP Resources`` section, or an empty string if none loaded
        """
        sections: List[str] = []
        for server_name in server_names:
            try:
                session = await self.connect(server_name)
                listing = await session.list_resources()
                for resource in listing.resources:
                    contents = await session.read_resource(resource.uri)
                    text = "\n".join(
                        item.text for item in contents.contents
                        if isinstance(item, types.TextResourceContents) and item.text
                    )
                    if text:
                        sections.append(f"\n## MCP Resource: {resource.name} ({server_name})\n{text}")
            except Exception as e:
                logger.warning("Failed to load MCP resources", extra={
                    "server": server_name,
                    "error": str(e)
                })
        if not sections:
            return ""
        return "# MCP Resources\n" + "\n".join(sections)

    async def load_prompts(self, server_names: Iterable[str]) -> str:
        """Render the prompt catalogue of several servers.

        Returns:
            A ``# Available MCP Prompts`` section, or an empty string
        """
        sections: List[str] = []
        for server_name in server_names:
            try:
                session = await self.connect(server_name)
                listing = await session.list_prompts()
                for prompt in listing.prompts:
                    sections.append(
                        f"\n## Available MCP Prompt: {prompt.name} ({server_name})\n{prompt.description or ''}"
                    )
            except Exception as e:
                logger.warning("Failed to load MCP prompts", extra={
                    "server": server_name,
                    "error": str(e)
                })
        if not sections:
            return ""
        return "# Available MCP Prompts\n" + "\n".join(sections)

    async def close(self) -> None:
        """Disconnect every server."""
        await self.manager.cleanup_all()
