"""Tool Executor for the agentrelay framework.

This module runs a named tool against a set of arguments and always returns
a JSON-friendly value: failures are reported as ``{"error": "..."}`` so the
tool-use loop can feed them back to the model instead of aborting.
"""

import inspect
import logging
import time
from typing import Any, Dict, Optional

from agentrelay.core.errors import ToolError
from agentrelay.core.registry import ToolRegistry, is_mcp_tool
from agentrelay.types import ToolImplementation, ToolResult
from agentrelay.utils.log_utils import resolve_logger, safe_log

_module_logger = logging.getLogger(__name__)


class ToolExecutor:
    """Dispatches tool calls to local implementations or to MCP servers.

    MCP-prefixed names are executed through a *caller*, any object exposing
    ``async execute_mcp_tool(name, args)`` (normally the Agent). Every other
    name is looked up in the local registry.
    """

    def __init__(self, registry: Optional[ToolRegistry] = None) -> None:
        """Initialize a tool executor.

        Args:
            registry: The tool registry holding local implementations
        """
        self._registry = registry if registry is not None else ToolRegistry()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def execute_tool(
        self,
        name: str,
        args: Dict[str, Any],
        caller: Any = None,
        logger: Optional[logging.Logger] = None,
    ) -> ToolResult:
        """Execute a tool by name.

        Args:
            name: The name of the tool to execute
            args: Parsed arguments for the tool
            caller: Object providing ``execute_mcp_tool`` for MCP-prefixed names
            logger: Optional logger for execution traces

        Returns:
            The tool's result, or ``{"error": message}`` on any failure
        """
        log = resolve_logger(logger, _module_logger)
        start_time = time.time()

        if is_mcp_tool(name):
            if caller is None or not hasattr(caller, "execute_mcp_tool"):
                return {"error": "Agent instance required for MCP tool execution"}
            try:
                result = await caller.execute_mcp_tool(name, args)
            except Exception as e:
                safe_log(log, logging.ERROR, "MCP tool execution failed",
                         tool_name=name, error=str(e))
                return {"error": f"MCP tool execution failed for {name}: {e}"}
            safe_log(log, logging.DEBUG, "MCP tool executed", tool_name=name,
                     duration_ms=int((time.time() - start_time) * 1000))
            return result

        tool = self._registry.get_tool(name)
        if tool is None:
            safe_log(log, logging.WARNING, "Tool not found in registry", tool_name=name)
            return {"error": f"Tool {name} not found in registry"}

        try:
            self._validate_parameters(tool, args)
            result = tool.execute(args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            safe_log(log, logging.ERROR, "Tool execution failed",
                     tool_name=name, error=str(e))
            return {"error": f"Tool execution failed for {name}: {e}"}

        safe_log(log, logging.DEBUG, "Tool executed", tool_name=name,
                 duration_ms=int((time.time() - start_time) * 1000))
        return result

    def _validate_parameters(self, tool: ToolImplementation, args: Dict[str, Any]) -> None:
        """Check arguments against the tool's declared required parameters.

        Raises:
            ToolError: If a required parameter is missing
        """
        for param in tool.definition.function.parameters.get("required") or []:
            if param not in args:
                raise ToolError(f"Missing required parameter '{param}'")
