"""Connection management for MCP servers.

This module owns the stdio sessions to MCP servers. Connections are retried
with exponential backoff and tracked by server name; the transports live on
an AsyncExitStack supplied by the caller so they are torn down in order.

Example:
    ```python
    from contextlib import AsyncExitStack
    from agentrelay.mcp.connection import MCPConnectionManager
    from agentrelay.mcp.schemas import MCPServerConfig

    async def list_remote_tools():
        async with AsyncExitStack() as stack:
            manager = MCPConnectionManager(stack)
            session = await manager.connect(
                "files", MCPServerConfig(command="npx", args=["files-server"])
            )
            return await session.list_tools()
    ```
"""

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from typing import Dict, Optional

import backoff
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from agentrelay.mcp.schemas import MCPServerConfig

logger = logging.getLogger(__name__)


class MCPConnectionManager:
    """Manages stdio connections to MCP servers.

    Attributes:
        MAX_RETRIES (int): Maximum number of connection attempts
        BASE_DELAY (float): Base delay in seconds between attempts
        sessions (Dict[str, ClientSession]): Active server sessions
    """

    MAX_RETRIES = 3
    BASE_DELAY = 1.0

    def __init__(self, exit_stack: Optional[AsyncExitStack] = None):
        """Initialize the connection manager.

        Args:
            exit_stack: AsyncExitStack holding the transports. A private
                stack is created when omitted and closed by ``cleanup_all``.
        """
        self.exit_stack = exit_stack or AsyncExitStack()
        self.sessions: Dict[str, ClientSession] = {}

    @backoff.on_exception(
        backoff.expo,
        (ConnectionError, TimeoutError),
        max_tries=MAX_RETRIES,
        base=BASE_DELAY
    )
    async def _connect_with_retry(self, server_name: str, server_params: StdioServerParameters) -> ClientSession:
        """Open the transport and initialize a session, retrying with backoff.

        Raises:
            ConnectionError: If the attempt fails
        """
        try:
            logger.debug("Establishing connection", extra={"server": server_name})
            stdio, write = await self.exit_stack.enter_async_context(
                stdio_client(server_params)
            )
            session = await self.exit_stack.enter_async_context(
                ClientSession(stdio, write)
            )
            await session.initialize()
            return session
        except Exception as e:
            logger.error("Connection attempt failed", extra={"server": server_name, "error": str(e)})
            raise ConnectionError(f"Failed to connect to server '{server_name}': {str(e)}")

    async def connect(self, server_name: str, config: MCPServerConfig) -> ClientSession:
        """Connect to an MCP server.

        Args:
            server_name: Unique name of the server
            config: Server launch configuration

        Returns:
            The initialized ClientSession

        Raises:
            ConnectionError: If connection fails after retries
            ValueError: If the server is already connected
        """
        if server_name in self.sessions:
            raise ValueError(f"Server {server_name} is already connected")

        params = {"command": config.command, "args": config.args}
        if config.env:
            params["env"] = config.env
        if config.working_dir:
            params["cwd"] = config.working_dir

        start_time = time.time()
        try:
            session = await self._connect_with_retry(server_name, StdioServerParameters(**params))
        except Exception as e:
            await self.cleanup(server_name)
            raise ConnectionError(f"Failed to connect to server '{server_name}': {str(e)}")

        self.sessions[server_name] = session
        logger.info("Connected to MCP server", extra={
            "server": server_name,
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        return session

    def get_session(self, server_name: str) -> Optional[ClientSession]:
        return self.sessions.get(server_name)

    async def cleanup(self, server_name: str) -> None:
        """Forget a server's session. Safe to call multiple times.

        Transports stay on the exit stack and are closed by ``cleanup_all``.
        """
        self.sessions.pop(server_name, None)
        logger.debug("Cleanup completed", extra={"server": server_name})

    async def cleanup_all(self) -> None:
        """Close every session and the exit stack."""
        servers = list(self.sessions)
        for server_name in servers:
            await self.cleanup(server_name)
        try:
            await self.exit_stack.aclose()
        except asyncio.CancelledError:
            logger.info("Task cancelled during exit stack cleanup")
            await self.exit_stack.aclose()
        except Exception as e:
            logger.error("Error closing exit stack", extra={"error": str(e)})
        finally:
            self.sessions.clear()
            logger.debug("All server resources cleaned up", extra={"servers": servers})
