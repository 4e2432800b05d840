"""GitHub Copilot language server client.

Runs the Copilot language server as a child process and speaks LSP JSON-RPC
over its stdio, framed with ``Content-Length`` headers. Each
``CopilotLanguageServer`` is owned by the adapter that created it and is shut
down by that adapter; there is no process-wide instance.
"""

import asyncio
import contextvars
import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

from agentrelay.core.errors import APIError

TEMP_DOCUMENT_URI = "file:///tmp/agentrelay-copilot-temp.py"

EDITOR_INFO = {"name": "agentrelay", "version": "0.1.0"}
EDITOR_PLUGIN_INFO = {"name": "agentrelay-copilot", "version": "0.1.0"}


class RequestIdFilter(logging.Filter):
    """Adds the in-flight LSP request ID to log records."""

    def filter(self, record):
        request_id = _request_ctx.get()
        record.request_id = f"[request.{request_id}]" if request_id is not None else ""
        return True


logger = logging.getLogger(__name__)
logger.addFilter(RequestIdFilter())

_request_ctx = contextvars.ContextVar('lsp_request_id', default=None)


class LSPError(APIError):
    """Raised when the language server fails or answers with an error."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message, provider_name="copilot")


class CopilotLanguageServer:
    """Owned handle on a Copilot language server process.

    Example:
        ```python
        server = CopilotLanguageServer(["copilot-language-server", "--stdio"])
        await server.start()
        try:
            if await server.is_authenticated():
                completions = await server.get_completions(text, {"line": 0, "character": 5})
        finally:
            await server.shutdown()
        ```
    """

    def __init__(
        self,
        command: Sequence[str],
        request_timeout: float = 30.0,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> None:
        if not command:
            raise ValueError("Language server command cannot be empty")
        self.command = list(command)
        self.request_timeout = request_timeout
        self.env = env
        self.cwd = cwd
        self.process: Optional[asyncio.subprocess.Process] = None
        self.initialized = False
        self._document_version = 1
        self._message_id = 0
        self._pending_requests: Dict[int, asyncio.Future] = {}
        self._read_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def start(self) -> None:
        """Start the server process and run the LSP initialize handshake."""
        if self.initialized:
            return
        if self.process is not None:
            await self._teardown()

        env = os.environ.copy()
        if self.env:
            env.update(self.env)

        logger.info("Starting Copilot language server", extra={"command": self.command})
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=self.cwd,
            )
        except OSError as e:
            raise LSPError(f"Failed to start language server: {e}") from e

        self._read_task = asyncio.create_task(self._read_messages())
        if self.process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr())

        try:
            await self.request("initialize", {
                "processId": os.getpid(),
                "capabilities": {
                    "workspace": {"workspaceFolders": True},
                    "textDocument": {
                        "completion": {"completionItem": {"snippetSupport": True}},
                    },
                },
                "initializationOptions": {
                    "editorInfo": EDITOR_INFO,
                    "editorPluginInfo": EDITOR_PLUGIN_INFO,
                },
            })
            await self.notify("initialized", {})
        except LSPError as e:
            logger.error("Language server initialization failed", extra={"error": str(e)})
            await self._teardown()
            raise
        except OSError as e:
            logger.error("Language server initialization failed", extra={"error": str(e)})
            await self._teardown()
            raise LSPError(f"Language server initialization failed: {e}") from e
        self.initialized = True
        logger.info("Copilot language server initialized")

    def _next_message_id(self) -> int:
        self._message_id += 1
        return self._message_id

    async def _write(self, message: Dict[str, Any]) -> None:
        if not self.is_running or self.process.stdin is None:
            raise LSPError("Language server is not running")
        body = json.dumps({"jsonrpc": "2.0", **message}).encode("utf-8")
        self.process.stdin.write(f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body)
        await self.process.stdin.drain()

    async def request(self, method: str, params: Any = None, timeout: Optional[float] = None) -> Any:
        """Send a request and wait for its result.

        Args:
            method: LSP method name
            params: Request parameters
            timeout: Seconds to wait; defaults to ``request_timeout``

        Returns:
            The ``result`` member of the response

        Raises:
            LSPError: On an error response, a timeout, or a dead connection
        """
        msg_id = self._next_message_id()
        future = asyncio.get_running_loop().create_future()
        self._pending_requests[msg_id] = future
        token = _request_ctx.set(msg_id)
        try:
            logger.debug("Sending request", extra={"method": method})
            await self._write({"id": msg_id, "method": method, "params": params})
            response = await asyncio.wait_for(future, timeout=timeout or self.request_timeout)
        except asyncio.TimeoutError as e:
            raise LSPError(f"Timeout waiting for {method} response") from e
        finally:
            self._pending_requests.pop(msg_id, None)
            _request_ctx.reset(token)

        if response.get("error"):
            error = response["error"]
            raise LSPError(
                f"{method} failed: {error.get('message', 'unknown error')}",
                code=error.get("code"),
            )
        return response.get("result")

    async def notify(self, method: str, params: Any = None) -> None:
        """Send a notification (no response expected)."""
        logger.debug("Sending notification", extra={"method": method})
        await self._write({"method": method, "params": params})

    async def _read_frame(self) -> Optional[Dict[str, Any]]:
        reader = self.process.stdout
        content_length = None
        while True:
            line = await reader.readline()
            if not line:
                return None
            line = line.strip()
            if not line:
                break
            header, _, value = line.decode("ascii", errors="replace").partition(":")
            if header.lower() == "content-length":
                content_length = int(value.strip())
        if content_length is None:
            raise LSPError("Missing Content-Length header")
        body = await reader.readexactly(content_length)
        return json.loads(body)

    async def _read_messages(self) -> None:
        """Background task dispatching server messages to waiting requests."""
        error: Optional[Exception] = None
        try:
            while True:
                try:
                    message = await self._read_frame()
                except json.JSONDecodeError as e:
                    logger.error("Invalid JSON from language server", extra={"error": str(e)})
                    continue
                if message is None:
                    logger.info("Language server connection closed")
                    break
                await self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Fatal language server connection error", extra={"error": str(e)})
            error = e
        finally:
            reason = f"Language server connection lost: {error}" if error else "Language server connection closed"
            for future in self._pending_requests.values():
                if not future.done():
                    future.set_exception(LSPError(reason))
            self._pending_requests.clear()

    async def _dispatch(self, message: Dict[str, Any]) -> None:
        if "method" in message:
            if "id" in message:
                # Server-initiated requests (progress, configuration) get an empty reply
                await self._write({"id": message["id"], "result": None})
            else:
                logger.debug("Ignoring notification", extra={"method": message["method"]})
            return

        future = self._pending_requests.get(message.get("id"))
        if future is None:
            logger.warning("Received response for unknown request", extra={"msg_id": message.get("id")})
        elif not future.done():
            future.set_result(message)

    async def _drain_stderr(self) -> None:
        while True:
            line = await self.process.stderr.readline()
            if not line:
                return
            logger.debug("Language server stderr", extra={"line": line.decode(errors="replace").rstrip()})

    async def is_authenticated(self) -> bool:
        """Ask the server whether a GitHub user is already signed in."""
        result = await self.request("signInInitiate", {})
        status = (result or {}).get("status")
        logger.debug("Copilot auth status", extra={"status": status})
        return status == "AlreadySignedIn"

    async def get_completions(self, text: str, position: Dict[str, int]) -> List[Dict[str, Any]]:
        """Request inline completions for ``text`` at ``position``.

        The text is opened as a temporary document, completed, and closed
        again; the document version increments on every call.

        Args:
            text: Full document text
            position: ``{"line": int, "character": int}`` cursor position

        Returns:
            The completion items reported by the server
        """
        await self.start()
        version = self._document_version
        self._document_version += 1

        await self.notify("textDocument/didOpen", {
            "textDocument": {
                "uri": TEMP_DOCUMENT_URI,
                "languageId": "python",
                "version": version,
                "text": text,
            }
        })
        try:
            result = await self.request("getCompletions", {
                "doc": {"version": version, "position": position, "uri": TEMP_DOCUMENT_URI}
            })
        finally:
            await self.notify("textDocument/didClose", {"textDocument": {"uri": TEMP_DOCUMENT_URI}})
        return (result or {}).get("completions") or []

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Shut the server down and reap the process. Safe to call twice."""
        if self.process is None:
            return
        try:
            if self.is_running and self.initialized:
                try:
                    await self.request("shutdown", None, timeout=timeout)
                    await self.notify("exit", None)
                except LSPError as e:
                    logger.warning("Language server did not shut down cleanly", extra={"error": str(e)})
        finally:
            await self._teardown(timeout)
            logger.info("Copilot language server shutdown complete")

    async def _teardown(self, timeout: float = 5.0) -> None:
        """Cancel the reader tasks, reap the process and reset state."""
        process = self.process
        for task in (self._read_task, self._stderr_task):
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if process is not None and process.returncode is None:
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Language server not responding to shutdown, forcing termination")
                process.kill()
                await process.wait()
            except ProcessLookupError:
                pass
        self.process = None
        self.initialized = False
        self._read_task = None
        self._stderr_task = None
