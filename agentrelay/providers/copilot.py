"""GitHub Copilot provider implementation.

Copilot is reached through its language server, which only offers inline
completions. Chat is emulated by rendering the conversation as a plain-text
document and completing it; tools are described in that document and calls
are mined back out of the completion text.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from agentrelay.core.errors import ProviderError
from agentrelay.core.executor import ToolExecutor
from agentrelay.core.extraction import find_embedded_tool_call, parse_inline_tool_call
from agentrelay.core.loop import ModelTurn, ToolUseBackend, ToolUseLoop
from agentrelay.core.provider import Provider
from agentrelay.core.provider_config import ProviderConfig
from agentrelay.core.sanitizer import ResultSanitizer
from agentrelay.providers.lsp import CopilotLanguageServer
from agentrelay.types import Message, ModelConfig, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = ["copilot-language-server", "--stdio"]
DEFAULT_MAX_TOOL_ROUNDS = 10
AUTH_CHECK_TIMEOUT = 10.0

UNCLEAR_REQUEST_REPLY = (
    "I understand your request, but I need more specific information to provide a helpful response."
)
NO_COMPLETION_REPLY = "I understand your request. Let me help you with that."
EMPTY_TOOL_ANSWER_REPLY = "Tool execution completed, but no final response was generated."

# Copilot is prompted with {"tool": ..., "parameters": ...}; the generic shape is accepted too
TOOL_CALL_KEYS = (("tool", "parameters"), ("name", "arguments"))

_CODE_PREFIX = re.compile(r"^(import|from|def|class|function|#|\*|//)")
_BARE_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

_ROLE_LABELS = {"user": "User", "assistant": "Assistant", "tool": "Tool", "system": "User"}


def describe_tools(tools: Sequence[Dict[str, Any]]) -> str:
    """Render tool definitions as the plain-text catalogue shown to Copilot."""
    descriptions = []
    for tool in tools:
        function = tool.get("function", tool)
        name = function.get("name", "unknown")
        description = function.get("description") or "No description"
        params = function.get("parameters") or {}
        properties = params.get("properties") or {}

        param_desc = ""
        if properties:
            required = params.get("required") or []
            lines = []
            for param_name, prop in properties.items():
                marker = ", required" if param_name in required else ""
                lines.append(
                    f"  - {param_name} ({prop.get('type', 'string')}{marker}): {prop.get('description', '')}"
                )
            param_desc = "\nParameters:\n" + "\n".join(lines)
        descriptions.append(f"{name}: {description}{param_desc}")
    return "\n\n".join(descriptions)


def tool_system_prompt(system: Optional[str], tools: Sequence[Dict[str, Any]]) -> str:
    return (
        f"{system or ''}\n\n"
        f"You have access to the following tools:\n\n{describe_tools(tools)}\n\n"
        "To use a tool, respond with ONLY a JSON object in this exact format:\n"
        '{"tool": "tool_name", "parameters": {"param1": "value1", "param2": "value2"}}\n\n'
        "IMPORTANT RULES:\n"
        "1. Use ONLY the JSON format when calling tools\n"
        "2. For multi-step tasks, use one tool at a time and wait for results\n"
        "3. Always complete the full task as requested\n"
        "4. After using tools, provide a final summary of what was accomplished\n\n"
        "If you don't need to use tools, just respond normally without JSON."
    )


def render_transcript(messages: Sequence[Message]) -> str:
    """Flatten non-system messages into ``Role: content`` lines."""
    lines = []
    for message in messages:
        role = message.get("role")
        if role == "system":
            continue
        lines.append(f"{_ROLE_LABELS.get(role, 'User')}: {message.get('content') or ''}")
    return "\n".join(lines)


def build_context(prompt: str, system: Optional[str] = None) -> str:
    """Build the completion document for a prompt."""
    if system:
        return f"User: {system}\n\nUser: {prompt}\nAssistant: "
    return f"User: {prompt}\nAssistant: "


def clean_completion(completions: List[Dict[str, Any]]) -> str:
    """Pick the first completion and strip code-like artifacts from it."""
    if not completions:
        return NO_COMPLETION_REPLY
    completion = completions[0]
    text = completion.get("displayText") or completion.get("text") or ""
    text = _CODE_PREFIX.sub("", text).strip()
    if not text or len(text) < 5 or _BARE_IDENTIFIER.match(text):
        return UNCLEAR_REQUEST_REPLY
    return text


def _chat_prompt(messages: Sequence[Message]) -> str:
    return "\n".join(f"{m.get('role')}: {m.get('content') or ''}" for m in messages)


def strip_tool_calls(text: str) -> str:
    """Remove any tool-call JSON objects left in a final answer."""
    while True:
        found = find_embedded_tool_call(text, TOOL_CALL_KEYS)
        if found is None:
            return text.strip()
        _, (start, end) = found
        text = text[:start] + text[end:]


class CopilotToolUse(ToolUseBackend):
    """Tool-use strategy emulating chat over Copilot completions."""

    provider_label = "GitHub Copilot"
    per_call_messages = False

    def __init__(self, provider: "CopilotProvider", model: str) -> None:
        self._provider = provider
        self.model = model

    @staticmethod
    def _split(messages: List[Message]) -> Tuple[Optional[str], str]:
        system = next((m.get("content") for m in messages if m.get("role") == "system"), None)
        return system, render_transcript(messages)

    async def send_turn(
        self,
        messages: List[Message],
        tools: List[Dict[str, Any]],
    ) -> Optional[ModelTurn]:
        system, transcript = self._split(messages)
        if tools:
            system = tool_system_prompt(system, tools)
        text = await self._provider.complete(transcript, system)
        return ModelTurn(content=text)

    async def send_plain(self, messages: List[Message]) -> str:
        system, transcript = self._split(messages)
        return await self._provider.complete(transcript, system)

    def extract_tool_calls(self, turn: ModelTurn) -> List[ToolCall]:
        call = parse_inline_tool_call(turn.content, TOOL_CALL_KEYS)
        if call is None:
            found = find_embedded_tool_call(turn.content, TOOL_CALL_KEYS)
            call = found[0] if found else None
        return [call] if call else []

    def finalize(self, content: str) -> str:
        return strip_tool_calls(content) or EMPTY_TOOL_ANSWER_REPLY


class CopilotProvider(Provider):
    """Provider backed by the GitHub Copilot language server.

    The provider creates its language server on first use and shuts it down
    in ``aclose``.
    """

    display_name = "GitHub Copilot"

    def __init__(
        self,
        model: str = "gpt-4o",
        model_config: Optional[ModelConfig] = None,
        executor: Optional[ToolExecutor] = None,
        sanitizer: Optional[ResultSanitizer] = None,
        command: Optional[Sequence[str]] = None,
        server: Optional[CopilotLanguageServer] = None,
    ) -> None:
        """Initialize the provider.

        Args:
            model: Model name reported by ``get_model``
            model_config: Tool-loop options
            executor: Tool executor used by the tool-use loop
            sanitizer: Result sanitizer used by the tool-use loop
            command: Command line starting the language server
            server: Pre-built server handle, mainly for tests
        """
        self.command = list(command or DEFAULT_COMMAND)
        self._server = server
        self._authenticated = False
        super().__init__(model, model_config, executor, sanitizer)

    @classmethod
    def from_config(cls, config: ProviderConfig, **kwargs: Any) -> "CopilotProvider":
        return cls(config.model or "gpt-4o", command=config.extra_config.get("command"), **kwargs)

    def get_name(self) -> str:
        return "copilot"

    def _build_loop(self) -> ToolUseLoop:
        return ToolUseLoop(
            CopilotToolUse(self, self._model),
            self.executor,
            self.model_config,
            sanitizer=self.sanitizer,
            default_max_rounds=DEFAULT_MAX_TOOL_ROUNDS,
        )

    async def _ensure_ready(self) -> CopilotLanguageServer:
        if self._server is None:
            self._server = CopilotLanguageServer(self.command)
        await self._server.start()
        if not self._authenticated:
            try:
                self._authenticated = await asyncio.wait_for(
                    self._server.is_authenticated(), timeout=AUTH_CHECK_TIMEOUT
                )
            except asyncio.TimeoutError as e:
                raise ProviderError("LSP authentication failed: Authentication check timeout",
                                    provider_name=self.get_name()) from e
            if not self._authenticated:
                raise ProviderError(
                    "LSP authentication failed: GitHub Copilot is not signed in",
                    provider_name=self.get_name(),
                )
        return self._server

    async def complete(self, prompt: str, system: Optional[str] = None) -> str:
        """Complete a chat-style document and return the cleaned reply."""
        server = await self._ensure_ready()
        context = build_context(prompt, system)
        lines = context.split("\n")
        position = {"line": len(lines) - 1, "character": len(lines[-1])}
        completions = await server.get_completions(context, position)
        logger.debug("Copilot completions received", extra={"count": len(completions)})
        return clean_completion(completions)

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        try:
            return await self.complete(prompt, system)
        except Exception as e:
            raise self.wrap_error(e) from e

    async def chat(self, messages: Sequence[Message]) -> str:
        try:
            return await self.complete(_chat_prompt(messages))
        except Exception as e:
            raise self.wrap_error(e) from e

    async def generate_with_tools(
        self,
        prompt: str,
        tools: Sequence[Any],
        system: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
        caller: Any = None,
    ) -> str:
        if tools:
            return await super().generate_with_tools(
                prompt, tools, system, logger=logger, caller=caller
            )
        try:
            return await self.complete(prompt, system)
        except Exception as e:
            return self.error_string(e)

    async def chat_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[Any],
        logger: Optional[logging.Logger] = None,
        caller: Any = None,
    ) -> str:
        if tools:
            return await super().chat_with_tools(messages, tools, logger=logger, caller=caller)
        try:
            return await self.complete(_chat_prompt(messages))
        except Exception as e:
            return self.error_string(e)

    async def aclose(self) -> None:
        if self._server is not None:
            await self._server.shutdown()
            self._server = None
            self._authenticated = False
