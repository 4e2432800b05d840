"""Ollama provider implementation.

Talks to a local Ollama server over its REST API with aiohttp. Tool results
are merged into a single tool message per round since Ollama does not
address them by call id.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from agentrelay.core.errors import APIError
from agentrelay.core.executor import ToolExecutor
from agentrelay.core.extraction import ArgumentParseError, normalize_arguments
from agentrelay.core.loop import ModelTurn, ToolUseBackend, ToolUseLoop
from agentrelay.core.provider import Provider
from agentrelay.core.provider_config import ProviderConfig
from agentrelay.core.sanitizer import ResultSanitizer
from agentrelay.types import Message, ModelConfig, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_KEEP_ALIVE = "60s"
DEFAULT_MAX_TOOL_ROUNDS = 10

# Model lifecycle reasons reported by Ollama alongside a normal reply
LIFECYCLE_DONE_REASONS = frozenset({"load", "unload"})


def _finish_reason(done_reason: Optional[str]) -> Optional[str]:
    if done_reason in LIFECYCLE_DONE_REASONS:
        return None
    return done_reason


class OllamaToolUse(ToolUseBackend):
    """Tool-use strategy for the Ollama chat endpoint."""

    provider_label = "Ollama"
    per_call_messages = False

    def __init__(self, provider: "OllamaProvider", model: str) -> None:
        self._provider = provider
        self.model = model

    async def send_turn(
        self,
        messages: List[Message],
        tools: List[Dict[str, Any]],
    ) -> Optional[ModelTurn]:
        payload = self._provider.chat_payload(self.model, messages, tools)
        data = await self._provider.post("/api/chat", payload)
        message = data.get("message")
        if not message:
            return None
        calls: List[ToolCall] = []
        for tool_call in message.get("tool_calls") or []:
            function = tool_call.get("function", {})
            calls.append({
                "function": {
                    "name": function.get("name", ""),
                    "arguments": function.get("arguments"),
                }
            })
        return ModelTurn(
            content=message.get("content"),
            tool_calls=calls,
            finish_reason=_finish_reason(data.get("done_reason")),
            raw=message,
        )

    async def send_plain(self, messages: List[Message]) -> str:
        data = await self._provider.post(
            "/api/chat", self._provider.chat_payload(self.model, messages)
        )
        return (data.get("message") or {}).get("content") or ""

    def assistant_message(self, turn: ModelTurn, calls: List[ToolCall]) -> Message:
        tool_calls = []
        for call in calls:
            function = call["function"]
            try:
                arguments = normalize_arguments(function.get("arguments"))
            except ArgumentParseError:
                arguments = {}
            tool_calls.append({"function": {"name": function["name"], "arguments": arguments}})
        return {"role": "assistant", "content": turn.content or "", "tool_calls": tool_calls}


class OllamaProvider(Provider):
    """Provider backed by a local Ollama server.

    Example:
        ```python
        provider = OllamaProvider("gemma3:4b", ModelConfig(temperature=0.2))
        try:
            print(await provider.generate("Why is the sky blue?"))
        finally:
            await provider.aclose()
        ```
    """

    display_name = "Ollama"

    def __init__(
        self,
        model: str,
        model_config: Optional[ModelConfig] = None,
        executor: Optional[ToolExecutor] = None,
        sanitizer: Optional[ResultSanitizer] = None,
        base_url: str = DEFAULT_BASE_URL,
        keep_alive: str = DEFAULT_KEEP_ALIVE,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 300.0,
    ) -> None:
        """Initialize the Ollama provider.

        Args:
            model: Ollama model tag
            model_config: Sampling and tool-loop options
            executor: Tool executor used by the tool-use loop
            sanitizer: Result sanitizer used by the tool-use loop
            base_url: Ollama server URL
            keep_alive: How long Ollama keeps the model loaded after a request
            session: Optional externally managed aiohttp session
            timeout: Total request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.keep_alive = keep_alive
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        super().__init__(model, model_config, executor, sanitizer)

    @classmethod
    def from_config(cls, config: ProviderConfig, **kwargs: Any) -> "OllamaProvider":
        return cls(
            config.model,
            base_url=config.base_url or DEFAULT_BASE_URL,
            keep_alive=config.extra_config.get("keep_alive", DEFAULT_KEEP_ALIVE),
            **kwargs,
        )

    def get_name(self) -> str:
        return "ollama"

    def _build_loop(self) -> ToolUseLoop:
        return ToolUseLoop(
            OllamaToolUse(self, self._model),
            self.executor,
            self.model_config,
            sanitizer=self.sanitizer,
            default_max_rounds=DEFAULT_MAX_TOOL_ROUNDS,
        )

    def options(self) -> Dict[str, Any]:
        """Request options derived from the model config."""
        options: Dict[str, Any] = {"keep_alive": self.keep_alive}
        if self.model_config.temperature is not None:
            options["temperature"] = self.model_config.temperature
        if self.model_config.max_tokens is not None:
            options["num_ctx"] = self.model_config.max_tokens
        return options

    def chat_payload(
        self,
        model: str,
        messages: Sequence[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": list(messages),
            "stream": False,
            "options": self.options(),
        }
        if tools:
            payload["tools"] = tools
        return payload

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON payload to the Ollama API.

        Args:
            path: Endpoint path such as ``/api/chat``
            payload: JSON request body

        Returns:
            The decoded JSON response

        Raises:
            APIError: If the server answers with a non-200 status
            aiohttp.ClientError: If there is a network error
        """
        session = await self._get_session()
        start_time = time.time()
        async with session.post(f"{self.base_url}{path}", json=payload) as response:
            if response.status != 200:
                raise APIError(
                    f"Ollama API error: {response.status} - {await response.text()}",
                    provider_name=self.get_name(),
                )
            data = await response.json()
        logger.debug("Ollama request completed", extra={
            "path": path,
            "model": payload.get("model"),
            "duration_ms": int((time.time() - start_time) * 1000)
        })
        return data

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        payload: Dict[str, Any] = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": self.options(),
        }
        if system:
            payload["system"] = system
        try:
            data = await self.post("/api/generate", payload)
        except Exception as e:
            raise self.wrap_error(e) from e
        return data.get("response", "")

    async def chat(self, messages: Sequence[Message]) -> str:
        try:
            data = await self.post("/api/chat", self.chat_payload(self._model, messages))
        except Exception as e:
            raise self.wrap_error(e) from e
        return (data.get("message") or {}).get("content") or ""

    async def aclose(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
