"""OpenAI-compatible provider implementation.

Covers the OpenAI API itself and OpenRouter, which speaks the same chat
completions protocol. Tool results are sent back as one ``tool`` message per
call, addressed by ``tool_call_id``.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI

from agentrelay.core.errors import ConfigError
from agentrelay.core.executor import ToolExecutor
from agentrelay.core.loop import ModelTurn, ToolUseBackend, ToolUseLoop
from agentrelay.core.provider import Provider
from agentrelay.core.provider_config import DEFAULT_SITE_URL, OPENROUTER_BASE_URL, ProviderConfig
from agentrelay.core.sanitizer import ResultSanitizer
from agentrelay.types import Message, ModelConfig, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 20


class OpenAIToolUse(ToolUseBackend):
    """Tool-use strategy for the chat completions endpoint."""

    per_call_messages = True

    def __init__(self, provider: "OpenAIProvider", model: str) -> None:
        self._provider = provider
        self.model = model
        self.provider_label = provider.display_name

    async def send_turn(
        self,
        messages: List[Message],
        tools: List[Dict[str, Any]],
    ) -> Optional[ModelTurn]:
        request: Dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"
        request.update(self._provider.options())

        completion = await self._provider.client.chat.completions.create(**request)
        if not completion.choices:
            return None
        choice = completion.choices[0]
        message = choice.message
        if message is None:
            return None

        calls: List[ToolCall] = []
        for tool_call in message.tool_calls or []:
            calls.append({
                "id": tool_call.id,
                "type": "function",
                "function": {
                    "name": tool_call.function.name,
                    "arguments": tool_call.function.arguments,
                },
            })
        finish_reason = choice.finish_reason if isinstance(choice.finish_reason, str) else None
        return ModelTurn(
            content=message.content,
            tool_calls=calls,
            finish_reason=finish_reason,
            raw=message,
        )

    async def send_plain(self, messages: List[Message]) -> str:
        completion = await self._provider.client.chat.completions.create(
            model=self.model,
            messages=[_without_tool_calls(message) for message in messages],
            **self._provider.options(),
        )
        if not completion.choices or completion.choices[0].message is None:
            return ""
        return completion.choices[0].message.content or ""

    def assistant_message(self, turn: ModelTurn, calls: List[ToolCall]) -> Message:
        tool_calls = []
        for call in calls:
            arguments = call["function"].get("arguments")
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments if arguments is not None else {})
            tool_calls.append({
                "id": call["id"],
                "type": "function",
                "function": {"name": call["function"]["name"], "arguments": arguments},
            })
        return {"role": "assistant", "content": turn.content, "tool_calls": tool_calls}


def _without_tool_calls(message: Message) -> Message:
    if "tool_calls" not in message:
        return message
    cleaned = {key: value for key, value in message.items() if key != "tool_calls"}
    if cleaned.get("content") is None:
        cleaned["content"] = ""
    return cleaned


class OpenAIProvider(Provider):
    """Provider for any OpenAI-compatible chat completions API."""

    display_name = "OpenAI"

    def __init__(
        self,
        model: str,
        model_config: Optional[ModelConfig] = None,
        executor: Optional[ToolExecutor] = None,
        sanitizer: Optional[ResultSanitizer] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Initialize the provider.

        Args:
            model: Model identifier
            model_config: Sampling and tool-loop options
            executor: Tool executor used by the tool-use loop
            sanitizer: Result sanitizer used by the tool-use loop
            api_key: API key; the SDK falls back to OPENAI_API_KEY
            base_url: Optional API base URL
            default_headers: Extra headers sent with every request

        Raises:
            ConfigError: If the client cannot be created
        """
        try:
            self.client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                default_headers=default_headers,
            )
        except Exception as e:
            raise ConfigError(
                f"Failed to initialize {self.display_name} client: {e}",
                provider_name=self.get_name(),
            ) from e
        super().__init__(model, model_config, executor, sanitizer)

    @classmethod
    def from_config(cls, config: ProviderConfig, **kwargs: Any) -> "OpenAIProvider":
        return cls(
            config.model,
            api_key=config.api_key,
            base_url=config.base_url,
            default_headers=config.extra_config.get("default_headers"),
            **kwargs,
        )

    def get_name(self) -> str:
        return "openai"

    def _build_loop(self) -> ToolUseLoop:
        return ToolUseLoop(
            OpenAIToolUse(self, self._model),
            self.executor,
            self.model_config,
            sanitizer=self.sanitizer,
            default_max_rounds=DEFAULT_MAX_TOOL_ROUNDS,
        )

    def options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {}
        if self.model_config.temperature is not None:
            options["temperature"] = self.model_config.temperature
        if self.model_config.max_tokens is not None:
            options["max_tokens"] = self.model_config.max_tokens
        return options

    async def _complete(self, messages: Sequence[Message]) -> str:
        try:
            completion = await self.client.chat.completions.create(
                model=self._model,
                messages=list(messages),
                **self.options(),
            )
        except Exception as e:
            raise self.wrap_error(e) from e
        if not completion.choices or completion.choices[0].message is None:
            raise self.wrap_error(RuntimeError(f"No response from {self.display_name} API"))
        return completion.choices[0].message.content or ""

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        return await self._complete(self.build_messages(prompt, system))

    async def chat(self, messages: Sequence[Message]) -> str:
        return await self._complete(self.prepare_messages(messages))

    def prepare_messages(self, messages: Sequence[Message]) -> List[Message]:
        """Drop incoming tool messages; their matching calls are not in the transcript."""
        return [message for message in messages if message.get("role") != "tool"]

    async def aclose(self) -> None:
        await self.client.close()


class OpenRouterProvider(OpenAIProvider):
    """OpenAI-compatible provider preconfigured for OpenRouter."""

    display_name = "OpenRouter"

    def __init__(
        self,
        model: str,
        model_config: Optional[ModelConfig] = None,
        executor: Optional[ToolExecutor] = None,
        sanitizer: Optional[ResultSanitizer] = None,
        api_key: Optional[str] = None,
        base_url: str = OPENROUTER_BASE_URL,
        default_headers: Optional[Dict[str, str]] = None,
    ) -> None:
        api_key = api_key or os.environ.get("OPENROUTER_API_KEY")
        if not api_key:
            raise ConfigError(
                "OpenRouter API key is required. Set OPENROUTER_API_KEY environment variable.",
                provider_name="openrouter",
            )
        if default_headers is None:
            default_headers = {
                "HTTP-Referer": os.environ.get("YOUR_SITE_URL", DEFAULT_SITE_URL),
                "X-Title": os.environ.get("YOUR_SITE_NAME", "AgentForce ADK"),
            }
        super().__init__(
            model,
            model_config,
            executor,
            sanitizer,
            api_key=api_key,
            base_url=base_url,
            default_headers=default_headers,
        )

    @classmethod
    def from_config(cls, config: ProviderConfig, **kwargs: Any) -> "OpenRouterProvider":
        return cls(
            config.model,
            api_key=config.api_key,
            base_url=config.base_url or OPENROUTER_BASE_URL,
            default_headers=config.extra_config.get("default_headers"),
            **kwargs,
        )

    def get_name(self) -> str:
        return "openrouter"
