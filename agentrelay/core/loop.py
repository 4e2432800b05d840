"""Tool-use loop engine shared by every provider adapter.

The engine drives a bounded multi-round conversation: it asks the backend for
a turn, extracts tool-call intents, executes them through the ToolExecutor,
appends the results to the transcript and asks again, until the model answers
without requesting a tool or the round budget runs out. Backends differ only
in how a turn is sent and parsed, which is captured by ``ToolUseBackend``.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from agentrelay.core.errors import ProviderError
from agentrelay.core.executor import ToolExecutor
from agentrelay.core.extraction import (
    ArgumentParseError,
    ensure_call_id,
    extract_tool_calls,
    normalize_arguments,
)
from agentrelay.core.sanitizer import ResultSanitizer
from agentrelay.types import Message, ModelConfig, ToolCall, ToolDefinition
from agentrelay.utils.log_utils import resolve_logger, safe_log, truncate

_module_logger = logging.getLogger(__name__)

VALID_FINISH_REASONS = frozenset({"stop", "length", "tool_calls", "content_filter", "function_call"})

DEFAULT_MAX_TOOL_ROUNDS = 10


@dataclass
class ModelTurn:
    """One model response as seen by the loop.

    Attributes:
        content: Text content of the response
        tool_calls: Native structured tool calls, if the backend reports any
        finish_reason: Completion reason; None when the backend has no notion of one
        raw: Backend-specific message object, kept for transcript reconstruction
    """

    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None
    raw: Any = None


@dataclass
class ToolOutcome:
    """Result of executing one tool-call intent."""

    call: ToolCall
    arguments: Any
    result: Any = None
    error: Optional[str] = None

    @property
    def name(self) -> str:
        return self.call.get("function", {}).get("name", "")

    @property
    def failed(self) -> bool:
        return self.error is not None


class ToolUseBackend(ABC):
    """Per-provider strategy plugged into the ToolUseLoop.

    Attributes:
        provider_label: Human-readable provider name used in error messages
        per_call_messages: True when the backend addresses tool results by
            ``tool_call_id``, one tool message per call; False merges all of a
            round's results into a single tool message
    """

    provider_label: str = "Provider"
    per_call_messages: bool = False

    @abstractmethod
    async def send_turn(
        self,
        messages: List[Message],
        tools: List[Dict[str, Any]],
    ) -> Optional[ModelTurn]:
        """Send the transcript plus tool definitions and return the model turn.

        Returns:
            The parsed turn, or None when the response carried no message
        """
        pass

    @abstractmethod
    async def send_plain(self, messages: List[Message]) -> str:
        """Send the transcript without tools and return the text content."""
        pass

    def extract_tool_calls(self, turn: ModelTurn) -> List[ToolCall]:
        """Return the tool-call intents in ``turn``, in model order."""
        return extract_tool_calls(turn.tool_calls, turn.content)

    def assistant_message(self, turn: ModelTurn, calls: List[ToolCall]) -> Message:
        """Build the assistant message recorded before the round's tool results."""
        return {"role": "assistant", "content": turn.content or "", "tool_calls": calls}

    def finalize(self, content: str) -> str:
        """Post-process the final answer text."""
        return content


SleepFunc = Callable[[float], Awaitable[Any]]


class ToolUseLoop:
    """Bounded tool-calling state machine.

    Example:
        ```python
        loop = ToolUseLoop(backend, executor, ModelConfig(max_tool_rounds=5))
        answer = await loop.run(
            [{"role": "user", "content": "list files in /tmp"}],
            [fs_list_definition],
            caller=agent,
        )
        ```
    """

    def __init__(
        self,
        backend: ToolUseBackend,
        executor: ToolExecutor,
        model_config: Optional[ModelConfig] = None,
        sanitizer: Optional[ResultSanitizer] = None,
        default_max_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        """Initialize the loop.

        Args:
            backend: Provider strategy used to talk to the model
            executor: Executor used for every tool-call intent
            model_config: Round budget, throttling and answer options
            sanitizer: Sanitizer applied to tool results before they re-enter context
            default_max_rounds: Round budget when the config leaves it unset
            sleep: Awaitable used for the inter-request delay
        """
        self.backend = backend
        self.executor = executor
        self.model_config = model_config or ModelConfig()
        self.sanitizer = sanitizer or ResultSanitizer()
        self.max_tool_rounds = self.model_config.max_tool_rounds or default_max_rounds
        self._sleep = sleep or asyncio.sleep

    async def run(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        logger: Optional[logging.Logger] = None,
        caller: Any = None,
    ) -> str:
        """Run the loop until a final answer is produced.

        Args:
            messages: Seed transcript; it is copied, never mutated
            tools: Tool definitions offered to the model
            logger: Optional logger for loop traces
            caller: Context object for MCP tool execution

        Returns:
            The final answer text

        Raises:
            ProviderError: If the backend returns no message or an unknown
                finish reason, or the transport fails
        """
        log = resolve_logger(logger, _module_logger)
        conversation: List[Message] = list(messages)
        tool_dicts = [tool.to_dict() for tool in tools]
        last_blocks: List[str] = []
        calls_made = 0
        start_time = time.time()

        for round_index in range(self.max_tool_rounds):
            await self._throttle(calls_made, log)
            calls_made += 1

            turn = await self.backend.send_turn(conversation, tool_dicts)
            self._check_turn(turn)

            calls = self.backend.extract_tool_calls(turn)
            if not calls:
                safe_log(log, logging.DEBUG, "Final response generated",
                         provider=self.backend.provider_label,
                         round=round_index + 1,
                         content_preview=truncate(turn.content or ""),
                         duration_ms=int((time.time() - start_time) * 1000))
                return self._final_answer(turn.content or "", last_blocks)

            if self.backend.per_call_messages:
                calls = [ensure_call_id(call) for call in calls]

            safe_log(log, logging.DEBUG, "Model requested tool calls",
                     provider=self.backend.provider_label,
                     round=round_index + 1,
                     tool_names=[call.get("function", {}).get("name") for call in calls])

            outcomes = [await self._execute(call, log, caller) for call in calls]
            blocks = [format_result_block(outcome) for outcome in outcomes]

            conversation.append(self.backend.assistant_message(turn, calls))
            conversation.extend(self._tool_messages(outcomes, blocks))
            last_blocks = blocks

        safe_log(log, logging.WARNING, "Max tool rounds reached, falling back to plain response",
                 provider=self.backend.provider_label,
                 max_tool_rounds=self.max_tool_rounds)
        fallback = [message for message in conversation if message.get("role") != "tool"]
        await self._throttle(calls_made, log)
        return await self.backend.send_plain(fallback)

    async def _throttle(self, calls_made: int, log: logging.Logger) -> None:
        delay = self.model_config.request_delay
        if calls_made == 0 or delay <= 0:
            return
        safe_log(log, logging.DEBUG, "Applying request delay", delay_seconds=delay)
        await self._sleep(delay)

    def _check_turn(self, turn: Optional[ModelTurn]) -> None:
        label = self.backend.provider_label
        if turn is None:
            raise ProviderError(f"No response from {label} API", provider_name=label)
        if turn.finish_reason is not None and turn.finish_reason not in VALID_FINISH_REASONS:
            raise ProviderError(
                f"Unexpected finish reason from {label} API: {turn.finish_reason}",
                provider_name=label,
            )

    async def _execute(self, call: ToolCall, log: logging.Logger, caller: Any) -> ToolOutcome:
        function = call.get("function", {})
        name = function.get("name", "")
        raw_arguments = function.get("arguments")
        try:
            arguments = normalize_arguments(raw_arguments)
        except ArgumentParseError as e:
            safe_log(log, logging.ERROR, "Failed to parse tool arguments",
                     tool_name=name, error=str(e))
            return ToolOutcome(call=call, arguments=raw_arguments, error=str(e))

        safe_log(log, logging.DEBUG, "Executing tool", tool_name=name, tool_args=arguments)
        result = await self.executor.execute_tool(name, arguments, caller=caller, logger=log)
        result = self.sanitizer.sanitize(result)

        if isinstance(result, dict) and set(result) == {"error"}:
            return ToolOutcome(call=call, arguments=arguments, error=str(result["error"]))
        return ToolOutcome(call=call, arguments=arguments, result=result)

    def _tool_messages(self, outcomes: List[ToolOutcome], blocks: List[str]) -> List[Message]:
        if not self.backend.per_call_messages:
            return [{"role": "tool", "content": "\n\n".join(blocks)}]
        messages: List[Message] = []
        for outcome in outcomes:
            if outcome.failed:
                content = f"Error: {outcome.error}"
            else:
                content = _dumps(outcome.result)
            messages.append({
                "role": "tool",
                "tool_call_id": outcome.call["id"],
                "content": content,
            })
        return messages

    def _final_answer(self, content: str, last_blocks: List[str]) -> str:
        content = self.backend.finalize(content)
        if self.model_config.append_tool_results and last_blocks:
            return f"{content}\n\n---\nRaw tool results:\n" + "\n\n".join(last_blocks)
        return content


def format_result_block(outcome: ToolOutcome) -> str:
    """Render one tool outcome as the text block shown to the model."""
    call_id = outcome.call.get("id")
    label = f"{outcome.name} ({call_id})" if call_id else outcome.name
    arguments = outcome.arguments if isinstance(outcome.arguments, str) else _dumps(outcome.arguments)
    if outcome.failed:
        return f"Tool {label} args: {arguments}\nError: {outcome.error}"
    return f"Tool {label} args: {arguments}\nResult: {_dumps(outcome.result, indent=2)}"


def _dumps(value: Any, indent: Optional[int] = None) -> str:
    return json.dumps(value, indent=indent, default=str, ensure_ascii=False)
