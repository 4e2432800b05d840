"""Type definitions for the agentrelay framework.

This module contains the wire-level shapes shared by the registry, the
tool-use loop and the provider adapters: tool definitions, tool
implementations, conversation messages, tool-call intents and the per-model
configuration.
"""

from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    TypedDict,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field


class FunctionSpec(BaseModel):
    """The ``function`` block of a tool definition.

    Attributes:
        name: Unique tool name
        description: Human-readable description shown to the model
        parameters: JSON schema describing the tool arguments
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class ToolDefinition(BaseModel):
    """Declarative description of a tool as sent to a model.

    Serializes to ``{"type": "function", "function": {...}}``.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["function"] = "function"
    function: FunctionSpec

    @property
    def name(self) -> str:
        return self.function.name

    @classmethod
    def create(
        cls,
        name: str,
        description: str = "",
        parameters: Optional[Dict[str, Any]] = None,
    ) -> "ToolDefinition":
        """Build a definition from its parts."""
        spec = {"name": name, "description": description}
        if parameters is not None:
            spec["parameters"] = parameters
        return cls(function=FunctionSpec(**spec))

    def to_dict(self) -> Dict[str, Any]:
        """Return the wire representation."""
        return self.model_dump()


# Type aliases for tool results and handlers
ToolResult = Union[str, int, float, bool, dict, list, None]

# Support both sync and async handlers
SyncToolHandler = Callable[[Dict[str, Any]], ToolResult]
AsyncToolHandler = Callable[[Dict[str, Any]], Awaitable[ToolResult]]
ToolHandler = Union[SyncToolHandler, AsyncToolHandler]


class ToolImplementation(BaseModel):
    """A tool definition paired with the callable that executes it."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    definition: ToolDefinition
    execute: Callable[..., Any]

    @property
    def name(self) -> str:
        return self.definition.name


class FunctionCall(TypedDict, total=False):
    """Function payload of a tool call; ``arguments`` may be a JSON string."""

    name: str
    arguments: Union[Dict[str, Any], str]


class ToolCall(TypedDict, total=False):
    """A tool-call intent emitted by a model.

    Attributes:
        id: Identifier used to address the matching tool message
        type: Always "function" when present
        function: Function name and arguments
    """

    id: str
    type: str
    function: FunctionCall


class Message(TypedDict, total=False):
    """A message in a conversation.

    Attributes:
        role: The role of the message sender
        content: The message content (can be None for tool calls)
        tool_calls: Tool calls requested by an assistant message
        tool_call_id: ID of the tool call a tool message responds to
    """

    role: Literal["system", "user", "assistant", "tool"]
    content: Optional[str]
    tool_calls: Optional[List[ToolCall]]
    tool_call_id: Optional[str]


class ModelConfig(BaseModel):
    """Per-model tuning applied by a provider adapter.

    Attributes:
        temperature: Sampling temperature
        max_tokens: Upper bound on generated tokens (context size for Ollama)
        max_tool_rounds: Tool-calling round budget; None uses the adapter default
        request_delay: Seconds to wait between consecutive model calls
        append_tool_results: Append the last round's raw tool output to the answer
    """

    model_config = ConfigDict(frozen=True)

    temperature: Optional[float] = Field(None, ge=0)
    max_tokens: Optional[int] = Field(None, gt=0)
    max_tool_rounds: Optional[int] = Field(None, gt=0)
    request_delay: float = Field(0, ge=0)
    append_tool_results: bool = False
