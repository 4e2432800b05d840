from agentrelay.types.models import (
    FunctionSpec,
    ToolDefinition,
    ToolImplementation,
    ToolResult,
    ToolHandler,
    ToolCall,
    Message,
    ModelConfig,
)

__all__ = [
    "FunctionSpec",
    "ToolDefinition",
    "ToolImplementation",
    "ToolResult",
    "ToolHandler",
    "ToolCall",
    "Message",
    "ModelConfig",
]
