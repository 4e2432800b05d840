"""Core provider interface for the agentrelay framework."""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from agentrelay.core.errors import ProviderError
from agentrelay.core.executor import ToolExecutor
from agentrelay.core.loop import ToolUseLoop
from agentrelay.core.provider_config import ProviderConfig
from agentrelay.core.sanitizer import ResultSanitizer
from agentrelay.types import Message, ModelConfig, ToolDefinition

_module_logger = logging.getLogger(__name__)


class Provider(ABC):
    """Base interface for LLM providers.

    A provider exposes four independently callable capabilities. The plain
    ``generate`` and ``chat`` calls raise ``ProviderError`` on failure; the
    tool-enabled calls never raise and report failures as a string starting
    with ``"Error: "``.

    Subclasses implement ``_build_loop`` so ``set_model`` can rebind the
    tool-use engine to the new model.
    """

    #: Name used in error strings, e.g. "Ollama"
    display_name: str = "Provider"

    def __init__(
        self,
        model: str,
        model_config: Optional[ModelConfig] = None,
        executor: Optional[ToolExecutor] = None,
        sanitizer: Optional[ResultSanitizer] = None,
    ) -> None:
        self._model = model
        self.model_config = model_config or ModelConfig()
        self.executor = executor or ToolExecutor()
        self.sanitizer = sanitizer or ResultSanitizer()
        self._loop = self._build_loop()

    @classmethod
    def from_config(cls, config: ProviderConfig, **kwargs: Any) -> "Provider":
        """Create a provider from a ProviderConfig."""
        return cls(config.model, **kwargs)

    @abstractmethod
    def get_name(self) -> str:
        """Get the short name of the provider (e.g. 'ollama')."""
        pass

    @abstractmethod
    def _build_loop(self) -> ToolUseLoop:
        """Create the tool-use engine bound to the current model."""
        pass

    @abstractmethod
    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """Single-shot completion without tools.

        Raises:
            ProviderError: If the backend call fails
        """
        pass

    @abstractmethod
    async def chat(self, messages: Sequence[Message]) -> str:
        """Multi-turn completion without tools.

        Raises:
            ProviderError: If the backend call fails
        """
        pass

    @property
    def loop(self) -> ToolUseLoop:
        return self._loop

    def get_model(self) -> str:
        return self._model

    def set_model(self, model: str) -> None:
        """Switch models and rebuild the tool-use engine for it."""
        self._model = model
        self._loop = self._build_loop()

    def error_string(self, error: Exception) -> str:
        """Format a failure for the tool-enabled entry points."""
        message = error.args[0] if isinstance(error, ProviderError) and error.args else error
        return f"Error: {self.display_name} provider error - {message}"

    def wrap_error(self, error: Exception) -> ProviderError:
        """Wrap a transport failure for the plain entry points."""
        if isinstance(error, ProviderError):
            return error
        return ProviderError(f"{self.display_name} provider error: {error}", provider_name=self.get_name())

    def build_messages(self, prompt: str, system: Optional[str] = None) -> List[Message]:
        messages: List[Message] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def generate_with_tools(
        self,
        prompt: str,
        tools: Sequence[ToolDefinition],
        system: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
        caller: Any = None,
    ) -> str:
        """Answer a prompt, letting the model call tools.

        Args:
            prompt: User prompt
            tools: Tool definitions offered to the model
            system: Optional system prompt
            logger: Optional logger for loop traces
            caller: Context object for MCP tool execution

        Returns:
            The final answer, or an ``"Error: ..."`` string on failure
        """
        return await self.chat_with_tools(
            self.build_messages(prompt, system), tools, logger=logger, caller=caller
        )

    async def chat_with_tools(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        logger: Optional[logging.Logger] = None,
        caller: Any = None,
    ) -> str:
        """Continue a conversation, letting the model call tools.

        Returns:
            The final answer, or an ``"Error: ..."`` string on failure
        """
        try:
            return await self._loop.run(
                self.prepare_messages(messages), tools, logger=logger, caller=caller
            )
        except Exception as e:
            _module_logger.error("Tool-enabled request failed", extra={
                "provider": self.get_name(),
                "model": self._model,
                "error": str(e)
            })
            return self.error_string(e)

    def prepare_messages(self, messages: Sequence[Message]) -> List[Message]:
        """Adjust an incoming transcript before it seeds the loop."""
        return list(messages)

    async def aclose(self) -> None:
        """Release network or process resources held by the provider."""
        return None
