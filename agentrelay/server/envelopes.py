"""Request validation and response envelopes for the HTTP glue.

Incoming bodies follow the Ollama (``/api/generate``, ``/api/chat``) and
OpenAI (``/v1/chat/completions``) wire formats. Validation failures raise
``InvalidRequestError`` with a message suitable for the client.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from agentrelay.core.errors import InvalidRequestError

DEFAULT_PROVIDER = "ollama"

OPENAI_ROLES = ("system", "user", "assistant", "tool")
OLLAMA_ROLES = ("system", "user", "assistant")

CONTINUE_INSTRUCTION = (
    "\nPlease respond as the Assistant, taking into account the full conversation history above."
)

_SPEAKERS = {"system": "System", "user": "Human", "assistant": "Assistant", "tool": "Tool"}

_TIMING_FIELDS = {
    "total_duration": 0,
    "load_duration": 0,
    "prompt_eval_count": 0,
    "prompt_eval_duration": 0,
    "eval_count": 0,
    "eval_duration": 0,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_object(data: Any) -> None:
    if not isinstance(data, dict):
        raise InvalidRequestError("Request body must be a valid JSON object")


def _require_string(data: Dict[str, Any], field: str) -> None:
    value = data.get(field)
    if not value or not isinstance(value, str):
        raise InvalidRequestError(f'Missing or invalid "{field}" field. Must be a non-empty string')


def _check_optional(data: Dict[str, Any], field: str, kind: type, label: str) -> None:
    if field in data and data[field] is not None and not isinstance(data[field], kind):
        raise InvalidRequestError(f'Invalid "{field}" field. Must be a {label} if provided')


def _check_range(data: Dict[str, Any], field: str, low: float, high: float) -> None:
    if field not in data or data[field] is None:
        return
    value = data[field]
    if not _is_number(value) or value < low or value > high:
        raise InvalidRequestError(f'Invalid "{field}" field. Must be a number between {low} and {high}')


def _validate_content_part(part: Any, index: int) -> None:
    if not isinstance(part, dict):
        raise InvalidRequestError(f"Message at index {index} has an invalid content part")
    kind = part.get("type")
    if kind == "text":
        if not isinstance(part.get("text"), str):
            raise InvalidRequestError(f'Message at index {index} has a text part without "text"')
    elif kind == "image_url":
        image_url = part.get("image_url")
        if not isinstance(image_url, dict) or not isinstance(image_url.get("url"), str):
            raise InvalidRequestError(f'Message at index {index} has an image part without "image_url.url"')
    else:
        raise InvalidRequestError(
            f'Message at index {index} has invalid content part type "{kind}". Must be "text" or "image_url"'
        )


def validate_openai_chat_request(data: Any) -> Dict[str, Any]:
    """Validate an OpenAI chat completion request body.

    Returns:
        The validated body

    Raises:
        InvalidRequestError: On the first invalid field
    """
    _require_object(data)
    _require_string(data, "model")

    messages = data.get("messages")
    if not isinstance(messages, list):
        raise InvalidRequestError('Missing or invalid "messages" field. Must be an array')
    if not messages:
        raise InvalidRequestError("Messages array cannot be empty")

    for i, message in enumerate(messages):
        if not isinstance(message, dict):
            raise InvalidRequestError(f"Message at index {i} must be a valid object")
        role = message.get("role")
        if not role or not isinstance(role, str):
            raise InvalidRequestError(f'Message at index {i} missing or invalid "role" field')
        if role not in OPENAI_ROLES:
            raise InvalidRequestError(
                f'Message at index {i} has invalid role "{role}". '
                'Must be "system", "user", "assistant", or "tool"'
            )

        content = message.get("content")
        if isinstance(content, list):
            if not content:
                raise InvalidRequestError(f"Message at index {i} has an empty content array")
            for part in content:
                _validate_content_part(part, i)
        elif not content or not isinstance(content, str):
            raise InvalidRequestError(
                f'Message at index {i} missing or invalid "content" field. '
                "Must be a non-empty string or an array of content parts"
            )

        for field in ("name", "tool_call_id"):
            if field in message and not isinstance(message[field], str):
                raise InvalidRequestError(f'Message at index {i} has invalid "{field}" field. Must be a string')
        if "tool_calls" in message and not isinstance(message["tool_calls"], list):
            raise InvalidRequestError(f'Message at index {i} has invalid "tool_calls" field. Must be an array')

    _check_range(data, "temperature", 0, 2)
    _check_range(data, "top_p", 0, 1)
    _check_range(data, "presence_penalty", -2, 2)
    _check_range(data, "frequency_penalty", -2, 2)

    max_tokens = data.get("max_tokens")
    if max_tokens is not None and (not isinstance(max_tokens, int) or isinstance(max_tokens, bool) or max_tokens < 1):
        raise InvalidRequestError('Invalid "max_tokens" field. Must be a positive integer')
    n = data.get("n")
    if n is not None and (not isinstance(n, int) or isinstance(n, bool) or not 1 <= n <= 128):
        raise InvalidRequestError('Invalid "n" field. Must be an integer between 1 and 128')

    _check_optional(data, "stream", bool, "boolean")
    _check_optional(data, "user", str, "string")
    return data


def validate_ollama_generate_request(data: Any) -> Dict[str, Any]:
    """Validate an Ollama ``/api/generate`` request body."""
    _require_object(data)
    _require_string(data, "model")
    _require_string(data, "prompt")
    _check_optional(data, "system", str, "string")
    _check_optional(data, "format", str, "string")
    _check_optional(data, "stream", bool, "boolean")
    return data


def validate_ollama_chat_request(data: Any) -> Dict[str, Any]:
    """Validate an Ollama ``/api/chat`` request body."""
    _require_object(data)
    _require_string(data, "model")

    messages = data.get("messages")
    if not isinstance(messages, list):
        raise InvalidRequestError('Missing or invalid "messages" field. Must be an array')
    if not messages:
        raise InvalidRequestError("Messages array cannot be empty")

    for i, message in enumerate(messages):
        if not isinstance(message, dict):
            raise InvalidRequestError(f"Message at index {i} must be a valid object")
        role = message.get("role")
        if not role or not isinstance(role, str):
            raise InvalidRequestError(f'Message at index {i} missing or invalid "role" field')
        if role not in OLLAMA_ROLES:
            raise InvalidRequestError(
                f'Message at index {i} has invalid role "{role}". Must be "system", "user", or "assistant"'
            )
        content = message.get("content")
        if not content or not isinstance(content, str):
            raise InvalidRequestError(
                f'Message at index {i} missing or invalid "content" field. Must be a non-empty string'
            )
        if "images" in message and not isinstance(message["images"], list):
            raise InvalidRequestError(
                f'Message at index {i} has invalid "images" field. Must be an array if provided'
            )

    _check_optional(data, "format", str, "string")
    _check_optional(data, "stream", bool, "boolean")
    return data


def extract_text_content(content: Any) -> str:
    """Reduce string or multi-part message content to plain text."""
    if isinstance(content, str):
        return content
    parts: List[str] = []
    for part in content or []:
        if part.get("type") == "text":
            parts.append(part.get("text", ""))
        elif part.get("type") == "image_url":
            parts.append("[Image provided]")
    return " ".join(parts)


def format_conversation_context(messages: List[Dict[str, Any]]) -> str:
    """Flatten a chat transcript into a single prompt.

    A lone user message is returned as-is; longer transcripts become
    ``Speaker: text`` lines followed by an instruction to continue as the
    assistant.

    Raises:
        InvalidRequestError: If the transcript is empty or has no user message
    """
    if not messages:
        raise InvalidRequestError("Messages array cannot be empty")
    if not any(message.get("role") == "user" for message in messages):
        raise InvalidRequestError("No user message found in messages array")

    if len(messages) == 1:
        return extract_text_content(messages[0].get("content"))

    lines = [
        f"{_SPEAKERS[message['role']]}: {extract_text_content(message.get('content'))}"
        for message in messages
        if message.get("role") in _SPEAKERS
    ]
    lines.append(CONTINUE_INSTRUCTION)
    return "\n".join(lines)


def parse_model_parameter(value: str) -> Tuple[str, str]:
    """Split a ``provider/model`` string.

    Models without a provider prefix are routed to Ollama. Only the first
    slash separates the provider, so ``openrouter/openai/gpt-4o`` keeps the
    vendor path in the model name.

    Raises:
        InvalidRequestError: If either part is empty
    """
    if not value or not isinstance(value, str):
        raise InvalidRequestError("Model parameter must be a non-empty string")
    value = value.strip()
    if "/" not in value:
        return DEFAULT_PROVIDER, value
    provider, model = value.split("/", 1)
    if not provider.strip() or not model.strip():
        raise InvalidRequestError("Invalid model format. Expected 'provider/model' (e.g., 'ollama/gemma3:12b')")
    return provider.strip(), model.strip()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def ollama_generate_response(model: str, response: str) -> Dict[str, Any]:
    return {
        "model": model,
        "created_at": _timestamp(),
        "response": response,
        "done": True,
        "context": [],
        **_TIMING_FIELDS,
    }


def ollama_chat_response(model: str, response: str) -> Dict[str, Any]:
    return {
        "model": model,
        "created_at": _timestamp(),
        "message": {"role": "assistant", "content": response},
        "done": True,
        **_TIMING_FIELDS,
    }


def openai_chat_response(model: str, prompt: str, response: str) -> Dict[str, Any]:
    """Build a ``chat.completion`` object with rough token estimates."""
    now = time.time()
    return {
        "id": f"chatcmpl-{int(now * 1000)}",
        "object": "chat.completion",
        "created": int(now),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": response},
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": len(prompt) / 4,
            "completion_tokens": len(response) / 4,
            "total_tokens": (len(prompt) + len(response)) / 4,
        },
    }


def error_body(error: str, message: str) -> Dict[str, str]:
    return {"error": error, "message": message}


def models_response(current_model: str, current_provider: str) -> Dict[str, Any]:
    """List the served model first, followed by well-known aliases."""
    entries = [
        (current_model or "agentrelay-default", current_provider or "agentrelay", int(time.time())),
        ("gpt-4", "openai", 1687882411),
        ("gpt-3.5-turbo", "openai", 1677610602),
    ]
    return {
        "object": "list",
        "data": [
            {
                "id": model_id,
                "object": "model",
                "created": created,
                "owned_by": owner,
                "permission": [],
                "root": model_id,
                "parent": None,
            }
            for model_id, owner, created in entries
        ],
    }
