"""Tool-call extraction for model responses.

Extraction runs in two stages. The native structured ``tool_calls`` field is
used when the backend supplies one; otherwise the text content is mined for a
single inlined call. Fence stripping is kept separate from JSON validation so
each step can be exercised on its own.
"""

import json
import logging
import re
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from agentrelay.types import ToolCall

logger = logging.getLogger(__name__)

# ```json / ``` opener at the very start, optional closing fence at the very end
_LEADING_FENCE = re.compile(r"^\s*```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?[ \t]*```\s*$")

DEFAULT_KEY_PAIRS: Tuple[Tuple[str, str], ...] = (("name", "arguments"),)


class ArgumentParseError(ValueError):
    """Raised when tool-call arguments cannot be turned into a dict."""
    pass


def strip_code_fence(text: str) -> str:
    """Remove a leading and/or trailing Markdown code fence.

    Handles ```json and bare ``` openers, and openers whose closing fence is
    missing. Text without fences is returned stripped of surrounding
    whitespace.

    Args:
        text: Raw model output

    Returns:
        The fenced body, or the trimmed input when no fence is present
    """
    body = text.strip()
    if body.startswith("```"):
        body = _LEADING_FENCE.sub("", body, count=1)
    if body.endswith("```"):
        body = _TRAILING_FENCE.sub("", body, count=1)
    return body.strip()


def parse_tool_call_object(
    data: Any,
    key_pairs: Sequence[Tuple[str, str]] = DEFAULT_KEY_PAIRS,
) -> Optional[ToolCall]:
    """Turn a decoded JSON value into a tool call if it has the expected keys.

    Args:
        data: Decoded JSON value
        key_pairs: Accepted (name key, arguments key) pairs, tried in order

    Returns:
        A tool call without an id, or None when the keys are missing
    """
    if not isinstance(data, dict):
        return None
    for name_key, args_key in key_pairs:
        name = data.get(name_key)
        if isinstance(name, str) and name and args_key in data and data[args_key] is not None:
            return {"function": {"name": name, "arguments": data[args_key]}}
    return None


def parse_inline_tool_call(
    text: Optional[str],
    key_pairs: Sequence[Tuple[str, str]] = DEFAULT_KEY_PAIRS,
) -> Optional[ToolCall]:
    """Parse a response whose whole text is a single JSON tool call.

    Args:
        text: Model text content, possibly wrapped in a code fence
        key_pairs: Accepted (name key, arguments key) pairs

    Returns:
        The synthesized tool call, or None if the text is not one
    """
    if not text:
        return None
    body = strip_code_fence(text)
    if not body.startswith("{"):
        return None
    try:
        data = json.loads(body)
    except ValueError:
        return None
    return parse_tool_call_object(data, key_pairs)


def iter_json_objects(text: str) -> Iterable[Tuple[int, int]]:
    """Yield (start, end) spans of brace-balanced regions in ``text``.

    String literals are honoured so braces inside quoted values do not
    unbalance the scan.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"' and depth > 0:
            in_string = True
        elif char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield start, index + 1


def find_embedded_tool_call(
    text: Optional[str],
    key_pairs: Sequence[Tuple[str, str]] = DEFAULT_KEY_PAIRS,
) -> Optional[Tuple[ToolCall, Tuple[int, int]]]:
    """Find the first JSON tool call embedded anywhere in free text.

    Args:
        text: Model text content
        key_pairs: Accepted (name key, arguments key) pairs

    Returns:
        The tool call and its (start, end) span, or None
    """
    if not text:
        return None
    for start, end in iter_json_objects(text):
        try:
            data = json.loads(text[start:end])
        except ValueError:
            continue
        call = parse_tool_call_object(data, key_pairs)
        if call is not None:
            return call, (start, end)
    return None


def extract_tool_calls(
    native_calls: Optional[List[ToolCall]],
    content: Optional[str],
) -> List[ToolCall]:
    """Two-stage extraction: native field first, then inline text.

    Args:
        native_calls: Structured tool calls reported by the backend
        content: Text content of the same response

    Returns:
        Tool calls in the order the model emitted them
    """
    if native_calls:
        return list(native_calls)
    inline = parse_inline_tool_call(content)
    if inline is not None:
        logger.debug("Parsed tool call from content", extra={
            "tool_name": inline["function"]["name"]
        })
        return [inline]
    return []


def normalize_arguments(arguments: Any) -> Dict[str, Any]:
    """Return tool-call arguments as a dict.

    Args:
        arguments: A dict or a JSON-encoded object string

    Returns:
        The argument dict

    Raises:
        ArgumentParseError: If the arguments are absent or not an object
    """
    if arguments is None:
        raise ArgumentParseError("Missing tool arguments")
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str):
        if not arguments.strip():
            raise ArgumentParseError("Missing tool arguments")
        try:
            parsed = json.loads(arguments)
        except ValueError as e:
            raise ArgumentParseError(f"Invalid JSON arguments: {e}") from e
        if not isinstance(parsed, dict):
            raise ArgumentParseError("Tool arguments must be a JSON object")
        return parsed
    raise ArgumentParseError(f"Unsupported argument type: {type(arguments).__name__}")


def ensure_call_id(call: ToolCall) -> ToolCall:
    """Give a tool call an id if it lacks one."""
    if call.get("id"):
        return call
    return {**call, "id": f"call_{uuid.uuid4().hex[:24]}"}
