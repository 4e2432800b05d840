"""Tests for the ToolUseLoop engine."""

import base64
from unittest.mock import AsyncMock

import pytest

from agentrelay.core.errors import ProviderError
from agentrelay.core.loop import ModelTurn, ToolUseLoop, format_result_block, ToolOutcome
from agentrelay.core.sanitizer import ResultSanitizer
from agentrelay.types import ModelConfig


@pytest.fixture
def user_messages():
    return [{"role": "user", "content": "What is 2 + 3?"}]


@pytest.fixture
def make_loop(calculator_executor, calculator_registry, tmp_path):
    """Factory wiring a scripted backend into a loop with an injectable sleep."""
    def _make(backend, model_config=None, sleep=None):
        return ToolUseLoop(
            backend,
            calculator_executor,
            model_config,
            sanitizer=ResultSanitizer(output_dir=tmp_path),
            sleep=sleep or AsyncMock(),
        )
    return _make


@pytest.fixture
def tools(calculator_registry):
    return calculator_registry.get_definitions(["add", "explode"])


@pytest.mark.asyncio
async def test_answer_without_tools(make_loop, scripted_backend, user_messages, tools):
    """Test that a plain answer ends the loop after one call."""
    backend = scripted_backend([ModelTurn(content="Five.", finish_reason="stop")])

    answer = await make_loop(backend).run(user_messages, tools)

    assert answer == "Five."
    assert len(backend.sent) == 1
    assert backend.plain_sent == []


@pytest.mark.asyncio
async def test_max_rounds_then_single_fallback(make_loop, scripted_backend, tool_turn, user_messages, tools):
    """Test that N tool rounds are followed by exactly one tool-free request."""
    rounds = 3
    backend = scripted_backend(
        [tool_turn("add", {"a": 1, "b": 1}) for _ in range(rounds)],
        plain_reply="gave up on tools",
    )

    answer = await make_loop(backend, ModelConfig(max_tool_rounds=rounds)).run(user_messages, tools)

    assert answer == "gave up on tools"
    assert len(backend.sent) == rounds
    assert len(backend.plain_sent) == 1
    assert all(m["role"] != "tool" for m in backend.plain_sent[0])


@pytest.mark.asyncio
async def test_string_and_object_arguments_are_equivalent(make_loop, scripted_backend, tool_turn, user_messages, tools):
    """Test that JSON-string arguments behave exactly like object arguments."""
    transcripts = []
    for arguments in ('{"a": 2, "b": 3}', {"a": 2, "b": 3}):
        backend = scripted_backend([tool_turn("add", arguments), ModelTurn(content="5")])
        assert await make_loop(backend).run(user_messages, tools) == "5"
        transcripts.append(backend.sent[1][-1])

    assert transcripts[0] == transcripts[1]
    assert "Result: 5" in transcripts[0]["content"]


@pytest.mark.asyncio
async def test_two_calls_in_one_round_per_call_messages(make_loop, scripted_backend, user_messages, tools):
    """Test one assistant message followed by one tool message per call."""
    turn = ModelTurn(
        content=None,
        tool_calls=[
            {"id": "call_1", "function": {"name": "add", "arguments": '{"a": 1, "b": 2}'}},
            {"id": "call_2", "function": {"name": "explode", "arguments": "{}"}},
        ],
        finish_reason="tool_calls",
    )
    backend = scripted_backend([turn, ModelTurn(content="done")], per_call_messages=True)

    await make_loop(backend).run(user_messages, tools)

    transcript = backend.sent[1]
    assert [m["role"] for m in transcript] == ["user", "assistant", "tool", "tool"]
    assert [m["tool_call_id"] for m in transcript[2:]] == ["call_1", "call_2"]
    assert transcript[2]["content"] == "3"
    assert transcript[3]["content"] == "Error: Tool execution failed for explode: kaboom"


@pytest.mark.asyncio
async def test_two_calls_in_one_round_merged_message(make_loop, scripted_backend, user_messages, tools):
    """Test that merged mode sends all results in a single tool message."""
    turn = ModelTurn(
        tool_calls=[
            {"function": {"name": "add", "arguments": {"a": 1, "b": 2}}},
            {"function": {"name": "add", "arguments": {"a": 3, "b": 4}}},
        ],
    )
    backend = scripted_backend([turn, ModelTurn(content="done")])

    await make_loop(backend).run(user_messages, tools)

    transcript = backend.sent[1]
    assert [m["role"] for m in transcript] == ["user", "assistant", "tool"]
    blocks = transcript[2]["content"].split("\n\n")
    assert blocks[0] == 'Tool add args: {"a": 1, "b": 2}\nResult: 3'
    assert blocks[1] == 'Tool add args: {"a": 3, "b": 4}\nResult: 7'


@pytest.mark.asyncio
async def test_per_call_mode_assigns_missing_ids(make_loop, scripted_backend, tool_turn, user_messages, tools):
    backend = scripted_backend([tool_turn("add", {"a": 1, "b": 1}), ModelTurn(content="2")], per_call_messages=True)

    await make_loop(backend).run(user_messages, tools)

    assistant, tool_message = backend.sent[1][1], backend.sent[1][2]
    call_id = assistant["tool_calls"][0]["id"]
    assert call_id.startswith("call_")
    assert tool_message["tool_call_id"] == call_id


@pytest.mark.asyncio
async def test_delay_between_rounds(make_loop, scripted_backend, tool_turn, user_messages, tools):
    """Test that three model calls are separated by exactly two delays."""
    sleep = AsyncMock()
    backend = scripted_backend([
        tool_turn("add", {"a": 1, "b": 1}),
        tool_turn("add", {"a": 2, "b": 2}),
        ModelTurn(content="done"),
    ])

    await make_loop(backend, ModelConfig(request_delay=1.5), sleep=sleep).run(user_messages, tools)

    assert len(backend.sent) == 3
    assert sleep.await_count == 2
    sleep.assert_awaited_with(1.5)


@pytest.mark.asyncio
async def test_delay_before_fallback(make_loop, scripted_backend, tool_turn, user_messages, tools):
    sleep = AsyncMock()
    backend = scripted_backend([tool_turn("add", {"a": 1, "b": 1})])

    await make_loop(backend, ModelConfig(max_tool_rounds=1, request_delay=0.5), sleep=sleep).run(user_messages, tools)

    assert sleep.await_count == 1


@pytest.mark.asyncio
async def test_unknown_finish_reason_is_error(make_loop, scripted_backend, user_messages, tools):
    """Test that an unrecognized finish reason aborts the loop."""
    backend = scripted_backend([ModelTurn(content="hm", finish_reason="weird_stop")])

    with pytest.raises(ProviderError, match="weird_stop"):
        await make_loop(backend).run(user_messages, tools)


@pytest.mark.asyncio
async def test_missing_message_is_error(make_loop, scripted_backend, user_messages, tools):
    backend = scripted_backend([None])

    with pytest.raises(ProviderError, match="No response from Scripted API"):
        await make_loop(backend).run(user_messages, tools)


@pytest.mark.asyncio
async def test_append_tool_results(make_loop, scripted_backend, tool_turn, user_messages, tools):
    """Test that raw results of the last round are appended on request."""
    backend = scripted_backend([tool_turn("add", {"a": 2, "b": 2}), ModelTurn(content="It is 4.")])

    answer = await make_loop(backend, ModelConfig(append_tool_results=True)).run(user_messages, tools)

    assert answer == 'It is 4.\n\n---\nRaw tool results:\nTool add args: {"a": 2, "b": 2}\nResult: 4'


@pytest.mark.asyncio
async def test_invalid_arguments_become_error_result(make_loop, scripted_backend, tool_turn, user_messages, tools):
    backend = scripted_backend([tool_turn("add", "{broken"), ModelTurn(content="sorry")])

    assert await make_loop(backend).run(user_messages, tools) == "sorry"

    block = backend.sent[1][-1]["content"]
    assert block.startswith("Tool add args: {broken\nError: Invalid JSON arguments")


@pytest.mark.asyncio
async def test_missing_arguments_become_error_result(make_loop, scripted_backend, user_messages,
                                                    calculator_registry, base_tool_definition):
    """Test that an intent without arguments is recorded as a failure and never executed."""
    handler = AsyncMock(return_value="pong")
    calculator_registry.register_tool(base_tool_definition("ping", "Ping"), handler)
    backend = scripted_backend([
        ModelTurn(tool_calls=[{"function": {"name": "ping"}}], finish_reason="tool_calls"),
        ModelTurn(content="No arguments given."),
    ])

    answer = await make_loop(backend).run(user_messages, calculator_registry.get_definitions(["ping"]))

    assert answer == "No arguments given."
    handler.assert_not_awaited()
    assert backend.sent[1][-1]["content"] == "Tool ping args: null\nError: Missing tool arguments"


@pytest.mark.asyncio
async def test_base64_results_not_resent(make_loop, scripted_backend, tool_turn, user_messages, tools, calculator_registry,
                                         base_tool_definition, tmp_path):
    """Test that image payloads returned by tools never reach the model."""
    screenshot = base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"\x00" * 2000).decode()
    calculator_registry.register_tool(
        base_tool_definition("snap", "Take a screenshot"),
        lambda params: {"url": "https://example.com", "screenshot": screenshot},
    )
    backend = scripted_backend([tool_turn("snap", {}), ModelTurn(content="Captured.")])

    await make_loop(backend).run(user_messages, calculator_registry.get_definitions(["snap"]))

    sent = str(backend.sent[1])
    assert screenshot[:100] not in sent
    assert "[BINARY_SAVED_TO: " in sent
    assert len(list(tmp_path.glob("screenshot_*.png"))) == 1


@pytest.mark.asyncio
async def test_seed_messages_not_mutated(make_loop, scripted_backend, tool_turn, user_messages, tools):
    backend = scripted_backend([tool_turn("add", {"a": 1, "b": 1}), ModelTurn(content="2")])

    await make_loop(backend).run(user_messages, tools)

    assert user_messages == [{"role": "user", "content": "What is 2 + 3?"}]


def test_default_round_budget(calculator_executor, scripted_backend):
    loop = ToolUseLoop(scripted_backend([]), calculator_executor, default_max_rounds=7)
    assert loop.max_tool_rounds == 7

    loop = ToolUseLoop(scripted_backend([]), calculator_executor, ModelConfig(max_tool_rounds=2))
    assert loop.max_tool_rounds == 2


def test_format_result_block_with_id():
    outcome = ToolOutcome(
        call={"id": "call_9", "function": {"name": "lookup", "arguments": {}}},
        arguments={"q": "é"},
        result={"hits": [1]},
    )

    assert format_result_block(outcome) == (
        'Tool lookup (call_9) args: {"q": "é"}\nResult: {\n  "hits": [\n    1\n  ]\n}'
    )
