"""Tests for HTTP request validation and response envelopes."""

import pytest

from agentrelay.core.errors import InvalidRequestError
from agentrelay.server.envelopes import (
    extract_text_content,
    format_conversation_context,
    models_response,
    ollama_chat_response,
    ollama_generate_response,
    openai_chat_response,
    parse_model_parameter,
    validate_ollama_chat_request,
    validate_ollama_generate_request,
    validate_openai_chat_request,
)


def openai_body(**overrides):
    body = {"model": "ollama/gemma3:4b", "messages": [{"role": "user", "content": "Hi"}]}
    body.update(overrides)
    return body


def test_valid_openai_request():
    body = openai_body(temperature=0.7, max_tokens=100, stream=False, n=1, top_p=1)
    assert validate_openai_chat_request(body) is body


@pytest.mark.parametrize("body,message", [
    ([], "Request body must be a valid JSON object"),
    (openai_body(model=""), 'Missing or invalid "model" field'),
    (openai_body(messages="hi"), 'Missing or invalid "messages" field'),
    (openai_body(messages=[]), "Messages array cannot be empty"),
    (openai_body(messages=[{"role": "robot", "content": "x"}]), 'invalid role "robot"'),
    (openai_body(messages=[{"role": "user", "content": ""}]), 'missing or invalid "content" field'),
    (openai_body(messages=[{"role": "user", "content": [{"type": "audio"}]}]), 'invalid content part type "audio"'),
    (openai_body(messages=[{"role": "tool", "content": "x", "tool_call_id": 5}]), '"tool_call_id" field'),
    (openai_body(temperature=2.5), '"temperature" field'),
    (openai_body(top_p=-0.1), '"top_p" field'),
    (openai_body(max_tokens=0), '"max_tokens" field'),
    (openai_body(n=129), '"n" field'),
    (openai_body(stream="yes"), '"stream" field'),
    (openai_body(presence_penalty=3), '"presence_penalty" field'),
    (openai_body(user=1), '"user" field'),
])
def test_invalid_openai_request(body, message):
    with pytest.raises(InvalidRequestError, match=message):
        validate_openai_chat_request(body)


def test_ollama_generate_validation():
    assert validate_ollama_generate_request({"model": "gemma3:4b", "prompt": "Hi"})
    with pytest.raises(InvalidRequestError, match='"prompt" field'):
        validate_ollama_generate_request({"model": "gemma3:4b"})
    with pytest.raises(InvalidRequestError, match='"stream" field'):
        validate_ollama_generate_request({"model": "gemma3:4b", "prompt": "Hi", "stream": "no"})


def test_ollama_chat_validation():
    assert validate_ollama_chat_request({"model": "m", "messages": [{"role": "user", "content": "Hi"}]})
    with pytest.raises(InvalidRequestError, match='invalid role "tool"'):
        validate_ollama_chat_request({"model": "m", "messages": [{"role": "tool", "content": "x"}]})
    with pytest.raises(InvalidRequestError, match='"images" field'):
        validate_ollama_chat_request({"model": "m", "messages": [{"role": "user", "content": "x", "images": "a"}]})


def test_extract_text_content():
    content = [
        {"type": "text", "text": "What is"},
        {"type": "image_url", "image_url": {"url": "https://x/y.png"}},
        {"type": "text", "text": "this?"},
    ]
    assert extract_text_content(content) == "What is [Image provided] this?"
    assert extract_text_content("plain") == "plain"


def test_single_user_message_is_prompt():
    assert format_conversation_context([{"role": "user", "content": "Hi"}]) == "Hi"


def test_conversation_is_flattened(sample_messages):
    assert format_conversation_context(sample_messages) == (
        "System: You are a helpful AI assistant.\n"
        "Human: Hello, can you help me?\n"
        "Assistant: Of course! What can I help you with?\n"
        "Human: I need to use a tool.\n"
        "\nPlease respond as the Assistant, taking into account the full conversation history above."
    )


def test_conversation_requires_user_message():
    with pytest.raises(InvalidRequestError, match="No user message found"):
        format_conversation_context([{"role": "system", "content": "Be nice"}])


@pytest.mark.parametrize("value,expected", [
    ("ollama/gemma3:12b", ("ollama", "gemma3:12b")),
    ("openrouter/openai/gpt-4o-mini", ("openrouter", "openai/gpt-4o-mini")),
    ("llama3.2", ("ollama", "llama3.2")),
    (" openai/gpt-4o ", ("openai", "gpt-4o")),
])
def test_parse_model_parameter(value, expected):
    assert parse_model_parameter(value) == expected


@pytest.mark.parametrize("value", ["/gpt-4o", "openai/", "/"])
def test_parse_model_parameter_invalid(value):
    with pytest.raises(InvalidRequestError, match="Expected 'provider/model'"):
        parse_model_parameter(value)


def test_ollama_envelopes():
    generate = ollama_generate_response("gemma3:4b", "Hi there")
    chat = ollama_chat_response("gemma3:4b", "Hi there")

    assert generate["response"] == "Hi there"
    assert generate["done"] is True
    assert generate["context"] == []
    assert generate["eval_count"] == 0
    assert generate["created_at"].endswith("Z")
    assert chat["message"] == {"role": "assistant", "content": "Hi there"}
    assert chat["total_duration"] == 0


def test_openai_envelope():
    body = openai_chat_response("ollama/gemma3:4b", "abcd" * 10, "efgh" * 5)

    assert body["id"].startswith("chatcmpl-")
    assert body["object"] == "chat.completion"
    assert body["model"] == "ollama/gemma3:4b"
    assert body["choices"] == [{
        "index": 0,
        "message": {"role": "assistant", "content": "efgh" * 5},
        "finish_reason": "stop",
    }]
    assert body["usage"] == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}


def test_models_response():
    body = models_response("gemma3:4b", "ollama")

    assert body["object"] == "list"
    assert [m["id"] for m in body["data"]] == ["gemma3:4b", "gpt-4", "gpt-3.5-turbo"]
    assert body["data"][0]["owned_by"] == "ollama"
