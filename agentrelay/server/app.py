"""aiohttp application exposing agents over Ollama and OpenAI wire formats.

Every request gets a fresh agent from the factory, switched to the provider
and model named in the request body. Responses use the compatible envelope
for the route; failures are JSON bodies of the form ``{error, message}``.

Example:
    ```python
    from aiohttp import web
    from agentrelay import Agent
    from agentrelay.server import create_app

    def make_agent():
        return Agent("helper").system_prompt("You are terse.")

    web.run_app(create_app(make_agent), port=8080)
    ```
"""

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Type

from aiohttp import web

from agentrelay.agent import Agent
from agentrelay.core.errors import InvalidRequestError
from agentrelay.server.envelopes import (
    error_body,
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
from agentrelay.utils.log_utils import truncate

logger = logging.getLogger(__name__)

AgentFactory = Callable[[], Agent]

AGENT_FACTORY = web.AppKey("agent_factory", Callable)
DEFAULT_MODEL = web.AppKey("default_model", str)


def _json_error(exc_class: Type[web.HTTPException], error: str, message: str) -> web.HTTPException:
    return exc_class(text=json.dumps(error_body(error, message)), content_type="application/json")


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise _json_error(web.HTTPBadRequest, "Invalid JSON in request body", "Please provide valid JSON data")


def _configure_agent(request: web.Request, model_param: str, system: Optional[str]) -> Agent:
    """Build an agent bound to the provider and model named in the request."""
    try:
        provider, model = parse_model_parameter(model_param)
        agent = request.app[AGENT_FACTORY]()
        agent.use_llm(provider, model)
    except Exception as e:
        logger.warning("Invalid model parameter", extra={"model": model_param, "error": str(e)})
        raise _json_error(web.HTTPBadRequest, "Invalid model parameter", str(e))
    if system:
        agent.system_prompt(system)
    return agent


async def _run_agent(agent: Agent, prompt: str) -> str:
    start_time = time.time()
    try:
        response = await agent.prompt(prompt).get_response()
    except Exception as e:
        logger.error("Agent execution failed", extra={"agent": agent.name, "error": str(e)})
        raise _json_error(web.HTTPInternalServerError, "Agent execution failed", str(e))
    finally:
        if agent.provider is not None:
            await agent.provider.aclose()
    logger.info("Agent request completed", extra={
        "agent": agent.name,
        "response_preview": truncate(response, 100),
        "duration_ms": int((time.time() - start_time) * 1000)
    })
    return response


def _validated(validator: Callable[[Any], Dict[str, Any]], data: Any) -> Dict[str, Any]:
    try:
        return validator(data)
    except InvalidRequestError as e:
        raise _json_error(web.HTTPBadRequest, "Invalid request", str(e))


async def handle_ollama_generate(request: web.Request) -> web.Response:
    body = _validated(validate_ollama_generate_request, await _read_json(request))
    agent = _configure_agent(request, body["model"], body.get("system"))
    response = await _run_agent(agent, body["prompt"])
    return web.json_response(ollama_generate_response(body["model"], response))


async def handle_ollama_chat(request: web.Request) -> web.Response:
    body = _validated(validate_ollama_chat_request, await _read_json(request))
    try:
        prompt = format_conversation_context(body["messages"])
    except InvalidRequestError as e:
        raise _json_error(web.HTTPBadRequest, "Invalid request", str(e))
    agent = _configure_agent(request, body["model"], None)
    response = await _run_agent(agent, prompt)
    return web.json_response(ollama_chat_response(body["model"], response))


async def handle_openai_chat(request: web.Request) -> web.Response:
    body = _validated(validate_openai_chat_request, await _read_json(request))
    try:
        prompt = format_conversation_context(body["messages"])
    except InvalidRequestError as e:
        raise _json_error(web.HTTPBadRequest, "Invalid request", str(e))
    agent = _configure_agent(request, body["model"], None)
    response = await _run_agent(agent, prompt)
    return web.json_response(openai_chat_response(body["model"], prompt, response))


async def handle_models(request: web.Request) -> web.Response:
    provider, model = parse_model_parameter(request.app[DEFAULT_MODEL])
    return web.json_response(models_response(model, provider))


@web.middleware
async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Render unexpected failures as JSON 500 responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception("Unhandled request error", extra={"path": request.path})
        return web.json_response(error_body("Internal server error", str(e)), status=500)


def create_app(agent_factory: AgentFactory, default_model: str = "ollama/gemma3:4b") -> web.Application:
    """Create the HTTP application.

    Args:
        agent_factory: Callable returning a new, unconfigured agent per request
        default_model: ``provider/model`` reported first by ``GET /v1/models``

    Returns:
        The aiohttp application
    """
    app = web.Application(middlewares=[error_middleware])
    app[AGENT_FACTORY] = agent_factory
    app[DEFAULT_MODEL] = default_model
    app.router.add_post("/api/generate", handle_ollama_generate)
    app.router.add_post("/api/chat", handle_ollama_chat)
    app.router.add_post("/v1/chat/completions", handle_openai_chat)
    app.router.add_get("/v1/models", handle_models)
    return app
