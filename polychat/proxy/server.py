"""HTTP proxy exposing the AI text service to chat clients.

Single JSON endpoint; the ``action`` field selects the operation:

    {"action": "translate", "text": ..., "targetLang": ...}      -> {"translatedText"}
    {"action": "explain", "text": ...}                          -> {"definition"}
    {"action": "checkGrammar", "text": ..., "lang": ...}         -> {"hasError", "correction"?, "reason"?}
    {"action": "generateAIResponse", "userText", "userName",
     "lang", "context"}                                         -> {"response": {"english", "target"}}
"""

from __future__ import annotations

from typing import Annotated, Any, Awaitable, Callable, Literal, Union

from aiohttp import web
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from polychat.ai.base import REPLY_FALLBACK_ENGLISH, REPLY_FALLBACK_TARGET, AIService
from polychat.errors import MalformedOutputError

SERVICE_KEY = web.AppKey("service", object)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST",
    "Access-Control-Allow-Headers": "Content-Type",
}


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TranslateRequest(_Request):
    action: Literal["translate"]
    text: str
    target_lang: str


class ExplainRequest(_Request):
    action: Literal["explain"]
    text: str


class CheckGrammarRequest(_Request):
    action: Literal["checkGrammar"]
    text: str
    lang: str


class GenerateReplyRequest(_Request):
    action: Literal["generateAIResponse"]
    user_text: str
    user_name: str
    lang: str
    context: str = ""


ProxyRequest = Annotated[
    Union[TranslateRequest, ExplainRequest, CheckGrammarRequest, GenerateReplyRequest],
    Field(discriminator="action"),
]
_request_adapter = TypeAdapter(ProxyRequest)


# ---------------------------------------------------------------------------
# Action handlers
# ---------------------------------------------------------------------------


async def _translate(service: AIService, req: TranslateRequest) -> web.Response:
    translated = await service.translate(req.text, req.target_lang)
    return _json({"translatedText": translated})


async def _explain(service: AIService, req: ExplainRequest) -> web.Response:
    return _json({"definition": await service.explain(req.text)})


async def _check_grammar(service: AIService, req: CheckGrammarRequest) -> web.Response:
    result = await service.check_grammar(req.text, req.lang)
    return _json(result.to_payload())


async def _generate_reply(service: AIService, req: GenerateReplyRequest) -> web.Response:
    try:
        reply = await service.generate_reply(req.user_text, req.user_name, req.lang, req.context)
    except MalformedOutputError as e:
        logger.warning("Tutor reply was not valid JSON: {}", e)
        return _json(
            {
                "error": str(e),
                "response": {"english": REPLY_FALLBACK_ENGLISH, "target": REPLY_FALLBACK_TARGET},
            },
            status=500,
        )
    return _json({"response": {"english": reply.english, "target": reply.target}})


HANDLERS: dict[str, Callable[[AIService, Any], Awaitable[web.Response]]] = {
    "translate": _translate,
    "explain": _explain,
    "checkGrammar": _check_grammar,
    "generateAIResponse": _generate_reply,
}


# ---------------------------------------------------------------------------
# HTTP plumbing
# ---------------------------------------------------------------------------


def _json(data: dict[str, Any], status: int = 200) -> web.Response:
    return web.json_response(data, status=status, headers=CORS_HEADERS)


async def handle_action(request: web.Request) -> web.Response:
    service: AIService | None = request.app[SERVICE_KEY]
    if service is None:
        return _json({"error": "Missing API key"}, status=500)

    try:
        body = await request.json()
    except ValueError:
        # JSONDecodeError and UnicodeDecodeError
        return _json({"error": "Invalid JSON body"}, status=400)
    if not isinstance(body, dict):
        return _json({"error": "Invalid JSON body"}, status=400)

    action = body.get("action")
    handler = HANDLERS.get(action) if isinstance(action, str) else None
    if handler is None:
        return _json({"error": "Invalid action"}, status=400)

    try:
        req = _request_adapter.validate_python(body)
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"][1:]) for err in e.errors())
        return _json({"error": f"Invalid request for {action}: {fields}"}, status=400)

    logger.debug("Proxy action {}", action)
    try:
        return await handler(service, req)
    except Exception as e:
        logger.error("Proxy action {} failed: {}", action, e)
        return _json({"error": f"Server error: {e}"}, status=500)


async def handle_options(request: web.Request) -> web.Response:
    return web.Response(status=204, headers=CORS_HEADERS)


async def handle_health(request: web.Request) -> web.Response:
    return _json({"status": "ok"})


def create_app(service: AIService | None) -> web.Application:
    """Build the proxy application. ``service=None`` means no credentials are configured."""
    app = web.Application()
    app[SERVICE_KEY] = service
    for path in ("/", "/api"):
        app.router.add_post(path, handle_action)
        app.router.add_route("OPTIONS", path, handle_options)
    app.router.add_get("/health", handle_health)

    async def on_cleanup(_app: web.Application) -> None:
        if service is not None:
            await service.close()

    app.on_cleanup.append(on_cleanup)
    return app


def run_proxy(service: AIService | None, host: str = "0.0.0.0", port: int = 18800) -> None:
    """Serve the proxy until interrupted."""
    web.run_app(create_app(service), host=host, port=port, print=None)
