import json

import httpx
import pytest

from polychat.ai.proxy_client import ProxyAIService
from polychat.errors import ServiceError

URL = "http://proxy.test/"


def _service(handler) -> tuple[ProxyAIService, list[dict]]:
    sent: list[dict] = []

    def recorder(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return ProxyAIService(URL, client=client), sent


@pytest.mark.asyncio
async def test_translate_posts_action_body():
    service, sent = _service(lambda r: httpx.Response(200, json={"translatedText": "Hola"}))

    assert await service.translate("Hello", "Spanish") == "Hola"
    assert sent == [{"action": "translate", "text": "Hello", "targetLang": "Spanish"}]


@pytest.mark.asyncio
async def test_missing_translation_falls_back_to_original():
    service, _ = _service(lambda r: httpx.Response(200, json={}))

    assert await service.translate("Hello", "Spanish") == "Hello"


@pytest.mark.asyncio
async def test_translate_error_field_raises():
    service, _ = _service(lambda r: httpx.Response(200, json={"error": "quota"}))

    with pytest.raises(ServiceError):
        await service.translate("Hello", "Spanish")


@pytest.mark.asyncio
async def test_missing_definition():
    service, _ = _service(lambda r: httpx.Response(200, json={}))

    assert await service.explain("gato") == "No definition found."


@pytest.mark.asyncio
async def test_grammar_result():
    service, sent = _service(lambda r: httpx.Response(200, json={"hasError": True, "correction": "Yo tengo"}))

    result = await service.check_grammar("Yo tiene", "Spanish")

    assert result.has_error
    assert result.correction == "Yo tengo"
    assert result.reason is None
    assert sent[0] == {"action": "checkGrammar", "text": "Yo tiene", "lang": "Spanish"}


@pytest.mark.asyncio
async def test_grammar_malformed_note_is_no_error():
    body = {"hasError": False, "error": "AI returned malformed JSON, assumed correct."}
    service, _ = _service(lambda r: httpx.Response(200, json=body))

    result = await service.check_grammar("Hola", "Spanish")

    assert not result.has_error
    assert result.note == body["error"]


@pytest.mark.asyncio
async def test_generate_reply():
    service, sent = _service(lambda r: httpx.Response(200, json={"response": {"english": "Hi", "target": "Hola"}}))

    reply = await service.generate_reply("Hello", "Alice", "Spanish", "Topic: x. Grammar Focus: y.")

    assert (reply.english, reply.target) == ("Hi", "Hola")
    assert sent[0] == {
        "action": "generateAIResponse",
        "userText": "Hello",
        "userName": "Alice",
        "lang": "Spanish",
        "context": "Topic: x. Grammar Focus: y.",
    }


@pytest.mark.asyncio
async def test_http_500_is_a_service_error_even_with_fallback_body():
    body = {"error": "AI failed to generate valid JSON.", "response": {"english": "x", "target": "y"}}
    service, _ = _service(lambda r: httpx.Response(500, json=body))

    with pytest.raises(ServiceError, match="500"):
        await service.generate_reply("Hello", "Alice", "Spanish", "")


@pytest.mark.asyncio
async def test_non_json_body():
    service, _ = _service(lambda r: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(ServiceError):
        await service.explain("gato")


@pytest.mark.asyncio
async def test_transport_error():
    def boom(request):
        raise httpx.ConnectError("refused", request=request)

    service, _ = _service(boom)

    with pytest.raises(ServiceError):
        await service.translate("Hello", "Spanish")


@pytest.mark.asyncio
async def test_close_leaves_injected_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
    service = ProxyAIService(URL, client=client)

    await service.close()

    assert not client.is_closed
    await client.aclose()
