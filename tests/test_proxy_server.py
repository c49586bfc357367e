import pytest
from aiohttp.test_utils import TestClient, TestServer

from polychat.ai.base import GrammarResult, Reply
from polychat.errors import MalformedOutputError
from polychat.proxy.server import create_app


@pytest.fixture
async def client(fake_ai):
    test_client = TestClient(TestServer(create_app(fake_ai)))
    await test_client.start_server()
    yield test_client
    await test_client.close()


async def _post(client, body, path="/"):
    resp = await client.post(path, json=body)
    return resp.status, await resp.json(), resp.headers


@pytest.mark.asyncio
async def test_translate(client, fake_ai):
    status, body, headers = await _post(client, {"action": "translate", "text": "Hello", "targetLang": "Spanish"})

    assert status == 200
    assert body == {"translatedText": "[Spanish] Hello"}
    assert headers["Access-Control-Allow-Origin"] == "*"


@pytest.mark.asyncio
async def test_explain_on_api_path(client):
    status, body, _ = await _post(client, {"action": "explain", "text": "gato"}, path="/api")

    assert status == 200
    assert body == {"definition": "[noun] A small domesticated feline."}


@pytest.mark.asyncio
async def test_check_grammar_with_error(client, fake_ai):
    fake_ai.check_grammar.return_value = GrammarResult(True, "Yo tengo", "Conjugation.")

    status, body, _ = await _post(client, {"action": "checkGrammar", "text": "Yo tiene", "lang": "Spanish"})

    assert status == 200
    assert body == {"hasError": True, "correction": "Yo tengo", "reason": "Conjugation."}


@pytest.mark.asyncio
async def test_check_grammar_malformed_note(client, fake_ai):
    fake_ai.check_grammar.return_value = GrammarResult(False, note="AI returned malformed JSON, assumed correct.")

    status, body, _ = await _post(client, {"action": "checkGrammar", "text": "Hola", "lang": "Spanish"})

    assert status == 200
    assert body == {"hasError": False, "error": "AI returned malformed JSON, assumed correct."}


@pytest.mark.asyncio
async def test_generate_reply(client, fake_ai):
    fake_ai.generate_reply.return_value = Reply("Hi", "Hola")
    request = {"action": "generateAIResponse", "userText": "Hello", "userName": "Alice",
               "lang": "Spanish", "context": "Topic: x. Grammar Focus: y."}

    status, body, _ = await _post(client, request)

    assert status == 200
    assert body == {"response": {"english": "Hi", "target": "Hola"}}
    fake_ai.generate_reply.assert_awaited_once_with("Hello", "Alice", "Spanish", "Topic: x. Grammar Focus: y.")


@pytest.mark.asyncio
async def test_malformed_reply_returns_fallback_with_500(client, fake_ai):
    fake_ai.generate_reply.side_effect = MalformedOutputError("AI failed to generate valid JSON.")
    request = {"action": "generateAIResponse", "userText": "Hello", "userName": "Alice", "lang": "Spanish"}

    status, body, _ = await _post(client, request)

    assert status == 500
    assert body["error"] == "AI failed to generate valid JSON."
    assert body["response"]["english"] == "I'm sorry, I had a processing error. Can you try again?"
    assert body["response"]["target"].startswith("Lo siento")


@pytest.mark.asyncio
async def test_backend_failure_is_server_error(client, fake_ai):
    fake_ai.translate.side_effect = RuntimeError("quota exceeded")

    status, body, _ = await _post(client, {"action": "translate", "text": "Hello", "targetLang": "Spanish"})

    assert status == 500
    assert body == {"error": "Server error: quota exceeded"}


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"action": "playGeminiTTS", "text": "hi"}, {"text": "hi"}, {"action": 3}])
async def test_unknown_action(client, body):
    status, payload, _ = await _post(client, body)

    assert status == 400
    assert payload == {"error": "Invalid action"}


@pytest.mark.asyncio
async def test_missing_fields(client, fake_ai):
    status, payload, _ = await _post(client, {"action": "translate", "text": "Hello"})

    assert status == 400
    assert "targetLang" in payload["error"]
    fake_ai.translate.assert_not_called()


@pytest.mark.asyncio
async def test_invalid_json_body(client):
    resp = await client.post("/", data="not json", headers={"Content-Type": "application/json"})

    assert resp.status == 400
    assert await resp.json() == {"error": "Invalid JSON body"}


@pytest.mark.asyncio
async def test_non_utf8_body_is_a_json_400(client, fake_ai):
    resp = await client.post(
        "/",
        data=b'{"action":"translate","text":"\xff\xfe"}',
        headers={"Content-Type": "application/json"},
    )

    assert resp.status == 400
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert await resp.json() == {"error": "Invalid JSON body"}
    fake_ai.translate.assert_not_called()


@pytest.mark.asyncio
async def test_options_preflight(client):
    resp = await client.options("/")

    assert resp.status == 204
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert resp.headers["Access-Control-Allow-Methods"] == "POST"


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")

    assert resp.status == 200
    assert await resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_missing_credentials():
    test_client = TestClient(TestServer(create_app(None)))
    await test_client.start_server()
    try:
        status, body, _ = await _post(test_client, {"action": "explain", "text": "gato"})
    finally:
        await test_client.close()

    assert status == 500
    assert body == {"error": "Missing API key"}
