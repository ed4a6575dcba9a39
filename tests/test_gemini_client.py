import asyncio
import json

import httpx
import pytest

from deutschpro.errors import GenerationError
from deutschpro.gemini_client import GeminiClient


def text_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_client(handler):
    client = GeminiClient(api_key="test-key", model="test-model")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client._fallback_enabled = False
    return client


def run(client, coro):
    async def _go():
        try:
            return await coro
        finally:
            await client.aclose()

    return asyncio.run(_go())


def test_generate_json_sends_schema_and_limits():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=text_reply("[]"))

    client = make_client(handler)
    out = run(client, client.generate_json("prompt", response_schema={"type": "ARRAY"}, thinking_budget=0, max_output_tokens=8192))

    assert out == "[]"
    request = seen[0]
    assert request.url.params["key"] == "test-key"
    assert request.url.path.endswith("/models/test-model:generateContent")
    config = json.loads(request.content)["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"] == {"type": "ARRAY"}
    assert config["thinkingConfig"] == {"thinkingBudget": 0}
    assert config["maxOutputTokens"] == 8192


def test_thinking_config_is_dropped_on_rejection():
    bodies = []

    def handler(request):
        body = json.loads(request.content)
        bodies.append(body)
        if "thinkingConfig" in body["generationConfig"]:
            return httpx.Response(400, json={"error": "unsupported"})
        return httpx.Response(200, json=text_reply('[{"word": "Haus"}]'))

    client = make_client(handler)
    out = run(client, client.generate_json("p", response_schema={}, thinking_budget=0))

    assert out == '[{"word": "Haus"}]'
    assert len(bodies) == 2


def test_http_failure_raises_generation_error():
    client = make_client(lambda request: httpx.Response(503, text="unavailable"))
    with pytest.raises(GenerationError):
        run(client, client.generate_json("p", response_schema={}))


def test_chat_sends_history_and_system_instruction():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=text_reply("Gut!"))

    client = make_client(handler)
    out = run(
        client,
        client.chat(system_instruction="Tutor", history=[{"role": "model", "text": "Hallo"}], message="Hi"),
    )

    assert out == "Gut!"
    body = seen[0]
    assert body["systemInstruction"]["parts"][0]["text"] == "Tutor"
    assert [c["role"] for c in body["contents"]] == ["model", "user"]


def test_speech_returns_inline_audio():
    def handler(request):
        body = json.loads(request.content)
        assert body["generationConfig"]["responseModalities"] == ["AUDIO"]
        assert "tts" in request.url.path
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "audio/pcm", "data": "AAAA"}}]}}]},
        )

    client = make_client(handler)
    assert run(client, client.synthesize_speech("German: Hund")) == "AAAA"


def test_speech_without_audio_part_returns_none():
    client = make_client(lambda request: httpx.Response(200, json=text_reply("no audio")))
    assert run(client, client.synthesize_speech("German: Hund")) is None


def test_missing_api_key_is_rejected(monkeypatch):
    from deutschpro import gemini_client

    monkeypatch.setattr(gemini_client.settings, "gemini_api_key", None)
    with pytest.raises(ValueError):
        GeminiClient()


def test_chat_fallback_with_null_content_returns_empty_text():
    client = make_client(lambda request: httpx.Response(503, text="unavailable"))
    client._fallback_enabled = True
    client._openrouter_api_key = "or-key"
    client._fallback_client = httpx.AsyncClient(
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": None}}]})
        )
    )

    out = run(client, client.chat(system_instruction="Tutor", history=[], message="Hi"))

    assert out == ""
