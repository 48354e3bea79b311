import pytest

from basket_yield.config import Settings
from basket_yield.infrastructure.llm.http_backend import (
    BackendUnavailableError,
    HttpRecommendationBackend,
    build_recommendation_backend,
)


def capture_post(monkeypatch, backend, response):
    calls = []

    async def fake_post(url, body, headers=None):
        calls.append({"url": url, "body": body, "headers": headers})
        return response

    monkeypatch.setattr(backend, "_post", fake_post)
    return calls


@pytest.mark.asyncio
async def test_gemini_extracts_first_text_part(monkeypatch):
    backend = HttpRecommendationBackend(provider="gemini", model="gemini-pro", api_key="k1")
    calls = capture_post(
        monkeypatch,
        backend,
        {"candidates": [{"content": {"parts": [{"text": '{"recommendedBasket": 1}'}]}}]},
    )

    text = await backend.generate("prompt")

    assert text == '{"recommendedBasket": 1}'
    assert calls[0]["url"].endswith("/models/gemini-pro:generateContent?key=k1")
    assert calls[0]["body"] == {"contents": [{"parts": [{"text": "prompt"}]}]}


@pytest.mark.asyncio
async def test_openai_sends_bearer_and_reads_message(monkeypatch):
    backend = HttpRecommendationBackend(provider="OpenAI", model="gpt-4o-mini", api_key="sk-1")
    calls = capture_post(monkeypatch, backend, {"choices": [{"message": {"content": "  answer  "}}]})

    assert await backend.generate("prompt") == "answer"
    assert calls[0]["headers"]["Authorization"] == "Bearer sk-1"
    assert calls[0]["body"]["messages"] == [{"role": "user", "content": "prompt"}]


@pytest.mark.asyncio
async def test_local_posts_to_generate_endpoint(monkeypatch):
    backend = HttpRecommendationBackend(provider="local", model="llama3", base_url="http://ollama:11434/")
    calls = capture_post(monkeypatch, backend, {"response": "ok"})

    assert await backend.generate("prompt") == "ok"
    assert calls[0]["url"] == "http://ollama:11434/api/generate"
    assert calls[0]["body"]["stream"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("provider", ["gemini", "openai"])
async def test_missing_api_key_is_unavailable(provider):
    backend = HttpRecommendationBackend(provider=provider, model="m", api_key="  ")
    with pytest.raises(BackendUnavailableError):
        await backend.generate("prompt")


@pytest.mark.asyncio
async def test_disabled_provider_is_unavailable():
    with pytest.raises(BackendUnavailableError):
        await HttpRecommendationBackend(provider="none", model="m").generate("prompt")


def test_build_from_settings():
    settings = Settings(LLM_PROVIDER="local", LLM_MODEL="llama3", LLM_TIMEOUT_SECONDS=5.0)

    backend = build_recommendation_backend(settings)

    assert backend.provider == "local"
    assert backend.model == "llama3"
    assert backend.timeout == 5.0
