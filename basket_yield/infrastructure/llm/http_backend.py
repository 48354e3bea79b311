"""
HTTP recommendation backends (gemini / openai / local ollama).
Each returns the raw model text; parsing happens in the recommendation engine.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from basket_yield.config import Settings

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_API_BASE = "https://api.openai.com/v1"


class BackendUnavailableError(RuntimeError):
    pass


class HttpRecommendationBackend:
    def __init__(
        self,
        provider: str,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.provider = (provider or "none").lower()
        self.model = model
        self.api_key = (api_key or "").strip() or None
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout

    async def generate(self, prompt: str) -> str:
        if self.provider == "gemini":
            return await self._generate_gemini(prompt)
        if self.provider == "openai":
            return await self._generate_openai(prompt)
        if self.provider == "local":
            return await self._generate_local(prompt)
        raise BackendUnavailableError(f"Recommendation backend disabled (provider={self.provider})")

    async def _post(self, url: str, body: dict, headers: Optional[dict] = None) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(url, json=body, headers=headers)
        resp.raise_for_status()
        return resp.json()

    async def _generate_gemini(self, prompt: str) -> str:
        if not self.api_key:
            raise BackendUnavailableError("Gemini API key missing")
        url = f"{GEMINI_API_BASE}/models/{self.model}:generateContent?key={self.api_key}"
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        data = await self._post(url, body)
        return _extract_gemini_text(data)

    async def _generate_openai(self, prompt: str) -> str:
        if not self.api_key:
            raise BackendUnavailableError("OpenAI API key missing")
        url = f"{OPENAI_API_BASE}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.2,
        }
        data = await self._post(url, body, headers=headers)
        choice = (data.get("choices") or [{}])[0]
        message = choice.get("message") or {}
        return (message.get("content") or choice.get("text") or "").strip()

    async def _generate_local(self, prompt: str) -> str:
        url = f"{self.base_url}/api/generate"
        body = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
        }
        data = await self._post(url, body)
        return str(data.get("response", ""))


def _extract_gemini_text(payload: Dict[str, Any]) -> str:
    # generateContent output text (best-effort)
    for candidate in payload.get("candidates") or []:
        content = candidate.get("content") or {}
        for part in content.get("parts") or []:
            text = part.get("text")
            if text:
                return text
    return ""


def build_recommendation_backend(settings: Settings) -> HttpRecommendationBackend:
    logger.info("Recommendation backend: provider=%s model=%s", settings.LLM_PROVIDER, settings.LLM_MODEL)
    return HttpRecommendationBackend(
        provider=settings.LLM_PROVIDER,
        model=settings.LLM_MODEL,
        api_key=settings.LLM_API_KEY,
        base_url=settings.LLM_BASE_URL,
        timeout=settings.LLM_TIMEOUT_SECONDS,
    )
