# app/adapters/analysis/gemini_provider.py
from __future__ import annotations

import logging
from typing import Any

import httpx

from ...config import settings
from .base import AnalysisProviderError, parse_ai_response
from .prompts import SYSTEM_PROMPT, build_user_prompt

log = logging.getLogger(__name__)


def _response_text(data: Any) -> str:
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not candidates:
        raise AnalysisProviderError("Gemini returned no candidates")
    parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
    return "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))


class GeminiAnalysisProvider:
    """
    generateContent over REST. Gemini has no system role here, so the system
    prompt is prepended to the user turn.
    """

    name = "Gemini"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_s: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self.temperature = settings.ANALYSIS_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.ANALYSIS_MAX_TOKENS
        self.timeout_s = timeout_s or settings.ANALYSIS_TIMEOUT_S
        self._client = client

    async def analyze(self, phone: str, product: str, session_id: str, conversation: str) -> dict[str, Any]:
        if not self.api_key:
            raise AnalysisProviderError("GEMINI_API_KEY not configured")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        prompt = SYSTEM_PROMPT + "\n\n" + build_user_prompt(phone, product, session_id, conversation)
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }

        if self._client is not None:
            r = await self._client.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout_s)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                r = await client.post(url, params={"key": self.api_key}, json=body)

        if r.status_code >= 400:
            raise AnalysisProviderError(f"Gemini HTTP {r.status_code}: {r.text[:300]}")

        text = _response_text(r.json())
        log.debug("gemini analysis ok session=%s chars=%d", session_id, len(text))
        return parse_ai_response(text)
