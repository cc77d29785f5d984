# app/adapters/analysis/openai_provider.py
from __future__ import annotations

import logging
from typing import Any

from openai import AsyncOpenAI

from ...config import settings
from .base import AnalysisProviderError, parse_ai_response
from .prompts import SYSTEM_PROMPT, build_user_prompt

log = logging.getLogger(__name__)


class OpenAIAnalysisProvider:
    name = "OpenAI"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_s: float | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self.temperature = settings.ANALYSIS_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.ANALYSIS_MAX_TOKENS
        self.timeout_s = timeout_s or settings.ANALYSIS_TIMEOUT_S
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise AnalysisProviderError("OPENAI_API_KEY not configured")
            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout_s)
        return self._client

    async def analyze(self, phone: str, product: str, session_id: str, conversation: str) -> dict[str, Any]:
        client = self._get_client()
        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(phone, product, session_id, conversation)},
            ],
            temperature=self.temperature,
            max_completion_tokens=self.max_tokens,
        )

        if not response.choices or not response.choices[0].message.content:
            raise AnalysisProviderError("empty response from OpenAI")

        text = response.choices[0].message.content
        log.debug("openai analysis ok session=%s chars=%d", session_id, len(text))
        return parse_ai_response(text)
