# app/service_layer/analyzer.py
from __future__ import annotations

import logging
from typing import Any

from ..adapters.analysis.base import AnalysisProvider
from ..adapters.analysis.gemini_provider import GeminiAnalysisProvider
from ..adapters.analysis.openai_provider import OpenAIAnalysisProvider
from ..config import settings
from ..domain.errors import AnalysisError

log = logging.getLogger(__name__)


class Analyzer:
    """
    Primary provider first; any exception from it (including a missing API key)
    hands the same conversation to the fallback. No retries beyond that.
    """

    def __init__(self, primary: AnalysisProvider, fallback: AnalysisProvider) -> None:
        self.primary = primary
        self.fallback = fallback

    async def analyze(self, phone: str, product: str, session_id: str, conversation: str) -> dict[str, Any]:
        try:
            return await self.primary.analyze(phone, product, session_id, conversation)
        except Exception as primary_err:
            log.warning(
                "%s analysis failed for session=%s, falling back to %s: %s",
                self.primary.name,
                session_id,
                self.fallback.name,
                primary_err,
            )

            try:
                return await self.fallback.analyze(phone, product, session_id, conversation)
            except Exception as fallback_err:
                errors = {
                    self.primary.name: str(primary_err),
                    self.fallback.name: str(fallback_err),
                }
                msg = (
                    f"Both AI providers failed. {self.primary.name}: {primary_err}. "
                    f"{self.fallback.name}: {fallback_err}"
                )
                raise AnalysisError(msg, errors) from fallback_err


def build_analyzer(primary: str | None = None) -> Analyzer:
    openai_p = OpenAIAnalysisProvider()
    gemini_p = GeminiAnalysisProvider()
    if (primary or settings.ANALYSIS_PRIMARY).lower() == "gemini":
        return Analyzer(gemini_p, openai_p)
    return Analyzer(openai_p, gemini_p)
