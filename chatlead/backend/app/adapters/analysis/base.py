# app/adapters/analysis/base.py
from __future__ import annotations

import json
import re
from typing import Any, Protocol


class AnalysisProviderError(Exception):
    """A single provider could not produce an analysis payload."""


class AnalysisProvider(Protocol):
    name: str

    async def analyze(self, phone: str, product: str, session_id: str, conversation: str) -> dict[str, Any]:
        ...


_FENCE_OPEN_RE = re.compile(r"```json\n?", re.IGNORECASE)
_FENCE_RE = re.compile(r"```\n?")


def parse_ai_response(text: str | None) -> dict[str, Any]:
    """
    Models sometimes wrap the JSON in ``` fences; strip them, then require an object.
    """
    cleaned = _FENCE_OPEN_RE.sub("", text or "")
    cleaned = _FENCE_RE.sub("", cleaned).strip().strip("`").strip()
    if not cleaned:
        raise AnalysisProviderError("empty response")

    try:
        data = json.loads(cleaned)
    except ValueError as e:
        raise AnalysisProviderError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise AnalysisProviderError(f"expected a JSON object, got {type(data).__name__}")
    return data
