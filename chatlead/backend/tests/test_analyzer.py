import json
from types import SimpleNamespace

import httpx
import pytest

from app.adapters.analysis.base import AnalysisProviderError, parse_ai_response
from app.adapters.analysis.gemini_provider import GeminiAnalysisProvider
from app.adapters.analysis.openai_provider import OpenAIAnalysisProvider
from app.adapters.analysis.prompts import build_user_prompt
from app.domain.errors import AnalysisError
from app.service_layer.analyzer import Analyzer, build_analyzer

from conftest import FakeProvider, analysis_payload


def test_parse_ai_response_strips_fences():
    assert parse_ai_response('```json\n{"lead_score": 5}\n```') == {"lead_score": 5}
    assert parse_ai_response('```\n{"a": 1}```') == {"a": 1}
    assert parse_ai_response('{"a": 1}') == {"a": 1}


@pytest.mark.parametrize("text", ["", None, "not json", "[1, 2]"])
def test_parse_ai_response_rejects_non_objects(text):
    with pytest.raises(AnalysisProviderError):
        parse_ai_response(text)


def test_user_prompt_carries_identity_and_conversation():
    prompt = build_user_prompt("919800000001", "", "s1", "USER: hi")
    assert "919800000001" in prompt
    assert "unknown" in prompt
    assert "USER: hi" in prompt


@pytest.mark.asyncio
async def test_primary_success_skips_fallback():
    p = FakeProvider("OpenAI", result={"lead_score": 40})
    f = FakeProvider("Gemini", result={"lead_score": 90})
    out = await Analyzer(p, f).analyze("1", "wa", "s1", "USER: hi")
    assert out == {"lead_score": 40}
    assert f.calls == []


@pytest.mark.asyncio
async def test_fallback_gets_same_conversation():
    p = FakeProvider("OpenAI", error=AnalysisProviderError("OPENAI_API_KEY not configured"))
    f = FakeProvider("Gemini", result={"lead_score": 90})
    out = await Analyzer(p, f).analyze("1", "wa", "s1", "USER: hi")
    assert out == {"lead_score": 90}
    assert f.calls[0]["conversation"] == "USER: hi"
    assert f.calls[0]["session_id"] == "s1"


@pytest.mark.asyncio
async def test_both_fail_raises_with_both_messages():
    p = FakeProvider("OpenAI", error=RuntimeError("rate limited"))
    f = FakeProvider("Gemini", error=RuntimeError("quota exceeded"))
    with pytest.raises(AnalysisError) as ei:
        await Analyzer(p, f).analyze("1", "wa", "s1", "USER: hi")
    assert str(ei.value) == "Both AI providers failed. OpenAI: rate limited. Gemini: quota exceeded"
    assert ei.value.errors == {"OpenAI": "rate limited", "Gemini": "quota exceeded"}


def test_build_analyzer_orders_providers():
    assert build_analyzer("openai").primary.name == "OpenAI"
    a = build_analyzer("gemini")
    assert (a.primary.name, a.fallback.name) == ("Gemini", "OpenAI")


@pytest.mark.asyncio
async def test_openai_provider_parses_completion():
    seen = {}

    async def create(**kwargs):
        seen.update(kwargs)
        msg = SimpleNamespace(content="```json\n" + json.dumps(analysis_payload()) + "\n```")
        return SimpleNamespace(choices=[SimpleNamespace(message=msg)])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    provider = OpenAIAnalysisProvider(api_key="sk-test", model="gpt-test", temperature=0.3, max_tokens=800, client=client)

    out = await provider.analyze("1", "wa", "s1", "USER: hi")
    assert out["lead_score"] == 85
    assert seen["model"] == "gpt-test"
    assert seen["max_completion_tokens"] == 800
    assert seen["messages"][0]["role"] == "system"


@pytest.mark.asyncio
async def test_openai_provider_without_key_fails():
    with pytest.raises(AnalysisProviderError):
        await OpenAIAnalysisProvider(api_key="").analyze("1", "wa", "s1", "USER: hi")


@pytest.mark.asyncio
async def test_gemini_provider_over_rest():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        text = json.dumps({"lead_score": 77})
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        provider = GeminiAnalysisProvider(
            api_key="g-key", model="gemini-test", base_url="https://gemini.test/v1beta", client=client
        )
        out = await provider.analyze("1", "wa", "s1", "USER: hi")

    assert out == {"lead_score": 77}
    assert seen["url"].startswith("https://gemini.test/v1beta/models/gemini-test:generateContent")
    assert "key=g-key" in seen["url"]
    assert "USER: hi" in seen["body"]["contents"][0]["parts"][0]["text"]


@pytest.mark.asyncio
async def test_gemini_provider_http_error():
    transport = httpx.MockTransport(lambda r: httpx.Response(429, text="quota"))
    async with httpx.AsyncClient(transport=transport) as client:
        provider = GeminiAnalysisProvider(api_key="g-key", client=client)
        with pytest.raises(AnalysisProviderError, match="429"):
            await provider.analyze("1", "wa", "s1", "USER: hi")
