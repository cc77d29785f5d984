# tests/conftest.py
import fnmatch
import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.adapters.session_store import RedisSessionStore
from app.domain.assembly import LeadContext, assemble_lead
from app.domain.fingerprint import conversation_fingerprint
from app.domain.scoring import enrich
from app.domain.types import SessionKeyInfo, TimingInfo
from app.integrations.services.dispatch import DispatchReport, FanOutDispatcher
from app.integrations.services.registry import RunConfig, StaticConfigProvider
from app.models import Base
from app.service_layer.analyzer import Analyzer
from app.service_layer.use_cases.process_chats import PipelineDeps

FIXED_NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
async def _reset_db(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield


@pytest.fixture
async def engine():
    """
    Fresh in-memory DB per test. StaticPool makes all connections share the same
    in-memory database for the lifetime of this engine fixture.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


# -----------------------------
# Session store
# -----------------------------
class FakeRedis:
    """Dict-backed stand-in for the redis.asyncio calls the session store makes."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.scan_error: Exception | None = None
        self.fail_set_for: set[str] = set()
        self.duplicate_scan = False

    async def scan_iter(self, match: str = "*", count: int | None = None):
        if self.scan_error is not None:
            raise self.scan_error
        keys = [k for k in list(self.store) if fnmatch.fnmatchcase(k, match)]
        if self.duplicate_scan:
            keys = keys + keys[:1]
        for k in keys:
            yield k

    async def ttl(self, key: str) -> int:
        if key not in self.store:
            return -2
        return self.ttls.get(key, -1)

    async def get(self, key: str):
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False):
        if key in self.fail_set_for:
            raise ConnectionError(f"write refused for {key}")
        if nx and key in self.store:
            return None
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = int(ex)
        else:
            self.ttls.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        n = 0
        for k in keys:
            if self.store.pop(k, None) is not None:
                n += 1
            self.ttls.pop(k, None)
        return n

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return RedisSessionStore(fake_redis, pattern="chat:*", scan_count=500)


def make_messages(n: int, start: datetime | None = None, step_s: int = 30) -> list[dict]:
    start = start or datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
    out = []
    for i in range(n):
        ts = (start + timedelta(seconds=i * step_s)).isoformat().replace("+00:00", "Z")
        role = "user" if i % 2 == 0 else "assistant"
        out.append({"role": role, "content": f"message {i}", "ts": ts})
    return out


def put_chat(fake_redis: FakeRedis, key: str, messages: list[dict], *, ttl: int = 300, **metadata) -> None:
    fake_redis.store[key] = json.dumps({"messages": messages, "metadata": metadata})
    fake_redis.ttls[key] = ttl


# -----------------------------
# Analysis providers
# -----------------------------
class FakeProvider:
    def __init__(self, name: str, result: dict | None = None, error: Exception | None = None):
        self.name = name
        self.result = result if result is not None else {}
        self.error = error
        self.calls: list[dict] = []

    async def analyze(self, phone, product, session_id, conversation):
        self.calls.append(
            {"phone": phone, "product": product, "session_id": session_id, "conversation": conversation}
        )
        if self.error is not None:
            raise self.error
        return dict(self.result)


def analysis_payload(**overrides) -> dict:
    payload = {
        "prospect_name": "Rahul Sharma",
        "phone": "unknown",
        "email": "unknown",
        "company_name": "unknown",
        "region": "Mumbai",
        "primary_topic": "WhatsApp API pricing",
        "secondary_topics": ["integrations", "onboarding"],
        "conversation_summary": "Asked about pricing and onboarding.",
        "conversation_timeline_points": "Asked pricing → Asked onboarding → Requested demo",
        "intent_level": "high",
        "buyer_stage": "decision",
        "urgency": "high",
        "lead_score": 85,
        "recommended_routing": "sales",
        "next_action": "Book a demo",
        "partner_intent": "false",
        "key_questions": ["How long is setup?"],
    }
    payload.update(overrides)
    return payload


class RecordingDispatcher:
    def __init__(self):
        self.leads = []

    async def dispatch(self, lead):
        self.leads.append(lead)
        return DispatchReport(lead_id=str(lead.id))


@pytest.fixture
def primary():
    return FakeProvider("OpenAI", result=analysis_payload())


@pytest.fixture
def fallback():
    return FakeProvider("Gemini", result=analysis_payload())


@pytest.fixture
def recording_dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def make_deps(store, async_session_maker, primary, fallback, recording_dispatcher):
    def _make(
        *,
        dispatcher: FanOutDispatcher | RecordingDispatcher | None = None,
        config: RunConfig | None = None,
        **overrides,
    ) -> PipelineDeps:
        d = dispatcher if dispatcher is not None else recording_dispatcher
        kwargs = dict(
            store=store,
            session_maker=async_session_maker,
            analyzer=Analyzer(primary, fallback),
            config_provider=StaticConfigProvider(config or RunConfig()),
            dispatcher_factory=lambda _cfg: d,
            clock=lambda: FIXED_NOW,
        )
        kwargs.update(overrides)
        return PipelineDeps(**kwargs)

    return _make


def make_draft(lead_id: str = "lead-1", text: str = "USER: hi", **overrides):
    """A fully assembled lead, with any column overridden."""
    ctx = LeadContext(
        key="chat:919800000001::wa::s1",
        identity=SessionKeyInfo(phone="919800000001", product="wa", session_id="919800000001::wa::s1"),
        conversation=text,
        fingerprint=conversation_fingerprint(text),
        username="Priya Kapoor",
        business_info="Acme",
        email="priya@acme.in",
    )
    timing = TimingInfo(
        conversation_date="2025-01-15",
        start_time_ist="15:30:00",
        end_time_ist="15:36:00",
        duration_minutes=6,
        duration_seconds=0,
        total_messages=12,
        user_messages=6,
        assistant_messages=6,
    )
    draft = assemble_lead(
        ctx,
        enrich(analysis_payload(phone="919800000001")),
        timing,
        now=FIXED_NOW.replace(tzinfo=None),
        lead_id=lead_id,
    )
    return replace(draft, **overrides) if overrides else draft
