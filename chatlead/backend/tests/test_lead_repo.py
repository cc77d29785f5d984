from datetime import datetime
from dataclasses import replace

import pytest

from app.adapters.repos.leads import LeadRepository
from app.domain.assembly import LeadContext, assemble_lead
from app.domain.conversation import extract_timing_info
from app.domain.errors import DuplicateConversation
from app.domain.fingerprint import conversation_fingerprint
from app.domain.scoring import enrich
from app.domain.types import ChatMessage, SessionKeyInfo
from app.models import LeadStatus

from conftest import analysis_payload

TEXT = "USER: I need the WhatsApp API\n\nASSISTANT: Sure"


def _draft(text=TEXT, lead_id=None):
    ctx = LeadContext(
        key="chat:919800000001::wa::s1",
        identity=SessionKeyInfo(phone="919800000001", product="wa", session_id="919800000001::wa::s1"),
        conversation=text,
        fingerprint=conversation_fingerprint(text),
        business_info="Acme",
    )
    timing = extract_timing_info([ChatMessage(role="user", content="x")], now=datetime(2025, 1, 15))
    return assemble_lead(ctx, enrich(analysis_payload()), timing, now=datetime(2025, 1, 15, 12), lead_id=lead_id)


@pytest.mark.asyncio
async def test_insert_and_dedup(async_session_maker):
    async with async_session_maker() as session:
        repo = LeadRepository(session)
        assert await repo.is_duplicate(TEXT) is False

        lead = await repo.insert(_draft())
        assert lead.status == LeadStatus.new
        assert lead.secondary_topics == ["integrations", "onboarding"]
        assert lead.company_name == "Acme"

        # trailing whitespace differences normalize to the same fingerprint
        assert await repo.is_duplicate(TEXT + "   \n") is True
        found = await repo.get_by_fingerprint(conversation_fingerprint(TEXT))
        assert found is not None and found.id == lead.id


@pytest.mark.asyncio
async def test_unique_fingerprint_violation_is_duplicate(async_session_maker):
    async with async_session_maker() as session:
        await LeadRepository(session).insert(_draft())

    async with async_session_maker() as session:
        repo = LeadRepository(session)
        with pytest.raises(DuplicateConversation) as ei:
            await repo.insert(_draft(), key="chat:919800000001::wa::s1")
        assert ei.value.key == "chat:919800000001::wa::s1"

        # session still usable after the rollback
        other = replace(_draft("USER: different"), id="lead-2")
        saved = await repo.insert(other)
        assert (await repo.get("lead-2")).id == saved.id
