from datetime import datetime

from app.domain.assembly import LeadContext, assemble_lead, engagement_rate, messages_per_minute
from app.domain.scoring import enrich
from app.domain.types import SessionKeyInfo, TimingInfo

from conftest import analysis_payload

NOW = datetime(2025, 1, 15, 12, 0, 0)


def _timing(total=12, user=6, minutes=4):
    return TimingInfo(
        conversation_date="2025-01-15",
        start_time_ist="15:30:00",
        end_time_ist="15:34:00",
        duration_minutes=minutes,
        duration_seconds=0,
        total_messages=total,
        user_messages=user,
        assistant_messages=total - user,
    )


def _ctx(**kw):
    base = dict(
        key="chat:919800000001::whatsapp-api::s1",
        identity=SessionKeyInfo(phone="919800000001", product="whatsapp-api", session_id="919800000001::whatsapp-api::s1"),
        conversation="USER: hi",
        fingerprint="f" * 64,
    )
    base.update(kw)
    return LeadContext(**base)


def test_session_fields_win_over_provider_guesses():
    draft = assemble_lead(
        _ctx(username="Priya", business_info="Acme"),
        enrich(analysis_payload(company_name="Other Co")),
        _timing(),
        now=NOW,
        lead_id="lead-1",
    )
    assert draft.id == "lead-1"
    assert draft.prospect_name == "Priya"
    assert draft.company_name == "Acme"
    assert draft.phone == "919800000001"
    assert draft.session_id == "919800000001::whatsapp-api::s1"
    assert draft.source == "redis"
    assert draft.channel == "WhatsApp"
    assert draft.status == "new"
    assert draft.created_at == NOW


def test_unknown_provider_values_fall_back():
    draft = assemble_lead(
        _ctx(email="priya@acme.in"),
        enrich(analysis_payload(prospect_name="unknown", region="unknown", email="unknown")),
        _timing(),
        now=NOW,
    )
    assert draft.prospect_name == "Unknown Lead"
    assert draft.region == "Unknown"
    assert draft.email == "priya@acme.in"
    assert draft.company_name == ""
    assert draft.id


def test_timing_metrics():
    assert engagement_rate(_timing(total=12, user=5)) == 41.7
    assert engagement_rate(_timing(total=0, user=0)) == 0.0
    assert messages_per_minute(_timing(total=12, minutes=5)) == 2.4
    assert messages_per_minute(_timing(minutes=0)) == 0.0


def test_to_row_converts_tuples_to_lists():
    draft = assemble_lead(_ctx(), enrich(analysis_payload()), _timing(), now=NOW)
    row = draft.to_row()
    assert row["secondary_topics"] == ["integrations", "onboarding"]
    assert row["missing_fields"] == ["phone"]
    assert row["total_messages"] == 12
