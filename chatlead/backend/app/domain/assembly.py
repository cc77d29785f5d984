# app/domain/assembly.py
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from .parsing import known_or
from .types import EnrichedResult, SessionKeyInfo, TimingInfo

DEFAULT_PROSPECT_NAME = "Unknown Lead"
DEFAULT_REGION = "Unknown"
LEAD_SOURCE = "redis"
LEAD_CHANNEL = "WhatsApp"


@dataclass(frozen=True)
class LeadContext:
    """Everything the pre-processing step resolved from the stored session."""

    key: str
    identity: SessionKeyInfo
    conversation: str
    fingerprint: str
    email: str = ""
    username: str = ""
    business_info: str = ""


@dataclass(frozen=True)
class LeadDraft:
    id: str

    prospect_name: str
    phone: str
    email: str
    company_name: str
    region: str

    conversation_date: str
    start_time_ist: str
    end_time_ist: str
    duration_minutes: int
    duration_seconds: int
    total_messages: int
    user_messages: int
    assistant_messages: int
    messages_per_minute: float
    engagement_rate: float

    session_id: str
    conversation: str
    conversation_fingerprint: str
    conversation_summary: str
    conversation_timeline_points: tuple[str, ...]
    timeline_notes: str
    info_shared_by_assistant: tuple[str, ...]
    links_shared: tuple[str, ...]
    open_loops_or_commitments: tuple[str, ...]
    detected_phone_numbers: tuple[str, ...]
    detected_emails: tuple[str, ...]

    primary_topic: str
    secondary_topics: tuple[str, ...]
    use_case_category: str
    need_summary: str

    lead_score: int
    intent_level: str
    buyer_stage: str
    urgency: str
    is_hot_lead: bool

    sentiment_overall: str
    emotional_intensity: str
    motivation_type: str
    trust_level: str

    next_action: str
    recommended_routing: str
    needs_immediate_followup: bool
    key_questions: tuple[str, ...]
    main_objections: tuple[str, ...]
    competitors_mentioned: tuple[str, ...]

    budget_bucket_inr: str
    estimated_scale: str
    partner_intent: bool
    is_enterprise: bool
    is_partner: bool

    completeness: int
    is_valid: bool
    missing_fields: tuple[str, ...]
    has_phone: bool
    has_email: bool
    has_company: bool

    source: str
    channel: str
    status: str
    created_at: datetime
    updated_at: datetime

    def to_row(self) -> dict[str, Any]:
        """Column values for the leads table (tuples become JSON lists)."""
        row = asdict(self)
        for k, v in row.items():
            if isinstance(v, tuple):
                row[k] = list(v)
        return row


def engagement_rate(timing: TimingInfo) -> float:
    if timing.total_messages <= 0:
        return 0.0
    return round(timing.user_messages / timing.total_messages * 100, 1)


def messages_per_minute(timing: TimingInfo) -> float:
    if timing.duration_minutes <= 0:
        return 0.0
    return round(timing.total_messages / timing.duration_minutes, 2)


def assemble_lead(
    ctx: LeadContext,
    enriched: EnrichedResult,
    timing: TimingInfo,
    *,
    now: datetime,
    lead_id: str | None = None,
) -> LeadDraft:
    """
    Merge session facts, timing facts and enrichment into one immutable draft.

    Session-supplied name/company win over provider guesses; timing always comes
    from message timestamps.
    """
    prospect_name = ctx.username or known_or(enriched.prospect_name, DEFAULT_PROSPECT_NAME)
    company_name = ctx.business_info or known_or(enriched.company_name, "")

    return LeadDraft(
        id=lead_id or str(uuid.uuid4()),
        prospect_name=prospect_name,
        phone=known_or(enriched.phone, ctx.identity.phone),
        email=known_or(enriched.email, ctx.email),
        company_name=company_name,
        region=known_or(enriched.region, DEFAULT_REGION),
        conversation_date=timing.conversation_date,
        start_time_ist=timing.start_time_ist,
        end_time_ist=timing.end_time_ist,
        duration_minutes=timing.duration_minutes,
        duration_seconds=timing.duration_seconds,
        total_messages=timing.total_messages,
        user_messages=timing.user_messages,
        assistant_messages=timing.assistant_messages,
        messages_per_minute=messages_per_minute(timing),
        engagement_rate=engagement_rate(timing),
        session_id=ctx.identity.session_id,
        conversation=ctx.conversation,
        conversation_fingerprint=ctx.fingerprint,
        conversation_summary=enriched.conversation_summary,
        conversation_timeline_points=enriched.conversation_timeline_points,
        timeline_notes=enriched.timeline_notes,
        info_shared_by_assistant=enriched.info_shared_by_assistant,
        links_shared=enriched.links_shared,
        open_loops_or_commitments=enriched.open_loops_or_commitments,
        detected_phone_numbers=enriched.detected_phone_numbers,
        detected_emails=enriched.detected_emails,
        primary_topic=enriched.primary_topic,
        secondary_topics=enriched.secondary_topics,
        use_case_category=enriched.use_case_category,
        need_summary=enriched.need_summary,
        lead_score=enriched.lead_score,
        intent_level=enriched.intent_level,
        buyer_stage=enriched.buyer_stage,
        urgency=enriched.urgency,
        is_hot_lead=enriched.is_hot_lead,
        sentiment_overall=enriched.sentiment_overall,
        emotional_intensity=enriched.emotional_intensity,
        motivation_type=enriched.motivation_type,
        trust_level=enriched.trust_level,
        next_action=enriched.next_action,
        recommended_routing=enriched.recommended_routing,
        needs_immediate_followup=enriched.needs_immediate_followup,
        key_questions=enriched.key_questions,
        main_objections=enriched.main_objections,
        competitors_mentioned=enriched.competitors_mentioned,
        budget_bucket_inr=enriched.budget_bucket_inr,
        estimated_scale=enriched.estimated_scale,
        partner_intent=enriched.is_partner,
        is_enterprise=enriched.is_enterprise,
        is_partner=enriched.is_partner,
        completeness=enriched.validation.completeness,
        is_valid=enriched.validation.is_valid,
        missing_fields=enriched.validation.missing_fields,
        has_phone=enriched.has_phone,
        has_email=enriched.has_email,
        has_company=enriched.has_company,
        source=LEAD_SOURCE,
        channel=LEAD_CHANNEL,
        status="new",
        created_at=now,
        updated_at=now,
    )
