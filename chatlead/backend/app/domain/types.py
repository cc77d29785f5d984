# app/domain/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str
    ts: str | None = None


@dataclass(frozen=True)
class ChatMetadata:
    phone: str = ""
    product: str = ""
    session_id: str = ""
    business_info: str = ""
    username: str = ""
    email: str = ""
    processed_to_sheets: bool = False
    processed_at: str | None = None


@dataclass(frozen=True)
class ChatSession:
    messages: tuple[ChatMessage, ...] = ()
    metadata: ChatMetadata = field(default_factory=ChatMetadata)
    # Raw decoded payload, rewritten verbatim (plus processed flags) on mark-consumed.
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionKeyInfo:
    phone: str
    product: str
    session_id: str


@dataclass(frozen=True)
class TimingInfo:
    conversation_date: str
    start_time_ist: str
    end_time_ist: str
    duration_minutes: int
    duration_seconds: int
    total_messages: int
    user_messages: int
    assistant_messages: int


@dataclass(frozen=True)
class Validation:
    completeness: int
    is_valid: bool
    missing_fields: tuple[str, ...]


@dataclass(frozen=True)
class EnrichedResult:
    prospect_name: str
    phone: str
    email: str
    company_name: str
    region: str

    detected_phone_numbers: tuple[str, ...]
    detected_emails: tuple[str, ...]
    primary_topic: str
    secondary_topics: tuple[str, ...]
    use_case_category: str
    need_summary: str
    conversation_summary: str
    conversation_timeline_points: tuple[str, ...]
    timeline_notes: str

    intent_level: str
    buyer_stage: str
    urgency: str
    budget_bucket_inr: str
    estimated_scale: str
    sentiment_overall: str
    emotional_intensity: str
    motivation_type: str
    trust_level: str

    key_questions: tuple[str, ...]
    main_objections: tuple[str, ...]
    competitors_mentioned: tuple[str, ...]
    links_shared: tuple[str, ...]
    info_shared_by_assistant: tuple[str, ...]
    open_loops_or_commitments: tuple[str, ...]

    lead_score: int
    recommended_routing: str
    next_action: str

    is_hot_lead: bool
    needs_immediate_followup: bool
    is_enterprise: bool
    is_partner: bool
    has_phone: bool
    has_email: bool
    has_company: bool
    validation: Validation


class EventType(str, Enum):
    new_lead = "newLead"
    hot_lead = "hotLead"
    urgent_followup = "urgentFollowup"
    enterprise_lead = "enterpriseLead"
    high_score_lead = "highScoreLead"
