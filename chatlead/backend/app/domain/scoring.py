# app/domain/scoring.py
from __future__ import annotations

from typing import Any

from .parsing import is_unknown, to_int, to_str, to_str_list
from .types import EnrichedResult, Validation

TIMELINE_DELIMITER = " → "

REQUIRED_FIELDS = (
    "phone",
    "lead_score",
    "primary_topic",
    "intent_level",
    "buyer_stage",
    "recommended_routing",
)

_STR_FIELDS = (
    "prospect_name",
    "phone",
    "email",
    "company_name",
    "region",
    "primary_topic",
    "use_case_category",
    "need_summary",
    "conversation_summary",
    "timeline_notes",
    "intent_level",
    "buyer_stage",
    "urgency",
    "budget_bucket_inr",
    "estimated_scale",
    "sentiment_overall",
    "emotional_intensity",
    "motivation_type",
    "trust_level",
    "recommended_routing",
    "next_action",
)

_LIST_FIELDS = (
    "detected_phone_numbers",
    "detected_emails",
    "secondary_topics",
    "key_questions",
    "main_objections",
    "competitors_mentioned",
    "links_shared",
    "info_shared_by_assistant",
    "open_loops_or_commitments",
)


def clamp_score(x: Any) -> int:
    return max(0, min(100, to_int(x)))


def timeline_points(x: Any) -> tuple[str, ...]:
    if isinstance(x, str):
        return tuple(p.strip() for p in x.split(TIMELINE_DELIMITER) if p.strip())
    if isinstance(x, (list, tuple)):
        return to_str_list(x)
    return ()


def validate(raw: dict[str, Any]) -> Validation:
    missing = [f for f in REQUIRED_FIELDS if not raw.get(f) or raw.get(f) == "unknown"]
    completeness = round((len(REQUIRED_FIELDS) - len(missing)) / len(REQUIRED_FIELDS) * 100)
    return Validation(
        completeness=int(completeness),
        is_valid=not missing,
        missing_fields=tuple(missing),
    )


def enrich(raw: dict[str, Any] | None, *, hot_threshold: int = 70) -> EnrichedResult:
    """
    Normalize a provider payload into EnrichedResult and derive the lead flags.

    Pure: absent or mistyped fields resolve to "", () or 0 so nothing null-ish
    reaches the Lead, whichever provider produced the payload.
    """
    raw = raw if isinstance(raw, dict) else {}

    strs = {f: to_str(raw.get(f)) for f in _STR_FIELDS}
    lists = {f: to_str_list(raw.get(f)) for f in _LIST_FIELDS}
    score = clamp_score(raw.get("lead_score"))
    partner = raw.get("partner_intent")

    return EnrichedResult(
        **strs,
        **lists,
        conversation_timeline_points=timeline_points(raw.get("conversation_timeline_points")),
        lead_score=score,
        is_hot_lead=score >= hot_threshold,
        needs_immediate_followup=strs["urgency"].lower() == "immediate",
        is_enterprise=strs["recommended_routing"].lower() == "enterprise_sales",
        is_partner=partner is True or (isinstance(partner, str) and partner.strip().lower() == "true"),
        has_phone=not is_unknown(strs["phone"]),
        has_email=not is_unknown(strs["email"]),
        has_company=not is_unknown(strs["company_name"]),
        validation=validate(raw),
    )
