# app/domain/policies.py
from __future__ import annotations

from typing import Any

from .types import EventType


def is_ttl_eligible(ttl: int, *, ttl_min: int, ttl_max: int) -> bool:
    """
    Only idle sessions are analyzed. A TTL near the initial value means the chat
    is still live; a negative TTL means no expiry (-1) or a missing key (-2).
    """
    return ttl_min <= ttl <= ttl_max


def lead_events(lead: Any, *, high_score_threshold: int = 80) -> frozenset[EventType]:
    """
    Webhook events for a persisted lead. newLead always fires.
    """
    events = {EventType.new_lead}
    if getattr(lead, "is_hot_lead", False):
        events.add(EventType.hot_lead)
    if getattr(lead, "needs_immediate_followup", False):
        events.add(EventType.urgent_followup)
    if getattr(lead, "is_enterprise", False):
        events.add(EventType.enterprise_lead)
    if (getattr(lead, "lead_score", 0) or 0) >= high_score_threshold:
        events.add(EventType.high_score_lead)
    return frozenset(events)
