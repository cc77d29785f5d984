# app/integrations/sync/hubspot.py
from __future__ import annotations

import logging
from typing import Any

from ..base import SyncResult, is_valid_email, lead_url, split_name, utc_now_iso
from .oauth import OAuthSyncAdapter, TokenRefreshFailed, error_message

log = logging.getLogger(__name__)

HUBSPOT_API = "https://api.hubapi.com"
NOTE_TO_CONTACT_ASSOCIATION = 202


def contact_properties(lead: Any, url: str) -> dict[str, str]:
    props: dict[str, str] = {}
    if lead.prospect_name:
        props["firstname"], props["lastname"] = split_name(lead.prospect_name)
    if is_valid_email(lead.email):
        props["email"] = lead.email
    if lead.phone:
        props["phone"] = lead.phone
    if lead.company_name:
        props["company"] = lead.company_name
    if lead.region:
        props["city"] = lead.region
    if lead.conversation_summary:
        props["message"] = lead.conversation_summary[:65535]

    props["hs_lead_status"] = "OPEN_DEAL" if lead.is_hot_lead else "NEW"
    if lead.buyer_stage == "decision":
        props["lifecyclestage"] = "opportunity"
    elif lead.buyer_stage == "consideration":
        props["lifecyclestage"] = "marketingqualifiedlead"
    else:
        props["lifecyclestage"] = "lead"

    # website carries the lead URL so re-syncs of the same lead are detected
    props["website"] = url
    return props


def note_body(lead: Any, generated_at: str) -> str:
    lines = [
        "CHATLEAD LEAD DETAILS",
        f"Generated: {generated_at}",
        "",
        "CONTACT",
        f"Name: {lead.prospect_name or 'Unknown'}",
        f"Phone: {lead.phone or 'N/A'}",
        f"Email: {lead.email or 'N/A'}",
        f"Company: {lead.company_name or 'N/A'}",
        f"Region: {lead.region or 'N/A'}",
        "",
        "SCORING",
        f"Lead Score: {lead.lead_score or 0}/100",
        f"Intent Level: {lead.intent_level or 'N/A'}",
        f"Buyer Stage: {lead.buyer_stage or 'N/A'}",
        f"Urgency: {lead.urgency or 'N/A'}",
        f"Hot Lead: {'YES' if lead.is_hot_lead else 'No'}",
        "",
        "RECOMMENDED ACTIONS",
        f"Next Action: {lead.next_action or 'N/A'}",
        f"Routing: {lead.recommended_routing or 'N/A'}",
        f"Immediate Followup: {'YES' if lead.needs_immediate_followup else 'No'}",
        "",
        "SUMMARY",
        lead.conversation_summary or "No summary available",
        "",
        f"Date: {lead.conversation_date or 'N/A'}",
        f"Duration: {lead.duration_minutes or 0} min | Messages: {lead.total_messages or 0}",
    ]
    if lead.key_questions:
        lines.append(f"Key questions: {'; '.join(lead.key_questions)}")
    if lead.main_objections:
        lines.append(f"Objections: {'; '.join(lead.main_objections)}")
    lines.append(f"Budget: {lead.budget_bucket_inr or 'N/A'} | Scale: {lead.estimated_scale or 'N/A'}")
    return "\n".join(lines)


class HubSpotSync(OAuthSyncAdapter):
    name = "hubspot"

    def __init__(self, config: dict[str, Any], *, lead_url_base: str, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.lead_url_base = lead_url_base

    def token_url(self) -> str:
        return f"{HUBSPOT_API}/oauth/v1/token"

    async def _search_contacts(self, prop: str, value: str) -> list[dict[str, Any]] | None:
        r = await self.send(
            "POST",
            f"{HUBSPOT_API}/crm/v3/objects/contacts/search",
            json={"filterGroups": [{"filters": [{"propertyName": prop, "operator": "EQ", "value": value}]}]},
        )
        if r.status_code >= 400:
            return None
        return r.json().get("results") or []

    async def sync(self, lead: Any) -> SyncResult:
        if not self.is_connected():
            return SyncResult(success=False, error="HubSpot not connected")

        url = lead_url(self.lead_url_base, lead.id)
        properties = contact_properties(lead, url)

        try:
            if await self._search_contacts("website", url):
                log.info("hubspot: lead %s already synced, skipping", lead.id)
                self.updates["last_sync"] = utc_now_iso()
                return SyncResult(success=True, skipped=True, updates=self.updates)

            contact_id: str | None = None
            if is_valid_email(lead.email):
                found = await self._search_contacts("email", lead.email)
                if found:
                    contact_id = str(found[0].get("id"))

            if contact_id:
                r = await self.send(
                    "PATCH",
                    f"{HUBSPOT_API}/crm/v3/objects/contacts/{contact_id}",
                    json={"properties": properties},
                )
                if r.status_code >= 400:
                    return SyncResult(success=False, error=error_message(r, "Update failed"), updates=self.updates)
            else:
                r = await self.send(
                    "POST",
                    f"{HUBSPOT_API}/crm/v3/objects/contacts",
                    json={"properties": properties},
                )
                if r.status_code >= 400:
                    return SyncResult(success=False, error=error_message(r, "Create failed"), updates=self.updates)
                contact_id = str(r.json().get("id") or "") or None

            if contact_id:
                now = utc_now_iso()
                r = await self.send(
                    "POST",
                    f"{HUBSPOT_API}/crm/v3/objects/notes",
                    json={
                        "properties": {"hs_timestamp": now, "hs_note_body": note_body(lead, now)},
                        "associations": [
                            {
                                "to": {"id": contact_id},
                                "types": [
                                    {
                                        "associationCategory": "HUBSPOT_DEFINED",
                                        "associationTypeId": NOTE_TO_CONTACT_ASSOCIATION,
                                    }
                                ],
                            }
                        ],
                    },
                )
                if r.status_code >= 400:
                    log.warning("hubspot: note for contact %s failed: HTTP %s", contact_id, r.status_code)

        except TokenRefreshFailed as e:
            return SyncResult(success=False, error=str(e), updates=self.updates)

        self.updates["last_sync"] = utc_now_iso()
        self.updates["leads_exported"] = int(self.config.get("leads_exported") or 0) + 1
        log.info("hubspot: synced lead %s contact=%s", lead.id, contact_id)
        return SyncResult(success=True, updates=self.updates)
