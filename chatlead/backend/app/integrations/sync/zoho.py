# app/integrations/sync/zoho.py
from __future__ import annotations

import logging
from typing import Any

import httpx

from ..base import SyncResult, is_valid_email, is_valid_phone, lead_url, split_name, utc_now_iso
from .oauth import OAuthSyncAdapter, TokenRefreshFailed, error_message

log = logging.getLogger(__name__)

DEFAULT_API_DOMAIN = "https://www.zohoapis.com"


def accounts_url(api_domain: str) -> str:
    if ".in" in api_domain:
        return "https://accounts.zoho.in"
    if ".eu" in api_domain:
        return "https://accounts.zoho.eu"
    return "https://accounts.zoho.com"


def description(lead: Any) -> str:
    parts: list[str] = []
    if lead.conversation_summary:
        parts += [lead.conversation_summary, "---"]
    parts += [
        "LEAD INTELLIGENCE:",
        f"- Lead Score: {lead.lead_score or 0}/100",
        f"- Intent: {lead.intent_level or 'N/A'} | Buyer Stage: {lead.buyer_stage or 'N/A'}",
        f"- Urgency: {lead.urgency or 'N/A'} | Hot Lead: {'YES' if lead.is_hot_lead else 'No'}",
        "",
        "CONVERSATION:",
        f"- Date: {lead.conversation_date or 'N/A'}",
        f"- Duration: {lead.duration_minutes or 0} min | Messages: {lead.total_messages or 0}",
        "",
        "RECOMMENDED ACTIONS:",
        f"- Next Action: {lead.next_action or 'N/A'}",
        f"- Routing: {lead.recommended_routing or 'N/A'}",
        f"- Immediate Followup: {'YES' if lead.needs_immediate_followup else 'No'}",
    ]
    if lead.key_questions:
        parts.append(f"KEY QUESTIONS: {'; '.join(lead.key_questions)}")
    if lead.main_objections:
        parts.append(f"OBJECTIONS: {'; '.join(lead.main_objections)}")
    parts.append(f"Budget: {lead.budget_bucket_inr or 'N/A'} | Scale: {lead.estimated_scale or 'N/A'}")
    return "\n".join(parts)


def lead_record(lead: Any, url: str) -> dict[str, Any]:
    first, last = split_name(lead.prospect_name)
    data: dict[str, Any] = {
        "First_Name": first or "Unknown",
        "Last_Name": last or "Lead",
        "Company": lead.company_name or "Unknown Company",
        "Lead_Source": "WhatsApp Chat",
        "Lead_Status": "Hot" if lead.is_hot_lead else "Not Contacted",
        "Description": description(lead),
        "Website": url,
    }
    if is_valid_phone(lead.phone):
        data["Phone"] = lead.phone
    if is_valid_email(lead.email):
        data["Email"] = lead.email
    if lead.region:
        data["City"] = lead.region
    return data


def _records(r: httpx.Response) -> list[dict[str, Any]]:
    # search answers 204 with an empty body when nothing matches
    if r.status_code >= 400 or not r.content:
        return []
    try:
        return r.json().get("data") or []
    except ValueError:
        return []


class ZohoSync(OAuthSyncAdapter):
    name = "zoho_crm"
    auth_scheme = "Zoho-oauthtoken"

    def __init__(self, config: dict[str, Any], *, lead_url_base: str, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.lead_url_base = lead_url_base
        self.api_domain = (self.config.get("api_domain") or DEFAULT_API_DOMAIN).rstrip("/")

    def token_url(self) -> str:
        return f"{accounts_url(self.api_domain)}/oauth/v2/token"

    async def sync(self, lead: Any) -> SyncResult:
        if not self.is_connected():
            return SyncResult(success=False, error="Zoho CRM not connected")

        url = lead_url(self.lead_url_base, lead.id)
        record = lead_record(lead, url)
        search_url = f"{self.api_domain}/crm/v2/Leads/search"

        try:
            r = await self.send("GET", search_url, params={"criteria": f"(Website:equals:{url})"})
            if _records(r):
                log.info("zoho: lead %s already synced, skipping", lead.id)
                self.updates["last_sync"] = utc_now_iso()
                return SyncResult(success=True, skipped=True, updates=self.updates)

            params: dict[str, str] | None = None
            if is_valid_email(lead.email):
                params = {"email": lead.email}
            elif is_valid_phone(lead.phone):
                params = {"phone": lead.phone}

            existing_id: str | None = None
            if params:
                found = _records(await self.send("GET", search_url, params=params))
                if found:
                    existing_id = str(found[0].get("id"))

            if existing_id:
                r = await self.send("PUT", f"{self.api_domain}/crm/v2/Leads/{existing_id}", json={"data": [record]})
            else:
                r = await self.send("POST", f"{self.api_domain}/crm/v2/Leads", json={"data": [record]})

            if r.status_code >= 400:
                return SyncResult(success=False, error=error_message(r, "Zoho write failed"), updates=self.updates)

        except TokenRefreshFailed as e:
            return SyncResult(success=False, error=str(e), updates=self.updates)

        self.updates["last_sync"] = utc_now_iso()
        self.updates["leads_exported"] = int(self.config.get("leads_exported") or 0) + 1
        log.info("zoho: synced lead %s (%s)", lead.id, "updated" if existing_id else "created")
        return SyncResult(success=True, updates=self.updates)
