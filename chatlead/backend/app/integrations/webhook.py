from __future__ import annotations

import hmac
import hashlib
import json
import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from .base import WebhookDeliveryResult, iso, utc_now_iso

log = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-ChatLead-Signature"


def lead_query_params(lead: Any, event: str, timestamp: str | None = None) -> dict[str, str]:
    """The public subset of a lead, flattened to strings for a GET query."""

    def s(name: str) -> str:
        v = getattr(lead, name, None)
        return "" if v is None else str(v)

    def b(name: str) -> str:
        return "true" if getattr(lead, name, False) else "false"

    return {
        "event": event,
        "timestamp": timestamp or utc_now_iso(),
        "id": s("id"),
        "prospect_name": s("prospect_name"),
        "phone": s("phone"),
        "email": s("email"),
        "company_name": s("company_name"),
        "region": s("region"),
        "lead_score": str(getattr(lead, "lead_score", 0) or 0),
        "is_hot_lead": b("is_hot_lead"),
        "intent_level": s("intent_level"),
        "buyer_stage": s("buyer_stage"),
        "urgency": s("urgency"),
        "primary_topic": s("primary_topic"),
        "use_case_category": s("use_case_category"),
        "conversation_summary": s("conversation_summary"),
        "next_action": s("next_action"),
        "needs_immediate_followup": b("needs_immediate_followup"),
        "budget_bucket_inr": s("budget_bucket_inr"),
        "is_enterprise": b("is_enterprise"),
        "created_at": iso(getattr(lead, "created_at", None)),
    }


def build_webhook_url(url: str, query: str) -> str:
    return f"{url}{'&' if '?' in url else '?'}{query}"


def parse_custom_headers(raw: Any, *, subscription: str = "") -> dict[str, str]:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        log.warning("webhook %s: ignoring invalid custom headers JSON", subscription or "?")
        return {}
    if not isinstance(data, dict):
        log.warning("webhook %s: custom headers must be a JSON object", subscription or "?")
        return {}
    return {str(k): str(v) for k, v in data.items()}


class WebhookSink:
    def __init__(
        self,
        url: str,
        *,
        headers: Any = None,
        secret: str | None = None,
        timeout_s: float = 20,
        name: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.name = name or url
        self.custom_headers = parse_custom_headers(headers, subscription=self.name)
        self.secret = secret
        self.timeout_s = timeout_s
        self._client = client

    def _sign(self, body: bytes) -> str | None:
        if not self.secret:
            return None
        digest = hmac.new(self.secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return digest

    def build_request(self, event: str, lead: Any, timestamp: str | None = None) -> tuple[str, dict[str, str]]:
        query = urlencode(lead_query_params(lead, event, timestamp))
        headers = {"Content-Type": "application/json", **self.custom_headers}
        sig = self._sign(query.encode("utf-8"))
        if sig:
            headers[SIGNATURE_HEADER] = sig
        return build_webhook_url(self.url, query), headers

    async def deliver(self, event: str, lead: Any) -> WebhookDeliveryResult:
        url, headers = self.build_request(event, lead)

        try:
            if self._client is not None:
                r = await self._client.get(url, headers=headers, timeout=self.timeout_s)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    r = await client.get(url, headers=headers)
        except Exception as e:
            return WebhookDeliveryResult(ok=False, error=str(e))

        log.info("webhook %s event=%s lead=%s status=%s", self.name, event, getattr(lead, "id", "?"), r.status_code)
        if 200 <= r.status_code < 300:
            return WebhookDeliveryResult(ok=True, status_code=r.status_code)
        return WebhookDeliveryResult(ok=False, status_code=r.status_code, error=f"HTTP {r.status_code}: {r.text[:500]}")
