from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
import re
from typing import Protocol, Any

_EMAIL_SHAPE_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class SyncResult:
    success: bool
    error: str | None = None
    skipped: bool = False
    # config keys to merge back into the integration row (refreshed tokens, sheet id, counters)
    updates: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookDeliveryResult:
    ok: bool
    status_code: int | None = None
    error: str | None = None


class SyncAdapter(Protocol):
    name: str

    def is_live_sync_enabled(self) -> bool:
        ...

    async def sync(self, lead: Any) -> SyncResult:
        ...


class OAuthConfigMixin:
    """Shared token handling for adapters backed by an integration's config_json."""

    config: dict[str, Any]

    def is_connected(self) -> bool:
        return bool(self.config.get("access_token") and self.config.get("refresh_token"))

    def is_live_sync_enabled(self) -> bool:
        return self.is_connected() and self.config.get("live_sync") is True


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def lead_url(base: str, lead_id: str) -> str:
    return f"{base.rstrip('/')}/{lead_id}"


def is_valid_email(email: str | None) -> bool:
    if not email or email.lower() == "unknown":
        return False
    return bool(_EMAIL_SHAPE_RE.match(email))


def is_valid_phone(phone: str | None) -> bool:
    # unrendered bot placeholders look like ${waba_mobile}
    if not phone or "${" in phone or "}" in phone:
        return False
    return sum(ch.isdigit() for ch in phone) >= 7


def split_name(name: str | None) -> tuple[str, str]:
    parts = (name or "").split(" ")
    return parts[0], " ".join(parts[1:])


def yes_no(flag: Any) -> str:
    return "Yes" if flag else "No"


def iso(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value or "")
