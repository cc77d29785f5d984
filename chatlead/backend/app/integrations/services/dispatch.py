# app/integrations/services/dispatch.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.domain.errors import FanOutFailure
from app.domain.policies import lead_events
from app.domain.types import EventType
from app.models import IntegrationType

from ..base import SyncAdapter
from ..sync.google_sheets import GoogleSheetsSync
from ..sync.hubspot import HubSpotSync
from ..sync.zoho import ZohoSync
from ..webhook import WebhookSink
from .registry import RunConfig, WebhookSubscription, apply_integration_updates

log = logging.getLogger(__name__)

UpdatesHook = Callable[[int, dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class DeliveryOutcome:
    target: str
    kind: str  # sync|webhook
    event: str | None = None
    ok: bool = False
    error: str | None = None
    skipped: bool = False


@dataclass(frozen=True)
class DispatchReport:
    lead_id: str
    outcomes: tuple[DeliveryOutcome, ...] = ()

    @property
    def failures(self) -> tuple[DeliveryOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.ok)

    def failure(self) -> FanOutFailure | None:
        if not self.failures:
            return None
        parts = [f"{o.kind}:{o.target}{'/' + o.event if o.event else ''} ({o.error})" for o in self.failures]
        return FanOutFailure(f"lead {self.lead_id}: {len(parts)} delivery failure(s): " + "; ".join(parts))


@dataclass
class SyncTarget:
    """
    One configured sync integration. `config` is the run's working copy; adapter
    updates (refreshed tokens, sheet ids) are merged into it so later leads in
    the same run reuse them. `lock` serializes leads through the target so each
    adapter is built from the previous lead's merged config.
    """

    name: str
    factory: Callable[[dict[str, Any]], SyncAdapter]
    config: dict[str, Any] = field(default_factory=dict)
    integration_id: int | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def adapter(self) -> SyncAdapter:
        return self.factory(dict(self.config))


def build_sync_targets(config: RunConfig, *, client: httpx.AsyncClient) -> list[SyncTarget]:
    common = {"client": client}
    targets: list[SyncTarget] = []

    sheets = config.integration(IntegrationType.google_sheets)
    if sheets:
        targets.append(
            SyncTarget(
                name=sheets.name,
                integration_id=sheets.id,
                config=dict(sheets.config),
                factory=lambda cfg: GoogleSheetsSync(
                    cfg,
                    client_id=settings.GOOGLE_CLIENT_ID,
                    client_secret=settings.GOOGLE_CLIENT_SECRET,
                    **common,
                ),
            )
        )

    hubspot = config.integration(IntegrationType.hubspot)
    if hubspot:
        targets.append(
            SyncTarget(
                name=hubspot.name,
                integration_id=hubspot.id,
                config=dict(hubspot.config),
                factory=lambda cfg: HubSpotSync(
                    cfg,
                    lead_url_base=settings.LEAD_URL_BASE,
                    client_id=settings.HUBSPOT_CLIENT_ID,
                    client_secret=settings.HUBSPOT_CLIENT_SECRET,
                    **common,
                ),
            )
        )

    zoho = config.integration(IntegrationType.zoho_crm)
    if zoho:
        targets.append(
            SyncTarget(
                name=zoho.name,
                integration_id=zoho.id,
                config=dict(zoho.config),
                factory=lambda cfg: ZohoSync(
                    cfg,
                    lead_url_base=settings.LEAD_URL_BASE,
                    client_id=settings.ZOHO_CLIENT_ID,
                    client_secret=settings.ZOHO_CLIENT_SECRET,
                    **common,
                ),
            )
        )

    return targets


def persist_updates_with(session_maker: async_sessionmaker[AsyncSession]) -> UpdatesHook:
    async def _persist(integration_id: int, updates: dict[str, Any]) -> None:
        async with session_maker() as session:
            await apply_integration_updates(session, integration_id=integration_id, updates=updates)
            await session.commit()

    return _persist


class FanOutDispatcher:
    """
    Every live sync target and every (subscription x subscribed event) webhook
    runs concurrently. One target failing never affects another.
    """

    def __init__(
        self,
        *,
        sync_targets: Sequence[SyncTarget] = (),
        webhooks: Sequence[WebhookSubscription] = (),
        client: httpx.AsyncClient | None = None,
        timeout_s: float = 20,
        high_score_threshold: int = 80,
        on_updates: Optional[UpdatesHook] = None,
    ) -> None:
        self.sync_targets = list(sync_targets)
        self.webhooks = list(webhooks)
        self.client = client
        self.timeout_s = timeout_s
        self.high_score_threshold = high_score_threshold
        self.on_updates = on_updates

    @classmethod
    def from_config(
        cls,
        config: RunConfig,
        *,
        client: httpx.AsyncClient,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
    ) -> "FanOutDispatcher":
        return cls(
            sync_targets=build_sync_targets(config, client=client),
            webhooks=config.webhooks,
            client=client,
            timeout_s=settings.HTTP_TIMEOUT_S,
            high_score_threshold=settings.HIGH_SCORE_THRESHOLD,
            on_updates=persist_updates_with(session_maker) if session_maker else None,
        )

    async def _run_sync(self, target: SyncTarget, lead: Any) -> DeliveryOutcome | None:
        async with target.lock:
            adapter = target.adapter()
            if not adapter.is_live_sync_enabled():
                return None
            return await self._sync_locked(target, adapter, lead)

    async def _sync_locked(self, target: SyncTarget, adapter: SyncAdapter, lead: Any) -> DeliveryOutcome:
        try:
            res = await adapter.sync(lead)
        except Exception as e:
            log.exception("sync %s failed for lead %s", target.name, lead.id)
            return DeliveryOutcome(target=target.name, kind="sync", ok=False, error=str(e) or type(e).__name__)

        if res.updates:
            target.config.update(res.updates)
            if self.on_updates and target.integration_id is not None:
                try:
                    await self.on_updates(target.integration_id, dict(res.updates))
                except Exception:
                    log.exception("could not store config updates for integration %s", target.name)

        if not res.success:
            log.warning("sync %s did not complete for lead %s: %s", target.name, lead.id, res.error)
        return DeliveryOutcome(
            target=target.name,
            kind="sync",
            ok=res.success,
            error=res.error,
            skipped=res.skipped,
        )

    async def _run_webhook(self, sub: WebhookSubscription, event: EventType, lead: Any) -> DeliveryOutcome:
        try:
            sink = WebhookSink(
                sub.url,
                headers=sub.headers,
                secret=sub.secret,
                timeout_s=self.timeout_s,
                name=sub.name,
                client=self.client,
            )
            res = await sink.deliver(event.value, lead)
        except Exception as e:
            log.exception("webhook %s/%s failed for lead %s", sub.name, event.value, lead.id)
            return DeliveryOutcome(target=sub.name, kind="webhook", event=event.value, ok=False, error=str(e))

        if not res.ok:
            log.warning("webhook %s/%s failed for lead %s: %s", sub.name, event.value, lead.id, res.error)
        return DeliveryOutcome(target=sub.name, kind="webhook", event=event.value, ok=res.ok, error=res.error)

    async def dispatch(self, lead: Any) -> DispatchReport:
        tasks: list[Awaitable[DeliveryOutcome | None]] = [self._run_sync(t, lead) for t in self.sync_targets]

        events = lead_events(lead, high_score_threshold=self.high_score_threshold)
        for sub in self.webhooks:
            for event in EventType:
                if event in events and sub.wants(event):
                    tasks.append(self._run_webhook(sub, event, lead))

        outcomes = await asyncio.gather(*tasks) if tasks else []
        return DispatchReport(lead_id=str(lead.id), outcomes=tuple(o for o in outcomes if o is not None))
