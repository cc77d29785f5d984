import asyncio
from datetime import date
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from app.integrations.base import SyncResult
from app.integrations.services.dispatch import FanOutDispatcher, SyncTarget
from app.integrations.services.registry import WebhookSubscription
from app.integrations.sync.google_sheets import GoogleSheetsSync

from conftest import make_draft


class ExplodingSync:
    name = "google_sheets"

    def is_live_sync_enabled(self):
        return True

    async def sync(self, lead):
        raise RuntimeError("sheets exploded")


class OkSync:
    name = "hubspot"

    def __init__(self, cfg, live=True):
        self.cfg = cfg
        self.live = live
        self.synced = []

    def is_live_sync_enabled(self):
        return self.live

    async def sync(self, lead):
        self.synced.append(lead.id)
        return SyncResult(success=True, updates={"last_sync": "now", "leads_exported": 1})


def _hook_client(calls):
    def handler(request: httpx.Request) -> httpx.Response:
        q = parse_qs(urlsplit(str(request.url)).query)
        calls.append((request.url.host, q["event"][0]))
        return httpx.Response(200)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_one_failing_target_does_not_block_others():
    calls = []
    stored = []
    hub = OkSync({})

    async def on_updates(integration_id, updates):
        stored.append((integration_id, updates))

    hubspot_target = SyncTarget(name="hubspot", integration_id=7, factory=lambda cfg: hub)
    targets = [
        SyncTarget(name="sheets", integration_id=6, factory=lambda cfg: ExplodingSync()),
        hubspot_target,
    ]
    hooks = [WebhookSubscription(id=1, name="crm", url="https://crm.test/h", events=frozenset({"newLead", "hotLead"}))]

    async with _hook_client(calls) as client:
        d = FanOutDispatcher(sync_targets=targets, webhooks=hooks, client=client, on_updates=on_updates)
        report = await d.dispatch(make_draft(lead_score=85))

    assert hub.synced == ["lead-1"]
    assert sorted(calls) == [("crm.test", "hotLead"), ("crm.test", "newLead")]
    assert len(report.outcomes) == 4
    assert [o.target for o in report.failures] == ["sheets"]
    assert "sheets exploded" in str(report.failure())

    assert stored == [(7, {"last_sync": "now", "leads_exported": 1})]
    assert hubspot_target.config == {"last_sync": "now", "leads_exported": 1}


@pytest.mark.asyncio
async def test_webhooks_only_receive_subscribed_events():
    calls = []
    hooks = [
        WebhookSubscription(id=1, name="all", url="https://all.test/h", events=frozenset({"newLead", "hotLead", "highScoreLead", "urgentFollowup"})),
        WebhookSubscription(id=2, name="hot", url="https://hot.test/h", events=frozenset({"hotLead"})),
        WebhookSubscription(id=3, name="off", url="https://off.test/h", events=frozenset({"newLead"}), active=False),
    ]

    async with _hook_client(calls) as client:
        report = await FanOutDispatcher(webhooks=hooks, client=client).dispatch(make_draft(lead_score=50, is_hot_lead=False))

    assert calls == [("all.test", "newLead")]
    assert report.failure() is None


@pytest.mark.asyncio
async def test_non_live_targets_are_not_called():
    quiet = OkSync({}, live=False)
    d = FanOutDispatcher(sync_targets=[SyncTarget(name="hubspot", factory=lambda cfg: quiet)])
    report = await d.dispatch(make_draft())
    assert quiet.synced == []
    assert report.outcomes == ()


@pytest.mark.asyncio
async def test_failed_webhook_is_reported_not_raised():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503))) as client:
        hooks = [WebhookSubscription(id=1, name="crm", url="https://crm.test/h", events=frozenset({"newLead"}))]
        report = await FanOutDispatcher(webhooks=hooks, client=client).dispatch(make_draft())

    (outcome,) = report.outcomes
    assert outcome.ok is False
    assert outcome.event == "newLead"
    assert "503" in outcome.error


@pytest.mark.asyncio
async def test_concurrent_leads_share_one_new_spreadsheet():
    created = []
    appended = []

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.01)
        path = request.url.path
        if request.method == "POST" and path == "/v4/spreadsheets":
            created.append(f"sheet-{len(created) + 1}")
            return httpx.Response(200, json={"spreadsheetId": created[-1]})
        if request.method == "POST" and path.endswith(":append"):
            appended.append(path.split("/")[3])
            return httpx.Response(200, json={"updates": {"updatedRange": "Leads!A2:AS2"}})
        if request.method == "GET":
            return httpx.Response(200, json={"values": [["ID"]]})
        return httpx.Response(200, json={})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        target = SyncTarget(
            name="sheets",
            config={"access_token": "tok", "refresh_token": "ref", "live_sync": True},
            factory=lambda cfg: GoogleSheetsSync(cfg, client=client, today=date(2025, 1, 15)),
        )
        d = FanOutDispatcher(sync_targets=[target], client=client)
        reports = await asyncio.gather(
            d.dispatch(make_draft("lead-1", is_hot_lead=False)),
            d.dispatch(make_draft("lead-2", is_hot_lead=False)),
        )

    assert created == ["sheet-1"]
    assert appended == ["sheet-1", "sheet-1"]
    assert all(r.failure() is None for r in reports)
    assert target.config["spreadsheet_id"] == "sheet-1"
