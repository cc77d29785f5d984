import json

import pytest

from app.integrations.services.registry import (
    DbConfigProvider,
    apply_integration_updates,
    upsert_integration,
)
from app.models import Integration, IntegrationType


@pytest.mark.asyncio
async def test_load_builds_run_config_from_enabled_rows(async_session_maker):
    async with async_session_maker() as session:
        await upsert_integration(
            session,
            name="crm_hook",
            type=IntegrationType.webhook,
            enabled=True,
            config={"url": "https://h.test/a", "events": {"newLead": True, "hotLead": False}, "secret": "s"},
        )
        await upsert_integration(
            session,
            name="list_hook",
            type=IntegrationType.webhook,
            enabled=True,
            config={"url": "https://h.test/b", "events": ["hotLead"]},
        )
        await upsert_integration(
            session, name="no_url", type=IntegrationType.webhook, enabled=True, config={"events": ["newLead"]}
        )
        await upsert_integration(
            session, name="off_hook", type=IntegrationType.webhook, enabled=False, config={"url": "https://h.test/c"}
        )
        await upsert_integration(
            session,
            name="sheets",
            type=IntegrationType.google_sheets,
            enabled=True,
            config={"access_token": "a", "refresh_token": "r", "live_sync": True},
        )
        await session.commit()

    cfg = await DbConfigProvider(async_session_maker).load()

    assert [w.name for w in cfg.webhooks] == ["crm_hook", "list_hook"]
    crm, lst = cfg.webhooks
    assert crm.wants("newLead") and not crm.wants("hotLead")
    assert crm.secret == "s"
    assert lst.wants("hotLead") and not lst.wants("newLead")

    sheets = cfg.integration(IntegrationType.google_sheets)
    assert sheets is not None and sheets.config["live_sync"] is True
    assert cfg.integration(IntegrationType.hubspot) is None


@pytest.mark.asyncio
async def test_upsert_is_idempotent_and_updates_merge(async_session_maker):
    async with async_session_maker() as session:
        integ, created = await upsert_integration(
            session, name="hs", type=IntegrationType.hubspot, enabled=True, config={"access_token": "old"}
        )
        assert created is True
        _, created = await upsert_integration(
            session, name="hs", type=IntegrationType.hubspot, enabled=True, config={"access_token": "old", "refresh_token": "r"}
        )
        assert created is False

        await apply_integration_updates(session, integration_id=integ.id, updates={"access_token": "new", "leads_exported": 3})
        await session.commit()

    async with async_session_maker() as session:
        row = await session.get(Integration, integ.id)
        assert json.loads(row.config_json) == {"access_token": "new", "refresh_token": "r", "leads_exported": 3}
        assert await apply_integration_updates(session, integration_id=999, updates={"x": 1}) is None
