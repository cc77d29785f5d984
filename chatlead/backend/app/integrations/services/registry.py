# app/integrations/services/registry.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.types import EventType
from app.models import Integration, IntegrationType

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookSubscription:
    id: int
    name: str
    url: str
    headers: Any = None
    secret: str | None = None
    events: frozenset[str] = frozenset()
    active: bool = True

    def wants(self, event: EventType | str) -> bool:
        value = event.value if isinstance(event, EventType) else event
        return self.active and value in self.events


@dataclass(frozen=True)
class IntegrationSettings:
    id: int
    name: str
    type: IntegrationType
    config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RunConfig:
    """Read-only snapshot of fan-out targets, resolved once per run."""

    webhooks: tuple[WebhookSubscription, ...] = ()
    integrations: tuple[IntegrationSettings, ...] = ()

    def integration(self, kind: IntegrationType) -> IntegrationSettings | None:
        for integ in self.integrations:
            if integ.type == kind:
                return integ
        return None


class ConfigProvider(Protocol):
    async def load(self) -> RunConfig:
        ...


def _config_of(integ: Integration) -> dict[str, Any]:
    try:
        cfg = json.loads(integ.config_json or "{}")
    except ValueError:
        log.warning("integration %s has invalid config_json; ignoring it", integ.name)
        return {}
    return cfg if isinstance(cfg, dict) else {}


def _subscribed_events(raw: Any) -> frozenset[str]:
    if isinstance(raw, dict):
        return frozenset(str(k) for k, v in raw.items() if v)
    if isinstance(raw, (list, tuple)):
        return frozenset(str(x) for x in raw)
    return frozenset()


def build_run_config(rows: list[Integration]) -> RunConfig:
    webhooks: list[WebhookSubscription] = []
    integrations: list[IntegrationSettings] = []

    for integ in rows:
        if not integ.enabled:
            continue
        cfg = _config_of(integ)

        if integ.type == IntegrationType.webhook:
            url = (cfg.get("url") or "").strip()
            if not url:
                log.warning("webhook %s has no url; skipping", integ.name)
                continue
            webhooks.append(
                WebhookSubscription(
                    id=integ.id,
                    name=integ.name,
                    url=url,
                    headers=cfg.get("headers"),
                    secret=cfg.get("secret") or None,
                    events=_subscribed_events(cfg.get("events")),
                    active=cfg.get("active", True) is not False,
                )
            )
        else:
            integrations.append(IntegrationSettings(id=integ.id, name=integ.name, type=integ.type, config=cfg))

    return RunConfig(webhooks=tuple(webhooks), integrations=tuple(integrations))


class DbConfigProvider:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def load(self) -> RunConfig:
        async with self.session_maker() as session:
            rows = (await session.execute(select(Integration).order_by(Integration.id.asc()))).scalars().all()
        return build_run_config(list(rows))


class StaticConfigProvider:
    def __init__(self, config: RunConfig) -> None:
        self.config = config

    async def load(self) -> RunConfig:
        return self.config


async def apply_integration_updates(
    session: AsyncSession,
    *,
    integration_id: int,
    updates: dict[str, Any],
) -> Optional[Integration]:
    """
    Merge adapter-reported keys (refreshed tokens, spreadsheet id, counters)
    into config_json.

    - Does NOT commit (caller controls transaction boundaries)
    - Flushes so the change is visible inside the same transaction
    """
    if not updates:
        return None

    integ = (
        (await session.execute(select(Integration).where(Integration.id == integration_id)))
        .scalars()
        .first()
    )
    if not integ:
        return None

    cfg = _config_of(integ)
    cfg.update(updates)
    integ.config_json = json.dumps(cfg)
    integ.updated_at = datetime.utcnow()
    await session.flush()
    return integ


async def upsert_integration(
    session: AsyncSession,
    *,
    name: str,
    type: IntegrationType,
    enabled: bool,
    config: dict[str, Any],
) -> tuple[Integration, bool]:
    """Natural key: name. Does NOT commit."""
    integ = (await session.execute(select(Integration).where(Integration.name == name))).scalars().first()

    was_created = False
    if integ is None:
        integ = Integration(name=name, type=type)
        session.add(integ)
        was_created = True

    integ.type = type
    integ.enabled = bool(enabled)
    integ.config_json = json.dumps(config or {})
    integ.updated_at = datetime.utcnow()
    await session.flush()
    return integ, was_created
