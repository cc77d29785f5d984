# app/entrypoints/api/deps.py
from __future__ import annotations

import hmac
from typing import AsyncIterator

from fastapi import Header, HTTPException

from ...adapters.session_store import RedisSessionStore
from ...config import settings
from ...jobs.process_chats import pipeline_deps
from ...service_layer.use_cases.process_chats import PipelineDeps


def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Authorization: Bearer <CRON_SECRET>. No secret configured means no check."""
    if not settings.CRON_SECRET:
        return
    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


async def get_pipeline_deps() -> AsyncIterator[PipelineDeps]:
    async with pipeline_deps() as deps:
        yield deps


async def get_session_store() -> AsyncIterator[RedisSessionStore]:
    store = RedisSessionStore.from_settings()
    try:
        yield store
    finally:
        await store.close()
