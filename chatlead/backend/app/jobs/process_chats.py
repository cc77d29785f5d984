# app/jobs/process_chats.py
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from ..adapters.session_store import RedisSessionStore
from ..config import settings
from ..db import async_session_maker
from ..domain.errors import ScanError
from ..integrations.services.registry import DbConfigProvider
from ..service_layer.analyzer import build_analyzer
from ..service_layer.jobruns import finish_job, finish_job_fail, start_job
from ..service_layer.use_cases.process_chats import PipelineDeps, RunSummary, process_chats

log = logging.getLogger(__name__)

JOB_NAME = "process_chats"


@asynccontextmanager
async def pipeline_deps() -> AsyncIterator[PipelineDeps]:
    """Production wiring: Redis, DB-backed integration config, both analyzers, one shared HTTP client."""
    store = RedisSessionStore.from_settings()
    try:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_S) as client:
            yield PipelineDeps.from_settings(
                store=store,
                session_maker=async_session_maker,
                analyzer=build_analyzer(),
                config_provider=DbConfigProvider(async_session_maker),
                http_client=client,
            )
    finally:
        await store.close()


async def run_process_chats(deps: PipelineDeps, *, trigger: str = "api") -> dict[str, Any]:
    """
    Run one pass and record it as a JobRun. Never raises for a failed scan:
    the summary carries success=False and the error instead.
    """
    async with deps.session_maker() as session:
        jr = await start_job(session, JOB_NAME, meta={"trigger": trigger})
        await session.commit()

        started = time.monotonic()
        try:
            summary = await process_chats(deps)
        except ScanError as e:
            log.error("process-chats aborted: %s", e)
            summary = RunSummary(
                success=False,
                message="Failed to process chats",
                error=str(e),
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        except Exception as e:
            await finish_job_fail(session, jr, e)
            await session.commit()
            raise

        out = summary.to_dict()
        await finish_job(session, jr, out)
        await session.commit()
        return out


async def run_process_chats_job(trigger: str = "scheduler") -> dict[str, Any]:
    async with pipeline_deps() as deps:
        return await run_process_chats(deps, trigger=trigger)
