# app/jobs/scheduler.py
from __future__ import annotations

import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import settings
from .process_chats import run_process_chats_job

log = logging.getLogger(__name__)


async def _run_process_chats() -> None:
    try:
        summary = await run_process_chats_job(trigger="scheduler")
    except Exception:
        log.exception("scheduled process-chats run crashed")
        return
    log.info("scheduled run: %s", summary.get("message"))


def build_scheduler(interval_minutes: int | None = None) -> AsyncIOScheduler:
    sched = AsyncIOScheduler()

    # one run at a time; a slow run swallows the missed ticks
    sched.add_job(
        _run_process_chats,
        "interval",
        minutes=interval_minutes or settings.SCHED_PROCESS_INTERVAL_MINUTES,
        id="process_chats",
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(),
    )

    return sched
