# app/service_layer/jobruns.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import JobRun, JobRunStatus


async def start_job(session: AsyncSession, job_name: str, meta: dict[str, Any] | None = None) -> JobRun:
    jr = JobRun(
        job_name=job_name,
        started_at=datetime.utcnow(),
        status=JobRunStatus.running,
        meta_json=json.dumps(meta or {}),
    )
    session.add(jr)
    await session.flush()
    return jr


async def finish_job(session: AsyncSession, jr: JobRun, summary: dict[str, Any]) -> None:
    """A run summary with success=False (scan failure) marks the job failed."""
    jr.finished_at = datetime.utcnow()
    jr.summary_json = json.dumps(summary)
    if summary.get("success", True):
        jr.status = JobRunStatus.success
        jr.error = None
    else:
        jr.status = JobRunStatus.failed
        jr.error = str(summary.get("error") or summary.get("message") or "run failed")
    await session.flush()


async def finish_job_fail(session: AsyncSession, jr: JobRun, err: Exception) -> None:
    jr.status = JobRunStatus.failed
    jr.finished_at = datetime.utcnow()
    jr.error = f"{type(err).__name__}: {err}"
    await session.flush()


async def latest_runs(session: AsyncSession, job_name: str | None = None, limit: int = 20) -> list[JobRun]:
    q = select(JobRun).order_by(JobRun.started_at.desc(), JobRun.id.desc()).limit(limit)
    if job_name:
        q = q.where(JobRun.job_name == job_name)
    return list((await session.execute(q)).scalars().all())
