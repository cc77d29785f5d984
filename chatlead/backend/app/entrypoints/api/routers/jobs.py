from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_pipeline_deps, require_cron_secret
from ....db import get_session
from ....jobs.process_chats import run_process_chats
from ....schemas import JobRunOut, ProcessChatsResponse
from ....service_layer.jobruns import latest_runs
from ....service_layer.use_cases.process_chats import PipelineDeps

log = logging.getLogger(__name__)

router = APIRouter(tags=["jobs"])


def _summary_response(summary: ProcessChatsResponse) -> JSONResponse:
    return JSONResponse(
        status_code=200 if summary.success else 500,
        content=summary.model_dump(exclude_none=True),
    )


@router.api_route(
    "/api/process-chats",
    methods=["GET", "POST"],
    dependencies=[Depends(require_cron_secret)],
    response_model=ProcessChatsResponse,
)
async def process_chats_endpoint(deps: PipelineDeps = Depends(get_pipeline_deps)) -> JSONResponse:
    try:
        summary = await run_process_chats(deps, trigger="api")
    except Exception as e:
        log.exception("process-chats request failed")
        return _summary_response(
            ProcessChatsResponse(success=False, message="Failed to process chats", error=str(e))
        )

    return _summary_response(ProcessChatsResponse.model_validate(summary))


@router.get("/api/job-runs", dependencies=[Depends(require_cron_secret)], response_model=list[JobRunOut])
async def job_runs(
    limit: int = Query(20, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
) -> list[JobRunOut]:
    rows = await latest_runs(session, limit=limit)
    return [
        JobRunOut(
            id=jr.id,
            job_name=jr.job_name,
            status=jr.status.value,
            started_at=jr.started_at,
            finished_at=jr.finished_at,
            error=jr.error,
            summary=json.loads(jr.summary_json) if jr.summary_json else None,
        )
        for jr in rows
    ]
