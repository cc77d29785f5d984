from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..deps import get_session_store
from ....adapters.session_store import RedisSessionStore
from ....schemas import RedisHealthOut

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/redis", response_model=RedisHealthOut, response_model_exclude_none=True)
async def health_redis(store: RedisSessionStore = Depends(get_session_store)) -> Any:
    try:
        ok = await store.ping()
    except Exception as e:
        out = RedisHealthOut(status="error", redis=False, error=str(e))
        return JSONResponse(status_code=503, content=out.model_dump(exclude_none=True))
    if not ok:
        return JSONResponse(status_code=503, content=RedisHealthOut(status="error", redis=False).model_dump(exclude_none=True))
    return RedisHealthOut(status="ok", redis=True)
