from __future__ import annotations

from fastapi import FastAPI

from ..db import create_tables
from ..logging_setup import configure_logging
from .api.routers import health, jobs


def create_app() -> FastAPI:
    app = FastAPI(title="ChatLead - Conversation to Lead Pipeline")

    @app.on_event("startup")
    async def _startup() -> None:
        configure_logging()
        # dev convenience; prod runs scripts/init_db.py once
        await create_tables()

    app.include_router(health.router)
    app.include_router(jobs.router)

    return app
