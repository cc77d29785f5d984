from __future__ import annotations

import asyncio
import logging

from app.db import create_tables
from app.jobs.scheduler import build_scheduler
from app.logging_setup import configure_logging


async def main() -> None:
    configure_logging()

    await create_tables()

    scheduler = build_scheduler()
    scheduler.start()
    logging.getLogger(__name__).info("Scheduler started")

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        scheduler.shutdown(wait=False)
        logging.getLogger(__name__).info("Scheduler stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
