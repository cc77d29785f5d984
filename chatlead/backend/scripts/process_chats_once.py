# scripts/process_chats_once.py
from __future__ import annotations

import asyncio
import json
import sys

from app.db import create_tables
from app.jobs.process_chats import run_process_chats_job
from app.logging_setup import configure_logging


async def main() -> int:
    configure_logging()

    await create_tables()

    summary = await run_process_chats_job(trigger="cli")
    print(json.dumps(summary, indent=2))
    return 0 if summary.get("success") else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
