from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from app.db import async_session_maker, create_tables
from app.integrations.services.registry import upsert_integration
from app.models import IntegrationType

EXAMPLE = """[
  {"name": "crm_webhook", "type": "webhook", "enabled": true,
   "config": {"url": "https://example.com/hook", "headers": "{\\"X-Token\\": \\"abc\\"}",
              "secret": null, "events": {"newLead": true, "hotLead": true}}},
  {"name": "sheets", "type": "google_sheets", "enabled": true,
   "config": {"access_token": "...", "refresh_token": "...", "live_sync": true}}
]"""


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Load integration definitions (webhooks, Google Sheets, HubSpot, Zoho) from a JSON file.",
        epilog="File format:\n" + EXAMPLE,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("path", type=Path, help="JSON file with a list of integrations")
    args = parser.parse_args()

    items = json.loads(args.path.read_text(encoding="utf-8"))
    if not isinstance(items, list):
        raise SystemExit("expected a JSON list of integrations")

    await create_tables()

    created = updated = 0
    async with async_session_maker() as session:
        for item in items:
            _, was_created = await upsert_integration(
                session,
                name=item["name"],
                type=IntegrationType(item["type"]),
                enabled=bool(item.get("enabled", False)),
                config=item.get("config") or {},
            )
            if was_created:
                created += 1
            else:
                updated += 1
        await session.commit()

    print(f"Seeded integrations. created={created} updated={updated}")

if __name__ == "__main__":
    asyncio.run(main())
