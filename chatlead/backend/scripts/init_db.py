# scripts/init_db.py
import argparse
import asyncio

from app.config import settings
from app.db import create_tables


async def main() -> None:
    parser = argparse.ArgumentParser(description="Create the ChatLead tables.")
    parser.add_argument("--reset", action="store_true", help="drop existing tables first (destroys stored leads)")
    args = parser.parse_args()

    await create_tables(drop_first=args.reset)
    print(f"OK: tables ready at {settings.CHATLEAD_DB_URL}" + (" (reset)" if args.reset else ""))


if __name__ == "__main__":
    asyncio.run(main())
