"""Management CLI.

Usage:
    python -m freightlink.cli create-tables   # Create all tables (dev; use Alembic in prod)
    python -m freightlink.cli scan-delays     # Run one delay scan now
"""

import asyncio
import logging
import sys

from freightlink.config import settings
from freightlink.database import Base, engine
from freightlink.models import *  # noqa: F401,F403  register all tables
from freightlink.services.notifications import NotificationDispatcher, build_publisher
from freightlink.services.scheduler import run_delay_scan


async def create_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print(f"Created {len(Base.metadata.tables)} table(s).")


async def scan_delays():
    notifier = NotificationDispatcher(build_publisher(settings))
    try:
        summary = await run_delay_scan(notifier)
    finally:
        await notifier.close()
        await engine.dispose()
    if summary is None:
        print("  FAILED: see log for details")
        sys.exit(1)
    print(
        f"  {summary['scanned']} in transit, {summary['delayed']} delayed, "
        f"{summary['opened']} new incident(s)"
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "create-tables":
        asyncio.run(create_tables())
    elif cmd == "scan-delays":
        asyncio.run(scan_delays())
    else:
        print("Usage: python -m freightlink.cli [create-tables|scan-delays]")
