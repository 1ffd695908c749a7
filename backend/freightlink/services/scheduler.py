"""Background task scheduler: periodic delay scan over in-transit plans.

Uses FastAPI's lifespan context to start/stop an asyncio background loop.
No external dependencies (no Celery, no APScheduler), just an
asyncio.sleep loop that fires every ``delay_scan_interval_seconds``.

The lifespan also owns the notification dispatcher: it is built here,
exposed as ``app.state.notifier`` and drained/closed on shutdown.

Configuration:
    DELAY_SCAN_INTERVAL_SECONDS=300
    DELAY_THRESHOLD_MINUTES=30
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from functools import partial

from fastapi import FastAPI

from freightlink.config import Settings, settings
from freightlink.database import async_session, commit, rollback
from freightlink.models.plan import PlanStatus
from freightlink.repository import SqlRepository
from freightlink.services.delay import should_trigger_delay_incident
from freightlink.services.incidents import delay_incident, open_incident
from freightlink.services.notifications import NotificationDispatcher, build_publisher
from freightlink.utils.clock import utcnow

logger = logging.getLogger("freightlink.scheduler")


async def scan_for_delays(
    repo,
    notifier,
    now: datetime | None = None,
    *,
    cfg: Settings = settings,
) -> dict:
    """Open a DELAY incident for every late IN_TRANSIT plan.

    One failing plan does not stop the scan.  Returns counts.
    """
    now = now or utcnow()
    plans = await repo.list_plans_by_status(PlanStatus.IN_TRANSIT)
    summary = {"scanned": len(plans), "delayed": 0, "opened": 0, "failed": 0}

    for plan in plans:
        if not should_trigger_delay_incident(plan, cfg.delay_threshold_minutes, now):
            continue
        summary["delayed"] += 1
        try:
            incident, created = await open_incident(repo, delay_incident(plan, now))
        except Exception:
            logger.exception("Delay check failed for plan %s", plan.id)
            summary["failed"] += 1
            continue
        if created:
            summary["opened"] += 1
            repo.on_commit(partial(notifier.notify_incident, incident, plan))

    logger.info(
        "Delay scan: %d in transit, %d delayed, %d new incident(s), %d failed",
        summary["scanned"], summary["delayed"], summary["opened"], summary["failed"],
    )
    return summary


async def run_delay_scan(notifier) -> dict | None:
    """One scan in its own session, committed on success."""
    try:
        async with async_session() as db:
            try:
                summary = await scan_for_delays(SqlRepository(db), notifier)
                await commit(db)
                return summary
            except Exception:
                await rollback(db)
                raise
    except Exception:
        logger.exception("Delay scan failed")
        return None


async def _delay_scan_loop(notifier) -> None:
    interval = settings.delay_scan_interval_seconds
    logger.info("Delay scan every %d seconds", interval)
    while True:
        await asyncio.sleep(interval)
        await run_delay_scan(notifier)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: build the notifier, start the scan loop; undo both on shutdown."""
    notifier = NotificationDispatcher(build_publisher(settings))
    app.state.notifier = notifier
    task = asyncio.create_task(_delay_scan_loop(notifier))
    logger.info("Delay scheduler started")
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await notifier.close()
        logger.info("Delay scheduler stopped")
