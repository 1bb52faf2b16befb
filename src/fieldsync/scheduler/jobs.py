"""
APScheduler job for recurring background sync.

The interval job complements the event-driven triggers (connectivity
restored, delayed retries): anything left pending is picked up on the next
tick. The scheduler shares the event loop with the sync engine.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from fieldsync.sync.errors import SyncError

logger = logging.getLogger(__name__)

AUTO_SYNC_JOB_ID = "auto_sync"


def build_scheduler(engine, interval_minutes: float) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SyncEngine whose sync_all() the job calls.
        interval_minutes: Period of the recurring pass.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _auto_sync,
        trigger="interval",
        minutes=interval_minutes,
        id=AUTO_SYNC_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"engine": engine},
    )

    return scheduler


async def _auto_sync(engine) -> None:
    """
    Recurring job: run one full sync pass.

    Never raises, so the scheduler keeps the job alive.
    """
    try:
        result = await engine.sync_all()
        logger.info(
            "Auto sync finished: %d/%d succeeded",
            result.success_count, result.total_items,
        )
    except SyncError as exc:
        logger.info("Auto sync skipped: %s", exc)
    except Exception as exc:
        logger.error("Auto sync failed: %s", exc)
