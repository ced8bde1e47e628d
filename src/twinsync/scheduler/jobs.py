"""
APScheduler jobs for automatic sync.

This process plays the role of the external cron caller: every
scheduler_poll_seconds it looks for enabled configs whose sync interval has
elapsed and runs them with the "automatic" trigger, through the same
OpenHABSyncService entry point the HTTP API uses.

Runs separately from the API (`python -m twinsync scheduler`).
"""
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session, select

from twinsync.config import get_settings
from twinsync.models.sync import SyncConfig

logger = logging.getLogger(__name__)


def build_scheduler(engine) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine to pass to the sync service.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _auto_sync_due_configs,
        trigger="interval",
        seconds=settings.scheduler_poll_seconds,
        id="openhab_auto_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"engine": engine},
    )

    return scheduler


async def _auto_sync_due_configs(engine) -> None:
    """
    Poll job: run an automatic sync for every enabled config that is due.

    Never raises, so one broken config cannot stop the scheduler.
    """
    from twinsync.openhab.errors import PreconditionError, SyncError
    from twinsync.openhab.sync_service import (
        TRIGGER_AUTOMATIC,
        OpenHABSyncService,
        next_sync_allowed_at,
    )

    try:
        with Session(engine) as s:
            configs = s.exec(
                select(SyncConfig).where(SyncConfig.enabled == True)  # noqa: E712
            ).all()
    except Exception as exc:
        logger.error("Auto-sync poll could not load configs: %s", exc)
        return

    now = datetime.utcnow()
    service = OpenHABSyncService(engine)
    for config in configs:
        allowed_at = next_sync_allowed_at(config)
        if allowed_at is not None and now < allowed_at:
            continue
        try:
            result = await service.run(config.id, TRIGGER_AUTOMATIC)
            logger.info(
                "Auto-synced config %s: %d/%d items", config.id, result.synced, result.total
            )
        except PreconditionError as exc:
            logger.info("Auto-sync skipped for config %s: %s", config.id, exc.message)
        except SyncError as exc:
            logger.error("Auto-sync failed for config %s: %s", config.id, exc.message)
        except Exception as exc:
            logger.error("Auto-sync crashed for config %s: %s", config.id, exc)
