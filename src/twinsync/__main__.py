"""
Main entrypoint: runs the auto-sync scheduler or a one-off sync.

FastAPI runs separately under uvicorn.

Usage:
    python -m twinsync scheduler            # poll and auto-sync due configs
    python -m twinsync sync <config_id>     # one manual sync, prints the result
    uvicorn twinsync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import argparse
import asyncio
import json
import logging
import sys
import uuid

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_scheduler() -> None:
    from twinsync.config import get_settings
    from twinsync.db.engine import get_engine
    from twinsync.scheduler.jobs import build_scheduler

    settings = get_settings()
    scheduler = build_scheduler(get_engine())
    scheduler.start()
    logger.info(
        "Scheduler started (polling every %ds). Press Ctrl+C to stop.",
        settings.scheduler_poll_seconds,
    )
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()


async def _run_sync_once(config_id: uuid.UUID) -> int:
    from twinsync.db.engine import get_engine
    from twinsync.openhab.errors import SyncError
    from twinsync.openhab.sync_service import TRIGGER_MANUAL, OpenHABSyncService

    service = OpenHABSyncService(get_engine())
    try:
        result = await service.run(config_id, TRIGGER_MANUAL)
    except SyncError as exc:
        logger.error("Sync failed (%s): %s", exc.kind.value, exc.message)
        return 1
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="twinsync", description="OpenHAB sensor sync")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("scheduler", help="Run the auto-sync scheduler")
    sync_parser = sub.add_parser("sync", help="Run one manual sync for a config")
    sync_parser.add_argument("config_id", type=uuid.UUID)
    args = parser.parse_args(argv)

    if args.command == "scheduler":
        asyncio.run(_run_scheduler())
        return 0
    return asyncio.run(_run_sync_once(args.config_id))


if __name__ == "__main__":
    sys.exit(main())
