"""FastAPI application for the OpenHAB sync API."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from twinsync.api.routes import openhab
from twinsync.config import get_settings
from twinsync.db.engine import get_engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # get_engine() creates tables and applies column migrations on first use
    engine = get_engine()
    logger.info("Twinsync API started (database: %s)", engine.url.render_as_string(hide_password=True))
    if not get_settings().auto_sync_token:
        logger.warning("AUTO_SYNC_TOKEN is not set; auto-sync requests will be rejected")
    yield


def create_app() -> FastAPI:
    """Build the app with the /openhab router mounted."""
    app = FastAPI(
        title="Twinsync API",
        description="OpenHAB sensor synchronization for building digital twins",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(openhab.router, prefix="/openhab", tags=["openhab"])
    return app


# Module-level app instance for uvicorn
app = create_app()
