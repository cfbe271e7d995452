import argparse
import asyncio
import logging
import uvicorn
from fastapi import FastAPI
from contextlib import asynccontextmanager

import sys
from pathlib import Path

# Add project root to path for package imports
base_dir = Path(__file__).parent
sys.path.insert(0, str(base_dir))

from db.database import init_db
from config import load_config
from routes import session, verses, practice, stats  # Import routers
from services.context import AppContext, build_context
from utils.logs import configure_logging

logger = logging.getLogger(__name__)


async def run_background(context: AppContext) -> None:
    """Guardian ticks every second; unsaved changes are polled on their own cadence."""
    tick_seconds = context.config["session"].get("tick_seconds", 1)
    poll_seconds = context.config["sync"].get("pending_poll_seconds", 5)
    since_poll = 0.0
    while True:
        await asyncio.sleep(tick_seconds)
        try:
            await context.guardian.tick()
            since_poll += tick_seconds
            if since_poll >= poll_seconds:
                since_poll = 0.0
                context.poll_unsaved_changes()
        except Exception as exc:
            logger.error("Background tick failed: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: config, logging, DB, then the service context
    config = load_config()
    configure_logging(config)
    init_db()
    context = build_context(config)
    app.state.context = context
    ticker = asyncio.create_task(run_background(context))
    if context.auth.is_authenticated:
        await context.points.sync_longest_streak()
        warning = await context.verses.load_verses()
        if warning:
            logger.warning(warning)
        context.verses.request_sync()
    yield
    # Shutdown: stop timers, warn about anything still unsynced
    ticker.cancel()
    context.dispatcher.close()
    await context.scheduler.drain()
    if context.poll_unsaved_changes():
        logger.warning("Shutting down with %d unsynced verse change(s)", context.ledger.unsynced_count())
    if context.dispatcher.pending_count:
        logger.warning("Shutting down with %d unsent word event(s)", context.dispatcher.pending_count)


app = FastAPI(title="VerseCoach", description="Local-first practice and progress sync for scripture memorization", lifespan=lifespan)

# Include routers
app.include_router(session.router, prefix="/session", tags=["session"])
app.include_router(verses.router, prefix="/verses", tags=["verses"])
app.include_router(practice.router, prefix="/practice", tags=["practice"])
app.include_router(stats.router, prefix="/stats", tags=["stats"])


@app.get("/")
async def home():
    return {"name": "VerseCoach", "status": "ok"}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="VerseCoach service")
    parser.add_argument("--init", action="store_true", help="Initialize DB and config")
    parser.add_argument("--dev", action="store_true", help="Run in dev mode with reload")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    args = parser.parse_args()
    if args.init:
        load_config()  # Ensures config is copied if missing
        init_db()
        print("DB initialized and config copied to ~/.versecoach/")
        sys.exit(0)
    uvicorn.run("main:app", host="127.0.0.1", port=args.port, reload=args.dev, log_level="info")
