"""FastAPI server exposing usage reports and live snapshots."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codexusage import __version__
from codexusage.api.routes import broadcast_snapshot, router
from codexusage.live.scheduler import create_scheduler
from codexusage.usage.config import UsageConfig

logger = logging.getLogger(__name__)


def create_app(
    config: UsageConfig,
    live_mode: str = "watch",
    live: bool = True,
) -> FastAPI:
    """Build the app; ``live=False`` skips the background scheduler (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if live:
            scheduler = create_scheduler(config, on_snapshot=broadcast_snapshot, mode=live_mode)
            app.state.scheduler = scheduler
            try:
                await scheduler.start()
            except Exception:
                logger.exception("Live scheduler failed to start")

        yield

        if scheduler is not None:
            await scheduler.stop()

    app = FastAPI(
        title="codexusage",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/api/version")
    def version() -> dict[str, str]:
        return {"version": __version__}

    return app
