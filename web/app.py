# Copyright (c) 2026 Panayotis Katsaloulis
# SPDX-License-Identifier: AGPL-3.0-or-later
"""Bucket Video Browser - FastAPI backend listing videos in an S3 bucket"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles

from checkpoints import CheckpointCache
from helpers import Settings, load_settings, maybe_cleanup, register_cleanup, unregister_cleanup
from routes import videos
from storage import S3Storage
from walker import make_video_predicate

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s',
    handlers=[logging.StreamHandler()]
)
log = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, storage=None, cache: CheckpointCache | None = None) -> FastAPI:
    """Build the app. Missing collaborators are created from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        s = settings or load_settings()
        logging.getLogger().setLevel(s.log_level)

        app.state.settings = s
        app.state.storage = storage or S3Storage.from_settings(s)
        app.state.cache = cache or CheckpointCache(
            max_checkpoints=s.checkpoint_capacity,
            max_prefixes=s.summary_capacity,
            ttl=s.checkpoint_ttl,
        )
        app.state.predicate = make_video_predicate(s.video_extensions)
        register_cleanup(app.state.cache.purge_idle)
        log.info(f"Serving bucket {s.bucket} (pageSize={s.page_size}, "
                 f"extensions={','.join(s.video_extensions)})")
        try:
            yield
        finally:
            unregister_cleanup(app.state.cache.purge_idle)

    app = FastAPI(title="Bucket Video Browser", lifespan=lifespan)

    @app.middleware("http")
    async def periodic_cleanup(request: Request, call_next):
        maybe_cleanup()
        return await call_next(request)

    app.include_router(videos.router)

    static_dir = settings.static_dir if settings else os.environ.get("STATIC_DIR", "static")
    if Path(static_dir).is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    else:
        log.info(f"No static directory at {static_dir}, serving API only")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))
