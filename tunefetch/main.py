import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import artwork, lyrics, settings, system, websocket
from .config import FetchSettings
from .core.service import create_runtime

# Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(
    fetch_settings: Optional[FetchSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the API application. `transport` replaces the network for the
    outgoing HTTP client.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime = await create_runtime(fetch_settings, transport=transport)
        app.state.runtime = runtime
        unsubscribe = runtime.service.tracker.subscribe(
            lambda event: websocket.notify({"type": "progress", **asdict(event)})
        )
        try:
            yield
        finally:
            unsubscribe()
            await runtime.close()
            logger.info("Media service stopped")

    app = FastAPI(title="tunefetch API", lifespan=lifespan)

    # CORS設定 - フロントエンドからのアクセスを許可
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],  # Vite dev server
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(artwork.router)
    app.include_router(lyrics.router)
    app.include_router(system.router)
    app.include_router(settings.router)
    app.include_router(websocket.router)
    return app


app = create_app()
