# portwatch/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .broadcaster import Broadcaster
from .config import ScanConfig
from .models import HealthStatus
from .router import router, ws_router
from .scan_core import Scanner

logger = logging.getLogger(__name__)


def create_app(config: Optional[ScanConfig] = None, scanner: Optional[Scanner] = None) -> FastAPI:
    config = config or ScanConfig.from_env()
    broadcaster = Broadcaster(
        scanner or Scanner(config),
        interval=config.interval,
        send_timeout=config.send_timeout,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        broadcaster.start()
        logger.info("Scanning every %.1fs", config.interval)
        try:
            yield
        finally:
            await broadcaster.stop()

    app = FastAPI(
        title="Portwatch",
        description="Discovers local HTTP services and pushes the inventory to connected observers.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.broadcaster = broadcaster

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthStatus)
    async def health():
        return {"status": "ok", "observers": broadcaster.observer_count}

    app.include_router(router)
    app.include_router(ws_router)
    return app


app = create_app()


def run() -> None:
    config = ScanConfig.from_env()
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "portwatch.main:app",
        host="localhost",
        port=config.self_port or 3000,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    run()
