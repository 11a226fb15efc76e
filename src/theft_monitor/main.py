"""FastAPI application for the street theft monitor."""

import argparse
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from theft_monitor.api import build_router
from theft_monitor.config import AppConfig, load_config
from theft_monitor.engine import MonitorEngine
from theft_monitor.store import Store

logger = logging.getLogger("theft_monitor")


def create_app(config: AppConfig, store: Store | None = None) -> FastAPI:
    """Build the application. The engine starts with the app's lifespan."""
    store = store or Store(config.database.url, echo=config.database.echo)
    engine = MonitorEngine(store, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.create_all()
        logger.info("Starting monitor engine...")
        await engine.start()
        logger.info(
            "Theft monitor ready: %d meters, database=%s",
            len(config.meters),
            config.database.url,
        )

        yield

        # Shutdown
        await engine.stop()
        store.dispose()
        logger.info("Theft monitor stopped")

    app = FastAPI(title="Street Theft Monitor", lifespan=lifespan)
    app.state.engine = engine
    app.include_router(build_router(engine))
    return app


def run() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Street Theft Monitor")
    parser.add_argument(
        "-c",
        "--config",
        default="/app/config.yaml",
        help="Path to config YAML file",
    )
    args = parser.parse_args()

    config = load_config(args.config)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)
