from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.monitor import MonitorService, build_default_monitor

logger = logging.getLogger(__name__)


async def _retry_pending_samples(monitor: MonitorService, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        written = monitor.ingestor.tick()
        if written:
            logger.info("Retried pending level samples.", extra={"reason": f"{written} written"})


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    monitor = build_default_monitor()
    ticker = asyncio.create_task(
        _retry_pending_samples(monitor, monitor.ingestor.sample_interval_seconds)
    )
    try:
        yield
    finally:
        ticker.cancel()
        with suppress(asyncio.CancelledError):
            await ticker
        monitor.shutdown()
        build_default_monitor.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Smart Bin Telemetry",
        description="Bin fill levels, threshold notifications, emptying events and analytics.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
