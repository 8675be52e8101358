"""
Service wiring for the EVA dashboard.

DashboardService builds the store, latest-value holder, sampler,
accumulator and HTTP application from an AppConfig. The store is opened
before the HTTP server starts; failing to open it is the only fatal startup
error. The accumulator runs inside the application lifespan so it starts
and stops together with the server.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI

from eva_dashboard.api import create_app
from eva_dashboard.latest import LatestValue
from eva_dashboard.logging import get_logger
from eva_dashboard.sampling.accumulator import DailyAccumulator
from eva_dashboard.sampling.sampler import RpcSampler
from eva_dashboard.storage import DailyAverageStore

if TYPE_CHECKING:
    from eva_dashboard.config import AppConfig
    from eva_dashboard.sampling.clock import Clock

logger = get_logger(__name__)


class DashboardService:
    """
    Owns every long-lived component of the dashboard process.

    Example:
        >>> service = DashboardService(load_config())
        >>> await service.open()
        >>> await service.serve()
        >>> await service.close()
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        store: DailyAverageStore | None = None,
        sampler: RpcSampler | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.latest = LatestValue()
        self.store = store or DailyAverageStore(config.storage.db_path)
        self.sampler = sampler or RpcSampler.from_config(config.sampling)
        self.accumulator = DailyAccumulator.from_config(
            config.sampling,
            self.sampler.sample,
            self.store,
            self.latest,
            clock=clock,
        )
        self.app = create_app(
            self.latest,
            self.store,
            self.accumulator,
            lifespan=self.lifespan,
        )

    @asynccontextmanager
    async def lifespan(self, _app: FastAPI) -> AsyncIterator[None]:
        """Run the accumulator for as long as the application is up."""
        await self.accumulator.start()
        try:
            yield
        finally:
            await self.accumulator.stop()
            await self.sampler.aclose()

    async def open(self) -> None:
        """
        Open the store.

        Raises:
            FailedPreconditionError: If the store cannot be opened.
        """
        await self.store.initialize()

    async def close(self) -> None:
        """Close the store."""
        await self.store.close()

    async def serve(self) -> None:
        """Serve HTTP until uvicorn receives SIGINT or SIGTERM."""
        server_config = self.config.server
        logger.info(
            "Starting HTTP server",
            extra={"address": server_config.listen},
        )
        server = uvicorn.Server(
            uvicorn.Config(
                self.app,
                host=server_config.host,
                port=server_config.port,
                log_config=None,
                lifespan="on",
            )
        )
        await server.serve()


async def run(config: AppConfig) -> None:
    """
    Open the store, serve until shutdown, then release the store and the
    sampler's HTTP client, also when startup fails.

    Raises:
        FailedPreconditionError: If the store cannot be opened.
    """
    service = DashboardService(config)
    try:
        await service.open()
        await service.serve()
    finally:
        await service.sampler.aclose()
        await service.close()
        logger.info("EVA dashboard stopped")
