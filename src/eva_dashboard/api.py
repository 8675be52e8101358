"""
HTTP read surface.

Routes:
- GET /               liveness text
- GET /lastcnt        latest valid round total
- GET /daycnt         recent daily averages
- GET /daycnt/{day}   one day's average (404 when absent, 503 on read errors)
- GET /status         accumulator state, when one is attached

Handlers only read; the accumulator is the single writer.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from eva_dashboard import __version__
from eva_dashboard.errors import DashboardError
from eva_dashboard.logging import get_logger
from eva_dashboard.storage import LookupStatus

if TYPE_CHECKING:
    from eva_dashboard.latest import LatestValue
    from eva_dashboard.sampling.accumulator import DailyAccumulator
    from eva_dashboard.storage import DailyAverageStore

logger = get_logger(__name__)

Lifespan = Callable[[FastAPI], AbstractAsyncContextManager[None]]

_STATUS_CODES = {
    LookupStatus.FOUND: 200,
    LookupStatus.NOT_FOUND: 404,
    LookupStatus.ERROR: 503,
}


class LatestResponse(BaseModel):
    """Latest value response."""

    value: int
    updated_at: str | None = None


class DayAverageResponse(BaseModel):
    """One day's average."""

    day: str
    status: str
    average: int | None = None
    error: str | None = None


class DayListResponse(BaseModel):
    """Recent daily averages, most recent first."""

    days: list[DayAverageResponse]


def create_app(
    latest: LatestValue,
    store: DailyAverageStore,
    accumulator: DailyAccumulator | None = None,
    lifespan: Lifespan | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        latest: Holder of the latest round total.
        store: Daily average store.
        accumulator: Optional accumulator exposed on /status.
        lifespan: Optional lifespan context (starts and stops background work).

    Returns:
        The configured application.
    """
    app = FastAPI(
        title="EVA Dashboard",
        description="Latest and daily average submit counts",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        """Liveness text."""
        return "eva dashboard"

    @app.get("/lastcnt", response_model=LatestResponse)
    async def last_count() -> LatestResponse:
        """Return the total of the most recent valid round."""
        snapshot = latest.snapshot()
        return LatestResponse(**snapshot.to_dict())

    @app.get("/daycnt", response_model=DayListResponse, response_model_exclude_none=True)
    async def day_counts(limit: int = Query(default=30, ge=1, le=366)) -> Any:
        """Return recent daily averages."""
        try:
            records = await store.list_averages(limit)
        except DashboardError as e:
            logger.error("Failed to list daily averages", extra={"error": e.message})
            raise HTTPException(status_code=503, detail=e.message) from e
        return DayListResponse(
            days=[
                DayAverageResponse(day=r.day, status=LookupStatus.FOUND.value, average=r.average)
                for r in records
            ]
        )

    @app.get("/daycnt/{day}", response_model=DayAverageResponse)
    async def day_count(day: str) -> JSONResponse:
        """Return one day's average, keyed like ``2024-3-9``."""
        result = await store.get_average(day)
        return JSONResponse(
            status_code=_STATUS_CODES[result.status],
            content=result.to_dict(),
        )

    @app.get("/status")
    async def status() -> dict[str, Any]:
        """Return accumulator state."""
        if accumulator is None:
            raise HTTPException(status_code=404, detail="No accumulator attached")
        return accumulator.get_status().to_dict()

    return app

