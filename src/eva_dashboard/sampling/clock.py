"""Time source for the daily accumulator."""

from __future__ import annotations

import asyncio
from datetime import date, datetime
from typing import Protocol


class Clock(Protocol):
    """Supplies the calendar date and the inter-round wait."""

    def today(self) -> date: ...

    def now(self) -> datetime: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Local wall clock and real asyncio sleeps."""

    def today(self) -> date:
        return date.today()

    def now(self) -> datetime:
        return datetime.now()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
