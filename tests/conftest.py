"""
Pytest configuration for the EVA dashboard tests.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from collections.abc import Callable, Iterable, Iterator
from datetime import date, datetime
from pathlib import Path

import pytest

from eva_dashboard.errors import UnavailableError
from eva_dashboard.storage import DailyAverageStore

# Configure pytest-asyncio mode
pytest_plugins = ["pytest_asyncio"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


# =============================================================================
# Test Doubles
# =============================================================================


class FakeClock:
    """Clock with a settable date whose sleeps return immediately."""

    def __init__(self, today: date | None = None) -> None:
        self.current_date = today or date(2024, 3, 9)
        self.current_time = datetime(2024, 3, 9, 12, 0, 0)
        self.sleeps: list[float] = []
        self.on_sleep: Callable[[int], None] | None = None

    def today(self) -> date:
        return self.current_date

    def now(self) -> datetime:
        return self.current_time

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.sleeps))
        await asyncio.sleep(0)


class ScriptedSampler:
    """
    Sampler replaying scripted rounds.

    Each round maps endpoint -> counter, or -> an exception to raise. Once the
    script is exhausted the last round repeats.
    """

    def __init__(self, endpoints: list[str], rounds: Iterable[Iterable[int | Exception]]) -> None:
        self.endpoints = endpoints
        self.rounds = [dict(zip(endpoints, r, strict=True)) for r in rounds]
        self.calls: list[str] = []
        self.closed = False
        self._round = 0
        self._seen: set[str] = set()

    async def sample(self, endpoint: str) -> int:
        if endpoint in self._seen:
            self._round += 1
            self._seen.clear()
        self._seen.add(endpoint)
        self.calls.append(endpoint)

        outcome = self.rounds[min(self._round, len(self.rounds) - 1)][endpoint]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


def endpoint_down(endpoint: str) -> UnavailableError:
    """Build the error a sampler raises for an unreachable endpoint."""
    return UnavailableError(
        f"Failed to read counter from {endpoint}",
        details={"endpoint": endpoint, "reason": "transport"},
    )


# =============================================================================
# Fixtures
# =============================================================================

ENDPOINTS = ["http://a.test:8546", "http://b.test:8546", "http://c.test:8546"]


@pytest.fixture
def endpoints() -> list[str]:
    """Three endpoint URLs."""
    return list(ENDPOINTS)


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock fixed at 2024-03-09."""
    return FakeClock()


@pytest.fixture
def temp_db_path() -> Iterator[Path]:
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "dashboard.db"


@pytest.fixture
async def store(temp_db_path: Path) -> DailyAverageStore:
    """Create an opened DailyAverageStore."""
    store = DailyAverageStore(temp_db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture(autouse=True)
def _restore_logger() -> Iterator[None]:
    """Undo setup_logging() so caplog keeps working across tests."""
    yield
    logger = logging.getLogger("eva_dashboard")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
