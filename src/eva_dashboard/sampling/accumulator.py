"""
Daily accumulator: the background sampling loop.

The accumulator runs one day cycle after another. A day cycle is a fixed
number of rounds separated by a fixed wait. Each valid round replaces the
latest value and is folded into the day's running total; invalid rounds
change nothing but still use up their slot. When the cycle ends the
truncated mean of the valid rounds is written to the store under the
current date. A day without a single valid round writes nothing.

Phases within a cycle: SAMPLING -> ACCUMULATING (per round) -> FINALIZING
(per day) -> SAMPLING.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from eva_dashboard.config import DEFAULT_INTERVAL_SECONDS, DEFAULT_ROUNDS_PER_DAY
from eva_dashboard.errors import DashboardError, FailedPreconditionError
from eva_dashboard.logging import get_logger
from eva_dashboard.sampling.aggregator import RoundResult, SampleFunc, aggregate_round
from eva_dashboard.sampling.clock import Clock, SystemClock
from eva_dashboard.storage import format_day_key

if TYPE_CHECKING:
    from eva_dashboard.config import SamplingConfig
    from eva_dashboard.latest import LatestValue
    from eva_dashboard.storage import DailyAverageStore

logger = get_logger(__name__)

# Time allowed for an in-flight round to finish on stop()
DEFAULT_STOP_TIMEOUT = 10.0

# =============================================================================
# Enums and Data Models
# =============================================================================


class AccumulatorStatus(str, Enum):
    """Lifecycle status of the background task."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class AccumulatorPhase(str, Enum):
    """Position within the day cycle."""

    SAMPLING = "sampling"
    ACCUMULATING = "accumulating"
    FINALIZING = "finalizing"


@dataclass
class DayTotals:
    """
    Running totals of the current day cycle.

    Attributes:
        total: Sum of all valid round totals.
        valid_rounds: Number of valid rounds.
        rounds_run: Number of rounds run, valid or not.
    """

    total: int = 0
    valid_rounds: int = 0
    rounds_run: int = 0

    def fold(self, result: RoundResult) -> None:
        """Account for one round."""
        self.rounds_run += 1
        if result.valid:
            self.total += result.total
            self.valid_rounds += 1

    def mean(self) -> int | None:
        """Return the truncated mean, or None if no round was valid."""
        if self.valid_rounds == 0:
            return None
        return self.total // self.valid_rounds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total": self.total,
            "valid_rounds": self.valid_rounds,
            "rounds_run": self.rounds_run,
        }


@dataclass
class AccumulatorState:
    """
    Current state of the accumulator.

    Attributes:
        status: Lifecycle status.
        phase: Position within the day cycle.
        job_id: Identifier of the current run.
        interval_seconds: Wait between rounds.
        rounds_per_day: Rounds per day cycle.
        started_at: When the accumulator was started.
        day: Totals of the current day cycle.
        rounds_total: Rounds run since start.
        rounds_failed: Invalid rounds since start.
        days_finalized: Days whose average was written.
        days_dropped: Days without a valid round.
        last_round_at: When the last round completed.
        last_day: Key of the last day written.
        last_average: Average of the last day written.
        error_count: Number of loop or store errors.
        last_error: Last error message if any.
    """

    status: AccumulatorStatus = AccumulatorStatus.STOPPED
    phase: AccumulatorPhase = AccumulatorPhase.SAMPLING
    job_id: str | None = None
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    rounds_per_day: int = DEFAULT_ROUNDS_PER_DAY
    started_at: datetime | None = None
    day: DayTotals = field(default_factory=DayTotals)
    rounds_total: int = 0
    rounds_failed: int = 0
    days_finalized: int = 0
    days_dropped: int = 0
    last_round_at: datetime | None = None
    last_day: str | None = None
    last_average: int | None = None
    error_count: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": self.status.value,
            "phase": self.phase.value,
            "job_id": self.job_id,
            "interval_seconds": self.interval_seconds,
            "rounds_per_day": self.rounds_per_day,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "day": self.day.to_dict(),
            "rounds_total": self.rounds_total,
            "rounds_failed": self.rounds_failed,
            "days_finalized": self.days_finalized,
            "days_dropped": self.days_dropped,
            "last_round_at": (
                self.last_round_at.isoformat() if self.last_round_at else None
            ),
            "last_day": self.last_day,
            "last_average": self.last_average,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }


# =============================================================================
# DailyAccumulator Class
# =============================================================================


class DailyAccumulator:
    """
    Background day-cycle loop over the configured endpoints.

    The accumulator is the only writer of both the latest value and the
    store. The clock is injectable so tests can run whole days instantly.

    Example:
        >>> accumulator = DailyAccumulator(endpoints, sampler.sample, store, latest)
        >>> await accumulator.start()
        >>> accumulator.get_status().to_dict()
        >>> await accumulator.stop()
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        sample: SampleFunc,
        store: DailyAverageStore,
        latest: LatestValue,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        rounds_per_day: int = DEFAULT_ROUNDS_PER_DAY,
        concurrent: bool = False,
        clock: Clock | None = None,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
    ) -> None:
        """
        Initialize the accumulator.

        Args:
            endpoints: Endpoint URLs queried every round; copied and frozen.
            sample: Coroutine function reading one endpoint's counter.
            store: Store receiving one record per finalized day.
            latest: Holder updated after every valid round.
            interval_seconds: Wait after every round.
            rounds_per_day: Rounds in one day cycle.
            concurrent: Query the endpoints of a round concurrently.
            clock: Date source and sleeper (defaults to the system clock).
            stop_timeout: Seconds stop() waits before cancelling the task.
        """
        self._endpoints = tuple(endpoints)
        self._sample = sample
        self._store = store
        self._latest = latest
        self._concurrent = concurrent
        self._clock: Clock = clock or SystemClock()
        self._stop_timeout = stop_timeout
        self._state = AccumulatorState(
            interval_seconds=interval_seconds,
            rounds_per_day=rounds_per_day,
        )
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: SamplingConfig,
        sample: SampleFunc,
        store: DailyAverageStore,
        latest: LatestValue,
        clock: Clock | None = None,
    ) -> DailyAccumulator:
        """Create an accumulator from the sampling configuration."""
        return cls(
            config.endpoints,
            sample,
            store,
            latest,
            interval_seconds=config.interval_seconds,
            rounds_per_day=config.rounds_per_day,
            concurrent=config.concurrent,
            clock=clock,
        )

    @property
    def endpoints(self) -> tuple[str, ...]:
        """Return the endpoints queried every round."""
        return self._endpoints

    @property
    def is_running(self) -> bool:
        """Check if the background task is running."""
        return self._state.status == AccumulatorStatus.RUNNING

    def get_status(self) -> AccumulatorState:
        """Return a copy of the current state."""
        return replace(self._state, day=replace(self._state.day))

    # -------------------------------------------------------------------------
    # Day cycle
    # -------------------------------------------------------------------------

    async def run_round(self) -> RoundResult:
        """
        Run one sampling round and fold it into the day.

        Returns:
            The round's result.
        """
        self._state.phase = AccumulatorPhase.SAMPLING
        result = await aggregate_round(
            self._endpoints, self._sample, concurrent=self._concurrent
        )

        self._state.phase = AccumulatorPhase.ACCUMULATING
        now = self._clock.now()
        if result.valid:
            self._latest.set(result.total, at=now)
        else:
            self._state.rounds_failed += 1
        self._state.day.fold(result)
        self._state.rounds_total += 1
        self._state.last_round_at = now

        logger.debug(
            "Sampling round completed",
            extra={
                "valid": result.valid,
                "total": result.total,
                "failed_endpoints": len(result.failures),
                "round": self._state.day.rounds_run,
                "valid_rounds": self._state.day.valid_rounds,
            },
        )
        return result

    async def finalize_day(self) -> int | None:
        """
        Close the current day cycle.

        Writes the mean of the valid rounds under today's key, then resets
        the day totals. A failed write is logged and the cycle still resets.

        Returns:
            The mean, or None if the day had no valid round.
        """
        self._state.phase = AccumulatorPhase.FINALIZING
        day = self._state.day
        average = day.mean()
        day_key = format_day_key(self._clock.today())

        if average is None:
            self._state.days_dropped += 1
            logger.warning(
                "No valid rounds, day dropped",
                extra={"day": day_key, "rounds_run": day.rounds_run},
            )
        else:
            try:
                await self._store.put_average(day_key, average)
            except DashboardError as e:
                self._state.error_count += 1
                self._state.last_error = e.message
                logger.error(
                    "Failed to store daily average",
                    extra={"day": day_key, "average": average, "error": e.message},
                )
            else:
                self._state.days_finalized += 1
                self._state.last_day = day_key
                self._state.last_average = average
                logger.info(
                    "Daily average stored",
                    extra={
                        "day": day_key,
                        "average": average,
                        "valid_rounds": day.valid_rounds,
                        "rounds_run": day.rounds_run,
                    },
                )

        self._state.day = DayTotals()
        self._state.phase = AccumulatorPhase.SAMPLING
        return average

    async def run_day(self) -> int | None:
        """
        Run one full day cycle.

        Every round is followed by the inter-round wait. If a stop is
        requested the partial day is abandoned without a record.

        Returns:
            The day's mean, or None if the day was dropped or abandoned.
        """
        for _ in range(self._state.rounds_per_day):
            if self._stop_event.is_set():
                return None
            try:
                await self.run_round()
            except Exception as e:
                self._state.error_count += 1
                self._state.last_error = str(e)
                logger.error(
                    "Error during sampling round",
                    extra={"error": str(e), "job_id": self._state.job_id},
                )
            if await self._wait(self._state.interval_seconds):
                return None
        return await self.finalize_day()

    async def _wait(self, seconds: float) -> bool:
        """
        Sleep on the clock until the interval elapses or stop is requested.

        Returns:
            True if stop was requested.
        """
        if self._stop_event.is_set():
            return True

        sleeper = asyncio.ensure_future(self._clock.sleep(seconds))
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, stopper):
                if not task.done():
                    task.cancel()
        return self._stop_event.is_set()

    async def _run_loop(self) -> None:
        """Run day cycles until stopped."""
        while not self._stop_event.is_set():
            await self.run_day()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> AccumulatorState:
        """
        Start the background loop.

        Returns:
            Current state after starting.

        Raises:
            FailedPreconditionError: If the accumulator is already running.
        """
        async with self._lock:
            if self._state.status in (AccumulatorStatus.RUNNING, AccumulatorStatus.STARTING):
                raise FailedPreconditionError(
                    "Accumulator is already running",
                    details={"job_id": self._state.job_id},
                )

            self._state.status = AccumulatorStatus.STARTING
            self._state.job_id = str(uuid.uuid4())[:8]
            self._state.started_at = datetime.now()
            self._state.day = DayTotals()
            self._state.phase = AccumulatorPhase.SAMPLING
            self._stop_event.clear()

            self._task = asyncio.create_task(self._run_loop())
            self._state.status = AccumulatorStatus.RUNNING

            logger.info(
                "Daily accumulator started",
                extra={
                    "job_id": self._state.job_id,
                    "endpoints": list(self._endpoints),
                    "interval_seconds": self._state.interval_seconds,
                    "rounds_per_day": self._state.rounds_per_day,
                },
            )

            return self.get_status()

    async def stop(self) -> AccumulatorState:
        """
        Stop the background loop.

        The in-flight round gets stop_timeout seconds to finish before the
        task is cancelled. The partial day is not written.

        Returns:
            Current state after stopping.
        """
        async with self._lock:
            if self._state.status not in (AccumulatorStatus.RUNNING, AccumulatorStatus.STARTING):
                return self.get_status()

            self._state.status = AccumulatorStatus.STOPPING
            self._stop_event.set()

            if self._task:
                try:
                    await asyncio.wait_for(self._task, timeout=self._stop_timeout)
                except TimeoutError:
                    logger.warning("Accumulator task did not stop in time, cancelling")
                    self._task.cancel()
                    try:
                        await self._task
                    except asyncio.CancelledError:
                        pass
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.error(
                        "Accumulator task failed",
                        extra={"error": str(e), "job_id": self._state.job_id},
                    )
                self._task = None

            self._state.status = AccumulatorStatus.STOPPED

            logger.info(
                "Daily accumulator stopped",
                extra={
                    "job_id": self._state.job_id,
                    "rounds_total": self._state.rounds_total,
                    "days_finalized": self._state.days_finalized,
                },
            )

            return self.get_status()
