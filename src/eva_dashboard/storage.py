"""
SQLite storage for daily averages.

The database is used as an ordered byte-string key-value store: keys are
unpadded ``<year>-<month>-<day>`` strings and values are the day's mean as
8 raw bytes, big-endian unsigned. A later write for the same day replaces
the earlier one.

SQLite Schema:
    CREATE TABLE daily_averages (
        day TEXT PRIMARY KEY,    -- e.g. '2024-3-9'
        value BLOB NOT NULL      -- 8 bytes, big-endian uint64
    );

The connection is opened once by initialize() and held until close(). All
statements run in the default executor, serialized by a lock.
"""

from __future__ import annotations

import asyncio
import sqlite3
import struct
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Any

from eva_dashboard.errors import FailedPreconditionError, InvalidArgumentError
from eva_dashboard.logging import get_logger
from eva_dashboard.rpc import UINT64_MAX

logger = get_logger(__name__)

# =============================================================================
# Record Encoding
# =============================================================================

RECORD_SIZE = 8
_RECORD_STRUCT = struct.Struct(">Q")


def format_day_key(day: date) -> str:
    """
    Format a date as a store key.

    Components are not zero-padded: 9 March 2024 becomes ``"2024-3-9"``.
    """
    return f"{day.year}-{day.month}-{day.day}"


def parse_day_key(key: str) -> date:
    """
    Parse a store key back into a date.

    Raises:
        InvalidArgumentError: If the key is not a valid ``year-month-day``.
    """
    try:
        year, month, day = (int(part) for part in key.split("-"))
        return date(year, month, day)
    except ValueError as e:
        raise InvalidArgumentError(
            f"Invalid day key: {key}",
            details={"day": key},
        ) from e


def encode_average(value: int) -> bytes:
    """
    Encode a mean as 8 big-endian bytes.

    Raises:
        InvalidArgumentError: If value is not a uint64.
    """
    if not 0 <= value <= UINT64_MAX:
        raise InvalidArgumentError(
            "Average must be an unsigned 64-bit integer",
            details={"value": value},
        )
    return _RECORD_STRUCT.pack(value)


def decode_average(raw: bytes) -> int:
    """
    Decode 8 big-endian bytes into a mean.

    Raises:
        InvalidArgumentError: If raw is not exactly 8 bytes.
    """
    if len(raw) != RECORD_SIZE:
        raise InvalidArgumentError(
            f"Average record must be {RECORD_SIZE} bytes",
            details={"length": len(raw)},
        )
    return _RECORD_STRUCT.unpack(raw)[0]


# =============================================================================
# Data Models
# =============================================================================


class LookupStatus(str, Enum):
    """Outcome of a day lookup."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class LookupResult:
    """
    Result of reading one day's average.

    ``value`` is set only when status is FOUND, so a stored zero is never
    confused with a missing day.
    """

    day: str
    status: LookupStatus
    value: int | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "day": self.day,
            "status": self.status.value,
            "average": self.value,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class DailyAverage:
    """A stored day and its mean."""

    day: str
    average: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"day": self.day, "average": self.average}


# =============================================================================
# SQLite Schema
# =============================================================================

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS daily_averages (
    day TEXT PRIMARY KEY,
    value BLOB NOT NULL
);
"""


# =============================================================================
# DailyAverageStore Class
# =============================================================================


class DailyAverageStore:
    """
    Persistent day -> average store.

    The daily accumulator is the only writer; HTTP handlers only read.

    Example:
        >>> store = DailyAverageStore("./dashboard.db")
        >>> await store.initialize()
        >>> await store.put_average("2024-3-9", 37)
        >>> (await store.get_average("2024-3-9")).value
        37
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = Lock()
        self._init_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        """Check whether the database connection is open."""
        return self._conn is not None

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Yield the held connection under the store lock."""
        with self._conn_lock:
            if self._conn is None:
                raise FailedPreconditionError(
                    "Daily average store is not open",
                    details={"db_path": str(self.db_path)},
                )
            yield self._conn

    async def initialize(self) -> None:
        """
        Open the database and create the schema.

        Idempotent. Failure here is fatal for the process.

        Raises:
            FailedPreconditionError: If the database cannot be opened.
        """
        if self._conn is not None:
            return

        async with self._init_lock:
            if self._conn is not None:
                return

            def _open() -> sqlite3.Connection:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(
                    str(self.db_path), timeout=30.0, check_same_thread=False
                )
                try:
                    conn.execute("PRAGMA journal_mode=WAL")
                    conn.executescript(SCHEMA_SQL)
                    conn.commit()
                except Exception:
                    conn.close()
                    raise
                return conn

            try:
                conn = await asyncio.get_event_loop().run_in_executor(None, _open)
            except Exception as e:
                logger.error(
                    "Failed to open daily average store",
                    extra={"db_path": str(self.db_path), "error": str(e)},
                )
                raise FailedPreconditionError(
                    f"Failed to open daily average store: {e}",
                    details={"db_path": str(self.db_path)},
                ) from e

            with self._conn_lock:
                self._conn = conn
            logger.info(
                "Daily average store opened",
                extra={"db_path": str(self.db_path)},
            )

    async def put(self, key: str, value: bytes) -> None:
        """
        Write a raw record, replacing any existing value.

        Raises:
            FailedPreconditionError: If the store is closed or the write fails.
        """

        def _put() -> None:
            with self._connection() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO daily_averages (day, value) VALUES (?, ?)",
                    (key, sqlite3.Binary(value)),
                )
                conn.commit()

        try:
            await asyncio.get_event_loop().run_in_executor(None, _put)
        except FailedPreconditionError:
            raise
        except Exception as e:
            raise FailedPreconditionError(
                f"Failed to write record: {e}",
                details={"day": key},
            ) from e

    async def get(self, key: str) -> bytes | None:
        """
        Read a raw record.

        Returns:
            The stored bytes, or None if the key is absent.

        Raises:
            FailedPreconditionError: If the store is closed or the read fails.
        """

        def _get() -> bytes | None:
            with self._connection() as conn:
                row = conn.execute(
                    "SELECT value FROM daily_averages WHERE day = ?",
                    (key,),
                ).fetchone()
                return bytes(row[0]) if row is not None else None

        try:
            return await asyncio.get_event_loop().run_in_executor(None, _get)
        except FailedPreconditionError:
            raise
        except Exception as e:
            raise FailedPreconditionError(
                f"Failed to read record: {e}",
                details={"day": key},
            ) from e

    async def put_average(self, day: str, average: int) -> None:
        """
        Persist a day's mean.

        Raises:
            InvalidArgumentError: If average is not a uint64.
            FailedPreconditionError: If the write fails.
        """
        await self.put(day, encode_average(average))
        logger.debug("Stored daily average", extra={"day": day, "average": average})

    async def get_average(self, day: str) -> LookupResult:
        """
        Look up a day's mean.

        Never raises: read and decode failures are reported as an ERROR
        result.
        """
        try:
            raw = await self.get(day)
        except FailedPreconditionError as e:
            logger.error(
                "Failed to read daily average",
                extra={"day": day, "error": e.message},
            )
            return LookupResult(day=day, status=LookupStatus.ERROR, error=e.message)

        if raw is None:
            return LookupResult(day=day, status=LookupStatus.NOT_FOUND)

        try:
            value = decode_average(raw)
        except InvalidArgumentError as e:
            logger.error(
                "Failed to decode daily average",
                extra={"day": day, "length": len(raw)},
            )
            return LookupResult(day=day, status=LookupStatus.ERROR, error=e.message)

        return LookupResult(day=day, status=LookupStatus.FOUND, value=value)

    async def list_averages(self, limit: int = 30) -> list[DailyAverage]:
        """
        List stored averages, most recent day first.

        Records with an unparseable key or value are skipped.

        Raises:
            InvalidArgumentError: If limit is not positive.
            FailedPreconditionError: If the read fails.
        """
        if limit < 1:
            raise InvalidArgumentError(
                "limit must be positive",
                details={"limit": limit},
            )

        def _all() -> list[tuple[str, bytes]]:
            with self._connection() as conn:
                rows = conn.execute("SELECT day, value FROM daily_averages").fetchall()
                return [(row[0], bytes(row[1])) for row in rows]

        try:
            rows = await asyncio.get_event_loop().run_in_executor(None, _all)
        except FailedPreconditionError:
            raise
        except Exception as e:
            raise FailedPreconditionError(f"Failed to list records: {e}") from e

        records: list[tuple[date, DailyAverage]] = []
        for key, raw in rows:
            try:
                records.append(
                    (parse_day_key(key), DailyAverage(day=key, average=decode_average(raw)))
                )
            except InvalidArgumentError:
                logger.warning("Skipping malformed record", extra={"day": key})

        # Unpadded keys do not sort chronologically as strings
        records.sort(key=lambda item: item[0], reverse=True)
        return [record for _, record in records[:limit]]

    async def close(self) -> None:
        """Close the database connection."""
        with self._conn_lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
        logger.info("Daily average store closed", extra={"db_path": str(self.db_path)})
