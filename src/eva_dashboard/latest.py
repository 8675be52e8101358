"""
Latest-value holder.

The accumulator replaces the value after every valid round and the HTTP
layer reads it at any time. Reads and writes go through a lock so a reader
always sees a value together with the time it was set.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any

from eva_dashboard.errors import InvalidArgumentError
from eva_dashboard.rpc import UINT64_MAX


@dataclass(frozen=True)
class LatestSnapshot:
    """A consistent read of the latest value."""

    value: int
    updated_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "value": self.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class LatestValue:
    """Thread-safe holder for the most recent valid round total."""

    def __init__(self, initial: int = 0) -> None:
        self._lock = Lock()
        self._value = initial
        self._updated_at: datetime | None = None

    def get(self) -> int:
        """Return the current value."""
        with self._lock:
            return self._value

    def snapshot(self) -> LatestSnapshot:
        """Return the value and its update time."""
        with self._lock:
            return LatestSnapshot(value=self._value, updated_at=self._updated_at)

    def set(self, value: int, at: datetime | None = None) -> None:
        """
        Replace the value.

        Raises:
            InvalidArgumentError: If value is not a uint64.
        """
        if not 0 <= value <= UINT64_MAX:
            raise InvalidArgumentError(
                "Latest value must be an unsigned 64-bit integer",
                details={"value": value},
            )
        with self._lock:
            self._value = value
            self._updated_at = at or datetime.now()
