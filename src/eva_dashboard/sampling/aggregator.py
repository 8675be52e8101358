"""
Endpoint aggregation for one sampling round.

A round queries every configured endpoint and sums the counters. The round
is valid only if all endpoints answered; a single failure discards the whole
sum. Remaining endpoints are still queried after a failure so every outage
in the round gets logged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from eva_dashboard.errors import DashboardError
from eva_dashboard.logging import get_logger
from eva_dashboard.rpc import UINT64_MAX

logger = get_logger(__name__)

SampleFunc = Callable[[str], Awaitable[int]]


@dataclass
class EndpointFailure:
    """A failed endpoint call within a round."""

    endpoint: str
    error: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"endpoint": self.endpoint, "error": self.error, "details": self.details}


@dataclass
class RoundResult:
    """
    Outcome of one sampling round.

    Attributes:
        total: Sum of all endpoint counters (uint64 arithmetic); 0 when the
            round is invalid.
        valid: True only if every endpoint answered.
        endpoint_count: Number of endpoints queried.
        failures: Failed calls, in endpoint list order.
    """

    total: int
    valid: bool
    endpoint_count: int
    failures: list[EndpointFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total": self.total,
            "valid": self.valid,
            "endpoint_count": self.endpoint_count,
            "failures": [f.to_dict() for f in self.failures],
        }


async def _call(sample: SampleFunc, endpoint: str) -> int | EndpointFailure:
    try:
        return await sample(endpoint)
    except DashboardError as e:
        # details["error"] carries the transport or node error when present
        cause = e.details.get("error") or e.message
        return EndpointFailure(endpoint=endpoint, error=str(cause), details=e.details)
    except Exception as e:
        # Custom samplers may raise anything; it still only fails this endpoint
        return EndpointFailure(endpoint=endpoint, error=str(e) or type(e).__name__)


async def aggregate_round(
    endpoints: Sequence[str],
    sample: SampleFunc,
    *,
    concurrent: bool = False,
) -> RoundResult:
    """
    Query all endpoints once and fold the answers into a RoundResult.

    Args:
        endpoints: Endpoint URLs, queried in order.
        sample: Coroutine function returning the counter for an endpoint.
        concurrent: Query all endpoints at once instead of one after another.

    Returns:
        RoundResult with the summed counter, or an invalid result if any
        endpoint failed.
    """
    if concurrent:
        outcomes = await asyncio.gather(*(_call(sample, ep) for ep in endpoints))
    else:
        outcomes = [await _call(sample, ep) for ep in endpoints]

    total = 0
    failures: list[EndpointFailure] = []
    for outcome in outcomes:
        if isinstance(outcome, EndpointFailure):
            failures.append(outcome)
            logger.warning(
                "Failed to read counter from endpoint",
                extra={
                    "endpoint": outcome.endpoint,
                    "error": outcome.error,
                    "reason": outcome.details.get("reason"),
                    "rpc_code": outcome.details.get("rpc_code"),
                },
            )
        else:
            total = (total + outcome) & UINT64_MAX

    if failures:
        return RoundResult(
            total=0,
            valid=False,
            endpoint_count=len(endpoints),
            failures=failures,
        )

    return RoundResult(total=total, valid=True, endpoint_count=len(endpoints))
