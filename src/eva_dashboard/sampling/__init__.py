"""
Sampling for the EVA dashboard.

Components:
- sampler: one JSON-RPC counter read from one endpoint
- aggregator: one round over all endpoints, all-or-nothing
- accumulator: background day cycles producing daily averages
- clock: date source and sleeper used by the accumulator
"""

from eva_dashboard.sampling.accumulator import (
    AccumulatorPhase,
    AccumulatorState,
    AccumulatorStatus,
    DailyAccumulator,
    DayTotals,
)
from eva_dashboard.sampling.aggregator import EndpointFailure, RoundResult, aggregate_round
from eva_dashboard.sampling.clock import Clock, SystemClock
from eva_dashboard.sampling.sampler import RpcSampler

__all__ = [
    "AccumulatorPhase",
    "AccumulatorState",
    "AccumulatorStatus",
    "Clock",
    "DailyAccumulator",
    "DayTotals",
    "EndpointFailure",
    "RoundResult",
    "RpcSampler",
    "SystemClock",
    "aggregate_round",
]
