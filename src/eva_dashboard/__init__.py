"""
EVA Dashboard - submit count aggregation daemon.

This package polls a fixed set of JSON-RPC endpoints for the network's last
submit count, keeps the most recent total in memory, persists one average per
calendar day, and serves both over HTTP.
"""

__version__ = "1.0.0"
