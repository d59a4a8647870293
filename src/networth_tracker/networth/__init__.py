"""Currency-normalised net worth aggregation."""

from networth_tracker.networth.aggregator import NetWorthService, is_future

__all__ = ["NetWorthService", "is_future"]
