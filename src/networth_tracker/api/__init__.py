"""REST API over net worth history, rates and background sync."""

from networth_tracker.api.app import create_app

__all__ = ["create_app"]
