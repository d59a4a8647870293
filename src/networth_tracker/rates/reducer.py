"""Collapse dated provider observations into one value set per month."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date

from networth_tracker.core.models import Period, RateObservation

logger = logging.getLogger(__name__)


def reduce_latest_per_month(
    raw: Mapping[str, Mapping[str, float]],
) -> dict[Period, dict[str, float]]:
    """Keep the currency map of the latest date within each calendar month.

    Given ``{"2024-01-01": {"EUR": 0.8}, "2024-01-15": {"EUR": 0.9}}`` the
    result is ``{(2024, 1): {"EUR": 0.9}}``. A later date replaces the
    earlier winner's whole map; currencies missing from the later date are
    dropped for that month, not merged in. Keys that are not ISO dates are
    skipped.
    """
    best: dict[Period, tuple[date, Mapping[str, float]]] = {}

    for date_str, rates_map in raw.items():
        try:
            observed = date.fromisoformat(date_str)
        except (TypeError, ValueError):
            logger.warning("Ignoring observation with unparsable date %r", date_str)
            continue

        period = Period(observed.year, observed.month)
        current = best.get(period)
        if current is None or observed > current[0]:
            best[period] = (observed, rates_map)

    return {period: dict(rates_map) for period, (_, rates_map) in best.items()}


def flatten_observations(
    grouped: Mapping[Period, Mapping[str, float]],
) -> frozenset[RateObservation]:
    """Explode ``{(year, month): {currency: value}}`` into observation tuples."""
    return frozenset(
        RateObservation(year=year, month=month, currency=currency, value=float(value))
        for (year, month), rates_map in grouped.items()
        for currency, value in rates_map.items()
    )
