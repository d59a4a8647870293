"""Frankfurter exchange-rate provider: direct HTTP implementation.

Uses the time-series endpoint ``/{start}..{end}?base=HOME&symbols=...``,
which returns one currency map per business day. One request covers every
foreign currency and every year in the ledger.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone

import httpx
from pydantic import BaseModel, ValidationError

from networth_tracker.core.config import FrankfurterConfig
from networth_tracker.core.exceptions import ProtocolError, TransportError
from networth_tracker.core.models import ProviderKind, RateObservationSet, SyncInputs
from networth_tracker.rates.reducer import flatten_observations, reduce_latest_per_month

logger = logging.getLogger(__name__)

SUPPORTED_CURRENCIES: frozenset[str] = frozenset(
    {
        "AUD", "BRL", "CAD", "CHF", "CNY", "CZK", "DKK", "EUR", "GBP", "HKD",
        "HUF", "IDR", "ILS", "INR", "ISK", "JPY", "KRW", "MXN", "MYR", "NOK",
        "NZD", "PHP", "PLN", "RON", "SEK", "SGD", "THB", "TRY", "USD", "ZAR",
    }
)


def utc_today() -> date:
    """Current calendar date in UTC."""
    return datetime.now(timezone.utc).date()


class FrankfurterResponse(BaseModel):
    """Shape of a time-series response. Extra keys (base, dates) are ignored."""

    rates: dict[str, dict[str, float]]


class FrankfurterProvider:
    """Fetches monthly closing rates from the Frankfurter API.

    Parameters
    ----------
    config : FrankfurterConfig
        Base URL and request timeout.
    today : Callable[[], date]
        UTC clock for the end of the requested range. Injectable for tests.
    """

    name = str(ProviderKind.FRANKFURTER)

    def __init__(
        self,
        config: FrankfurterConfig | None = None,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self._config = config or FrankfurterConfig()
        self._today = today

    def supports(self, currency: str) -> bool:
        return currency in SUPPORTED_CURRENCIES

    def split_supported(self, currencies: Iterable[str]) -> tuple[list[str], list[str]]:
        """Partition currencies into (supported, unsupported), both sorted."""
        supported: list[str] = []
        unsupported: list[str] = []
        for currency in sorted(currencies):
            (supported if self.supports(currency) else unsupported).append(currency)
        return supported, unsupported

    async def fetch(self, inputs: SyncInputs) -> RateObservationSet | None:
        if not inputs.foreign_currencies:
            logger.info("[%s] No foreign currencies found. Sync skipped.", self.name)
            return None

        if not inputs.years:
            logger.info("[%s] No balance sheets found. Sync skipped.", self.name)
            return None

        if not self.supports(inputs.home_currency):
            logger.info(
                "[%s] Home currency %s is not supported. Skipping provider.",
                self.name,
                inputs.home_currency,
            )
            return None

        supported, unsupported = self.split_supported(inputs.foreign_currencies)
        if unsupported:
            logger.warning(
                "[%s] Skipping unsupported currencies: %s",
                self.name,
                ", ".join(unsupported),
            )
        if not supported:
            logger.info(
                "[%s] No supported foreign currencies found. Skipping provider.",
                self.name,
            )
            return None

        today = self._today()
        earliest_year = min(inputs.years)
        if earliest_year > today.year:
            logger.info(
                "[%s] Earliest balance sheet year %d is in the future. Sync skipped.",
                self.name,
                earliest_year,
            )
            return None

        start = date(earliest_year, 1, 1)
        raw = await self._fetch_time_series(
            start=start, end=today, base=inputs.home_currency, symbols=supported
        )
        grouped = reduce_latest_per_month(raw)
        return RateObservationSet(
            provider=self.name,
            observations=flatten_observations(grouped),
        )

    async def _fetch_time_series(
        self,
        start: date,
        end: date,
        base: str,
        symbols: list[str],
    ) -> dict[str, dict[str, float]]:
        """GET the time series and return ``{date: {currency: value}}``."""
        url = f"{self._config.base_url}/{start.isoformat()}..{end.isoformat()}"
        params = {"base": base, "symbols": ",".join(symbols)}
        context = {"provider": self.name, "url": url}

        logger.info(
            "[%s] Fetching rates for %s from %s..%s with base currency %s",
            self.name,
            params["symbols"],
            start,
            end,
            base,
        )

        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                resp = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            logger.error("[%s] Request timed out: %s", self.name, e)
            raise TransportError(f"Request to {url} timed out", context=context) from e
        except httpx.RequestError as e:
            logger.error("[%s] Request error: %s", self.name, e)
            raise TransportError(f"Request error: {e}", context=context) from e

        if not resp.is_success:
            logger.error("[%s] API error: status %d", self.name, resp.status_code)
            raise ProtocolError(
                f"API error: HTTP {resp.status_code}",
                context={
                    **context,
                    "status_code": resp.status_code,
                    "response_body": resp.text[:200],
                },
            )

        try:
            payload = FrankfurterResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise ProtocolError(
                f"Failed to parse response: {e}",
                context={**context, "response_body": resp.text[:200]},
            ) from e

        return payload.rates
