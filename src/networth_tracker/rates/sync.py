"""Exchange-rate sync: gather inputs, drive providers, ingest idempotently."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import date, datetime, timezone

from networth_tracker.core.config import AppConfig
from networth_tracker.core.exceptions import (
    ConfigurationError,
    PersistenceError,
    ProviderError,
    SyncError,
)
from networth_tracker.core.models import (
    ProviderKind,
    RateKey,
    RateObservationSet,
    SyncInputs,
    SyncReport,
)
from networth_tracker.rates.finalization import invert_rate, is_finalized
from networth_tracker.rates.frankfurter import FrankfurterProvider, utc_today
from networth_tracker.rates.provider import RateProvider
from networth_tracker.storage.store import LedgerStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_providers(
    config: AppConfig,
    today: Callable[[], date] = utc_today,
) -> list[RateProvider]:
    """Instantiate every enabled provider, in registration order."""
    providers: list[RateProvider] = []
    for kind in ProviderKind:
        if kind is ProviderKind.FRANKFURTER:
            if config.providers.frankfurter.enabled:
                providers.append(
                    FrankfurterProvider(config.providers.frankfurter, today=today)
                )
    return providers


class RateSyncService:
    """Synchronises monthly exchange rates into the rate store.

    Parameters
    ----------
    store : LedgerStore
        Storage handle (``SqliteStore`` in production).
    providers : Sequence[RateProvider]
        Providers to drive, in order.
    clock : Callable[[], datetime]
        Source of the write timestamp. Injectable for tests.
    """

    def __init__(
        self,
        store: LedgerStore,
        providers: Sequence[RateProvider],
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._providers = list(providers)
        self._clock = clock

    async def sync(self) -> bool:
        """Run one sync pass. True if any provider's data was ingested."""
        return bool(await self.run())

    async def run(self) -> list[SyncReport]:
        """Run one sync pass and return one report per provider that produced data.

        An empty list means every provider skipped.

        Raises:
            ConfigurationError: No home currency is set.
            SyncError: Every provider that attempted a fetch failed.
        """
        logger.info("Starting exchange rate sync...")
        inputs = await self.gather_inputs()

        results: list[RateObservationSet] = []
        failures: list[tuple[str, ProviderError]] = []
        for provider in self._providers:
            try:
                observed = await provider.fetch(inputs)
            except ProviderError as e:
                logger.error(
                    "Provider %s failed: %s", provider.name, e, extra={"context": e.context}
                )
                failures.append((provider.name, e))
                continue
            if observed is not None:
                results.append(observed)

        if not results:
            if failures:
                names = [name for name, _ in failures]
                raise SyncError(
                    f"All rate providers failed: {', '.join(names)}",
                    context={"providers": names},
                ) from failures[-1][1]
            logger.info("No provider produced data. Nothing to ingest.")
            return []

        reports = [await self.ingest(observed, inputs) for observed in results]

        await self._store.set_sync_needed(False)
        logger.info("Exchange rate sync complete.")
        return reports

    async def gather_inputs(self) -> SyncInputs:
        """Snapshot home currency, foreign currencies, years and stored rates."""
        home_currency = await self._store.get_home_currency()
        if not home_currency:
            raise ConfigurationError(
                "Home currency is not set",
                context={"field": "home_currency"},
            )

        accounts = await self._store.list_accounts(include_archived=True)
        foreign = frozenset(
            a.currency for a in accounts if a.currency != home_currency
        )

        sheets = await self._store.list_balance_sheets()
        years = frozenset(s.year for s in sheets)

        rates = await self._store.list_rates()
        existing = {rate.key: rate for rate in rates}

        return SyncInputs(
            home_currency=home_currency,
            foreign_currencies=foreign,
            years=years,
            existing_rates=existing,
        )

    async def ingest(
        self, observed: RateObservationSet, inputs: SyncInputs
    ) -> SyncReport:
        """Invert, guard and upsert one provider's observations.

        Finalized rows are skipped. A failed write is counted and logged;
        the rest of the batch continues.
        """
        home = inputs.home_currency
        report = SyncReport(provider=observed.provider, processed=len(observed.observations))
        logger.info(
            "Processing %d rates (provider: %s)...", report.processed, observed.provider
        )

        now = self._clock()
        ordered = sorted(
            observed.observations, key=lambda o: (o.year, o.month, o.currency)
        )
        for obs in ordered:
            key = RateKey(obs.year, obs.month, obs.currency, home)
            if is_finalized(inputs.existing_rates.get(key), obs.year, obs.month):
                report.skipped_finalized += 1
                continue

            rate = invert_rate(obs.value)
            logger.debug(
                "Upserting rate for %02d/%d (%s->%s): %s",
                obs.month, obs.year, obs.currency, home, rate,
            )
            try:
                await self._store.upsert_rate(key, rate, observed.provider, now)
            except PersistenceError as e:
                report.failed += 1
                logger.error(
                    "Failed to upsert rate for %02d/%d (%s->%s): %s",
                    obs.month, obs.year, obs.currency, home, e,
                )
                continue
            report.upserted += 1

        logger.info(
            "Sync complete: %d upserted, %d finalized, %d failed.",
            report.upserted,
            report.skipped_finalized,
            report.failed,
        )
        return report
