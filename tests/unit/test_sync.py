"""Tests for RateSyncService orchestration and ingestion."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest

from networth_tracker.core.config import AppConfig, FrankfurterConfig, ProvidersConfig
from networth_tracker.core.exceptions import (
    ConfigurationError,
    PersistenceError,
    ProtocolError,
    SyncError,
    TransportError,
)
from networth_tracker.core.models import (
    RateKey,
    RateObservation,
    RateObservationSet,
    SyncInputs,
)
from networth_tracker.networth.aggregator import NetWorthService
from networth_tracker.rates.frankfurter import FrankfurterProvider
from networth_tracker.rates.sync import RateSyncService, build_providers


# --- Fakes ---


class FakeProvider:
    """Returns canned observations, or raises, or skips."""

    def __init__(self, name="fake", values=None, error=None):
        self.name = name
        self._values = values
        self._error = error
        self.calls: list[SyncInputs] = []

    def supports(self, currency: str) -> bool:
        return True

    async def fetch(self, inputs: SyncInputs) -> RateObservationSet | None:
        self.calls.append(inputs)
        if self._error is not None:
            raise self._error
        if self._values is None:
            return None
        return RateObservationSet(
            provider=self.name,
            observations=frozenset(
                RateObservation(year=y, month=m, currency=c, value=v)
                for (y, m, c), v in self._values.items()
            ),
        )


class CountingProvider:
    """Returns one more month of observations on every call."""

    name = "counting"

    def __init__(self):
        self._calls = 0

    def supports(self, currency: str) -> bool:
        return True

    async def fetch(self, inputs: SyncInputs) -> RateObservationSet:
        self._calls += 1
        months = range(1, self._calls + 1)
        await asyncio.sleep(0)
        return RateObservationSet(
            provider=self.name,
            observations=frozenset(
                RateObservation(year=2025, month=m, currency="EUR", value=0.8)
                for m in months
            ),
        )


def _clock(*args):
    ts = datetime(*args, tzinfo=timezone.utc)
    return lambda: ts


@pytest.fixture
async def usd_store(store):
    """Home USD, an EUR account and a 2025 balance sheet, no rates yet."""
    await store.upsert_settings(name="Test", home_currency="USD")
    await store.upsert_account("Euro Savings", "Asset", "EUR")
    await store.upsert_account("Checking", "Asset", "USD")
    await store.create_balance_sheet(2025)
    return store


# --- build_providers ---


class TestBuildProviders:
    def test_frankfurter_enabled_by_default(self):
        providers = build_providers(AppConfig())
        assert len(providers) == 1
        assert isinstance(providers[0], FrankfurterProvider)

    def test_disabled_provider_omitted(self):
        config = AppConfig(
            providers=ProvidersConfig(frankfurter=FrankfurterConfig(enabled=False))
        )
        assert build_providers(config) == []


# --- gather_inputs ---


class TestGatherInputs:
    async def test_snapshot(self, usd_store):
        await usd_store.upsert_account("Old GBP", "Asset", "GBP", is_archived=True)
        await usd_store.create_balance_sheet(2024)
        inputs = await RateSyncService(usd_store, []).gather_inputs()
        assert inputs.home_currency == "USD"
        # archived accounts still need historical rates
        assert inputs.foreign_currencies == frozenset({"EUR", "GBP"})
        assert inputs.years == frozenset({2024, 2025})
        assert inputs.existing_rates == {}

    async def test_existing_rates_keyed(self, usd_store):
        key = RateKey(2025, 1, "EUR", "USD")
        await usd_store.upsert_rate(key, 1.1, "manual")
        inputs = await RateSyncService(usd_store, []).gather_inputs()
        assert inputs.existing_rates[key].rate == 1.1

    async def test_no_home_currency_raises(self, store):
        with pytest.raises(ConfigurationError, match="Home currency"):
            await RateSyncService(store, [FakeProvider()]).gather_inputs()


# --- sync ---


class TestSync:
    async def test_inverts_and_stores(self, usd_store):
        provider = FakeProvider(values={(2025, 1, "EUR"): 0.8, (2025, 2, "EUR"): 0.0})
        service = RateSyncService(usd_store, [provider], clock=_clock(2025, 2, 10))

        assert await service.sync() is True

        rates = {r.key: r for r in await usd_store.list_rates()}
        jan = rates[RateKey(2025, 1, "EUR", "USD")]
        assert jan.rate == pytest.approx(1.25)
        assert jan.provider == "fake"
        assert jan.timestamp == datetime(2025, 2, 10, tzinfo=timezone.utc)
        assert rates[RateKey(2025, 2, "EUR", "USD")].rate == 0.0

    async def test_report(self, usd_store):
        provider = FakeProvider(values={(2025, 1, "EUR"): 0.8})
        (report,) = await RateSyncService(usd_store, [provider]).run()
        assert report.provider == "fake"
        assert report.processed == 1
        assert report.upserted == 1
        assert report.skipped_finalized == 0
        assert report.failed == 0

    async def test_clears_sync_needed(self, usd_store):
        assert (await usd_store.get_settings()).needs_exchange_sync is True
        await RateSyncService(usd_store, [FakeProvider(values={(2025, 1, "EUR"): 0.9})]).sync()
        assert (await usd_store.get_settings()).needs_exchange_sync is False

    async def test_all_skip_returns_false(self, usd_store):
        service = RateSyncService(usd_store, [FakeProvider(), FakeProvider(name="other")])
        assert await service.sync() is False
        assert await usd_store.list_rates() == []
        assert (await usd_store.get_settings()).needs_exchange_sync is True

    async def test_no_providers_returns_false(self, usd_store):
        assert await RateSyncService(usd_store, []).sync() is False

    async def test_all_fail_raises(self, usd_store):
        providers = [
            FakeProvider(name="a", error=TransportError("down")),
            FakeProvider(name="b", error=ProtocolError("bad")),
        ]
        with pytest.raises(SyncError) as exc_info:
            await RateSyncService(usd_store, providers).sync()
        assert exc_info.value.context["providers"] == ["a", "b"]
        assert isinstance(exc_info.value.__cause__, ProtocolError)
        assert (await usd_store.get_settings()).needs_exchange_sync is True

    async def test_one_failure_is_scoped(self, usd_store):
        providers = [
            FakeProvider(name="broken", error=TransportError("down")),
            FakeProvider(name="ok", values={(2025, 1, "EUR"): 0.5}),
        ]
        reports = await RateSyncService(usd_store, providers).run()
        assert [r.provider for r in reports] == ["ok"]
        (rate,) = await usd_store.list_rates()
        assert rate.rate == 2.0

    async def test_run_returns_empty_when_all_skip(self, usd_store):
        assert await RateSyncService(usd_store, [FakeProvider()]).run() == []

    async def test_concurrent_runs_keep_their_own_reports(self, usd_store):
        provider = CountingProvider()
        service = RateSyncService(usd_store, [provider])

        first, second = await asyncio.gather(service.run(), service.run())

        assert sorted([first[0].processed, second[0].processed]) == [1, 2]

    async def test_skip_plus_failure_raises(self, usd_store):
        providers = [FakeProvider(name="skip"), FakeProvider(name="fail", error=TransportError("x"))]
        with pytest.raises(SyncError):
            await RateSyncService(usd_store, providers).sync()

    async def test_no_home_currency(self, store):
        provider = FakeProvider(values={(2025, 1, "EUR"): 0.8})
        with pytest.raises(ConfigurationError):
            await RateSyncService(store, [provider]).sync()
        assert provider.calls == []


class TestFinalization:
    async def test_finalized_row_left_alone(self, usd_store):
        key = RateKey(2025, 1, "EUR", "USD")
        # written after January closed
        written = await usd_store.upsert_rate(
            key, 1.1, "frankfurter", datetime(2025, 2, 3, tzinfo=timezone.utc)
        )
        service = RateSyncService(
            usd_store,
            [FakeProvider(values={(2025, 1, "EUR"): 0.5})],
            clock=_clock(2025, 3, 1),
        )
        (report,) = await service.run()

        stored = await usd_store.get_rate(written.id)
        assert stored == written
        assert report.skipped_finalized == 1
        assert report.upserted == 0

    async def test_open_month_overwritten(self, usd_store):
        key = RateKey(2025, 2, "EUR", "USD")
        written = await usd_store.upsert_rate(
            key, 1.1, "frankfurter", datetime(2025, 2, 10, tzinfo=timezone.utc)
        )
        service = RateSyncService(
            usd_store,
            [FakeProvider(values={(2025, 2, "EUR"): 0.5})],
            clock=_clock(2025, 2, 20),
        )
        await service.sync()

        stored = await usd_store.get_rate(written.id)
        assert stored.rate == 2.0
        assert stored.timestamp == datetime(2025, 2, 20, tzinfo=timezone.utc)

    async def test_sync_after_month_end_freezes_rate(self, usd_store):
        values = {(2025, 3, "EUR"): 0.8}
        first = RateSyncService(usd_store, [FakeProvider(values=values)], clock=_clock(2025, 4, 2))
        await first.sync()

        changed = {(2025, 3, "EUR"): 0.4}
        second = RateSyncService(usd_store, [FakeProvider(values=changed)], clock=_clock(2025, 4, 9))
        await second.sync()

        (rate,) = await usd_store.list_rates()
        assert rate.rate == pytest.approx(1.25)
        assert rate.timestamp == datetime(2025, 4, 2, tzinfo=timezone.utc)


class TestIdempotence:
    async def test_repeat_sync_identical_rows(self, usd_store):
        values = {(2025, 5, "EUR"): 0.9, (2025, 6, "EUR"): 0.92}
        clock = _clock(2025, 6, 15, 12)

        await RateSyncService(usd_store, [FakeProvider(values=values)], clock=clock).sync()
        first = await usd_store.list_rates()
        await RateSyncService(usd_store, [FakeProvider(values=values)], clock=clock).sync()
        second = await usd_store.list_rates()

        assert first == second
        assert len(second) == 2


class TestIngest:
    async def test_persistence_failure_counted(self, fixed_now):
        store = AsyncMock()
        store.upsert_rate.side_effect = [
            PersistenceError("disk full"),
            None,
        ]
        observed = RateObservationSet(
            provider="fake",
            observations=frozenset(
                {
                    RateObservation(year=2025, month=1, currency="EUR", value=0.8),
                    RateObservation(year=2025, month=2, currency="EUR", value=0.9),
                }
            ),
        )
        inputs = SyncInputs(home_currency="USD", foreign_currencies=frozenset({"EUR"}))
        service = RateSyncService(store, [], clock=fixed_now)

        report = await service.ingest(observed, inputs)

        assert report.failed == 1
        assert report.upserted == 1
        assert store.upsert_rate.await_count == 2
        first_key = store.upsert_rate.await_args_list[0].args[0]
        assert first_key == RateKey(2025, 1, "EUR", "USD")

    async def test_failed_write_still_reports_success(self, usd_store, monkeypatch):
        real_upsert = usd_store.upsert_rate
        calls = {"n": 0}

        async def flaky(key, rate, provider, timestamp=None):
            calls["n"] += 1
            if calls["n"] == 1:
                raise PersistenceError("locked", context={"operation": "upsert"})
            return await real_upsert(key, rate, provider, timestamp)

        monkeypatch.setattr(usd_store, "upsert_rate", flaky)
        provider = FakeProvider(values={(2025, 1, "EUR"): 0.8, (2025, 2, "EUR"): 0.8})
        service = RateSyncService(usd_store, [provider])

        (report,) = await service.run()
        assert report.failed == 1
        assert len(await usd_store.list_rates()) == 1
        assert (await usd_store.get_settings()).needs_exchange_sync is False

    async def test_negative_quote_does_not_block_later_reads(self, ledger):
        provider = FakeProvider(values={(2025, 1, "EUR"): 0.8, (2025, 2, "EUR"): -2.0})
        service = RateSyncService(ledger, [provider], clock=_clock(2025, 2, 10))

        (report,) = await service.run()

        assert report.upserted == 1
        assert report.failed == 1
        (rate,) = await ledger.list_rates()
        assert rate.key == RateKey(2025, 1, "EUR", "USD")
        (point,) = await NetWorthService(ledger, today=lambda: date(2025, 2, 10)).history()
        assert point.total_assets == pytest.approx(1000.0 + 100.0 * 1.25)
        assert await service.sync() is True
