"""Integration tests: Frankfurter -> SQLite -> net worth, HTTP mocked."""

from __future__ import annotations

from datetime import date, datetime, timezone

import httpx
import pytest
import respx

from networth_tracker.core.config import FrankfurterConfig
from networth_tracker.core.exceptions import SyncError
from networth_tracker.core.models import Period, RateKey
from networth_tracker.networth.aggregator import NetWorthService
from networth_tracker.rates.frankfurter import FrankfurterProvider
from networth_tracker.rates.sync import RateSyncService

SERIES_URL = "https://api.frankfurter.dev/v1/2024-01-01..2025-03-15"

FIRST_PAYLOAD = {
    "amount": 1.0,
    "base": "NZD",
    "start_date": "2024-01-02",
    "end_date": "2025-03-14",
    "rates": {
        "2024-01-15": {"EUR": 0.57, "USD": 0.62},
        "2024-01-31": {"EUR": 0.55, "USD": 0.6},
        "2024-02-29": {"EUR": 0.56, "USD": 0.61},
        "2025-01-31": {"EUR": 0.5, "USD": 0.5},
        "2025-02-28": {"EUR": 0.52, "USD": 0.55},
        "2025-03-14": {"EUR": 0.53, "USD": 0.57},
    },
}


def _today():
    return date(2025, 3, 15)


def _clock(*args):
    ts = datetime(*args, tzinfo=timezone.utc)
    return lambda: ts


def _service(store, clock):
    provider = FrankfurterProvider(FrankfurterConfig(), today=_today)
    return RateSyncService(store, [provider], clock=clock)


class TestSyncPipeline:
    @respx.mock
    async def test_first_sync_stores_inverted_month_close(self, household):
        route = respx.get(url__startswith=SERIES_URL).mock(
            return_value=httpx.Response(200, json=FIRST_PAYLOAD)
        )
        service = _service(household, _clock(2025, 3, 15, 9))

        assert await service.sync() is True
        assert route.call_count == 1
        params = route.calls.last.request.url.params
        assert params["base"] == "NZD"
        assert params["symbols"] == "EUR,USD"

        rates = {r.key: r for r in await household.list_rates()}
        assert len(rates) == 10
        assert rates[RateKey(2024, 1, "USD", "NZD")].rate == pytest.approx(1 / 0.6)
        assert rates[RateKey(2025, 1, "EUR", "NZD")].rate == pytest.approx(2.0)
        assert all(r.provider == "frankfurter" for r in rates.values())
        assert (await household.get_settings()).needs_exchange_sync is False

    @respx.mock
    async def test_resync_only_touches_open_month(self, household):
        route = respx.get(url__startswith=SERIES_URL).mock(
            return_value=httpx.Response(200, json=FIRST_PAYLOAD)
        )
        await _service(household, _clock(2025, 3, 15, 9)).sync()
        before = {r.key: r for r in await household.list_rates()}

        changed = {
            **FIRST_PAYLOAD,
            "rates": {
                date_str: {cur: value / 2 for cur, value in rates.items()}
                for date_str, rates in FIRST_PAYLOAD["rates"].items()
            },
        }
        route.mock(return_value=httpx.Response(200, json=changed))
        service = _service(household, _clock(2025, 3, 20, 9))
        (report,) = await service.run()
        assert report.processed == 10
        assert report.skipped_finalized == 8
        assert report.upserted == 2

        after = {r.key: r for r in await household.list_rates()}
        for key, rate in after.items():
            if (key.year, key.month) == (2025, 3):
                assert rate.rate == pytest.approx(before[key].rate * 2)
                assert rate.id == before[key].id
            else:
                assert rate == before[key]

    @respx.mock
    async def test_net_worth_uses_synced_rates(self, household):
        respx.get(url__startswith=SERIES_URL).mock(
            return_value=httpx.Response(200, json=FIRST_PAYLOAD)
        )
        await _service(household, _clock(2025, 3, 15, 9)).sync()

        history = await NetWorthService(household, today=_today).history()
        by_period = {p.period: p for p in history}

        # 2024 has all twelve months; 2025 stops at the current month
        assert len(history) == 15
        assert max(by_period) == Period(2025, 3)

        jan = by_period[Period(2025, 1)]
        assert jan.total_assets == pytest.approx(1000.0 + 100.0 * 2.0)
        assert jan.total_liabilities == pytest.approx(10.0 * 2.0)
        assert jan.net_worth == pytest.approx(1180.0)

        # no quote for March 2024: converted at 1.0
        mar_2024 = by_period[Period(2024, 3)]
        assert mar_2024.total_assets == pytest.approx(3000.0 + 100.0)
        assert mar_2024.total_liabilities == pytest.approx(10.0)

        latest = await NetWorthService(household, today=_today).latest()
        assert latest.period == Period(2025, 3)

    @respx.mock
    async def test_provider_outage_leaves_store_untouched(self, household):
        respx.get(url__startswith=SERIES_URL).mock(side_effect=httpx.ConnectError("down"))
        service = _service(household, _clock(2025, 3, 15, 9))

        with pytest.raises(SyncError):
            await service.sync()
        assert await household.list_rates() == []
        assert (await household.get_settings()).needs_exchange_sync is True

    @respx.mock
    async def test_deleting_sheet_drops_its_year(self, household):
        respx.get(url__startswith=SERIES_URL).mock(
            return_value=httpx.Response(200, json=FIRST_PAYLOAD)
        )
        await _service(household, _clock(2025, 3, 15, 9)).sync()

        sheets = {s.year: s for s in await household.list_balance_sheets()}
        assert await household.delete_balance_sheet(sheets[2024].id) is True

        assert {r.year for r in await household.list_rates()} == {2025}
        history = await NetWorthService(household, today=_today).history()
        assert {p.year for p in history} == {2025}
