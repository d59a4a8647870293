"""Shared pytest fixtures for networth-tracker."""

from datetime import date, datetime, timezone

import pytest

from networth_tracker.core.config import StorageConfig
from networth_tracker.core.models import CurrencyRate, RateKey
from networth_tracker.storage.store import SqliteStore


@pytest.fixture
async def store():
    """An initialized in-memory SqliteStore."""
    s = SqliteStore(StorageConfig(sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def fixed_today():
    """Clock pinned to mid-June 2025."""
    return lambda: date(2025, 6, 15)


@pytest.fixture
def fixed_now():
    """Write timestamp pinned to mid-June 2025, UTC."""
    return lambda: datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_rate():
    """Factory for CurrencyRate with overridable defaults."""

    def _make(**overrides):
        defaults = dict(
            id="rate-1",
            from_currency="EUR",
            to_currency="USD",
            rate=1.1,
            month=1,
            year=2025,
            provider="frankfurter",
            timestamp=datetime(2025, 1, 20, 9, 0, tzinfo=timezone.utc),
        )
        defaults.update(overrides)
        return CurrencyRate(**defaults)

    return _make


@pytest.fixture
async def ledger(store: SqliteStore) -> SqliteStore:
    """Home USD, one balance sheet for 2025, USD + EUR assets, a USD liability.

    January 2025: USD asset 1000, EUR asset 100, USD liability 50, and a
    stored EUR->USD rate of 1.1.
    """
    await store.upsert_settings(name="Test", home_currency="USD")
    sheet = await store.create_balance_sheet(2025)
    checking = await store.upsert_account("Checking", "Asset", "USD", account_id="acc-usd")
    savings = await store.upsert_account("Euro Savings", "Asset", "EUR", account_id="acc-eur")
    card = await store.upsert_account("Credit Card", "Liability", "USD", account_id="acc-card")
    await store.upsert_entry(sheet.id, checking.id, 1, 1000.0)
    await store.upsert_entry(sheet.id, savings.id, 1, 100.0)
    await store.upsert_entry(sheet.id, card.id, 1, 50.0)
    await store.upsert_rate(
        RateKey(2025, 1, "EUR", "USD"),
        1.1,
        "manual",
        datetime(2025, 1, 20, tzinfo=timezone.utc),
    )
    return store
