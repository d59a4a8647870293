"""Integration test fixtures: real SQLite files, HTTP mocked with respx."""

from __future__ import annotations

from pathlib import Path

import pytest

from networth_tracker.core.config import (
    AppConfig,
    FrankfurterConfig,
    ProvidersConfig,
    StorageConfig,
    SyncConfig,
)
from networth_tracker.storage.store import SqliteStore


@pytest.fixture
async def integration_store(tmp_path: Path) -> SqliteStore:
    """An initialized on-disk SqliteStore."""
    store = SqliteStore(StorageConfig(sqlite_path=str(tmp_path / "integration.db")))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def household(integration_store: SqliteStore) -> SqliteStore:
    """NZD household with USD and EUR holdings across 2024 and 2025.

    Every month of both years has an NZD salary account balance; the USD
    brokerage and EUR mortgage carry balances for Jan-Mar of each year.
    """
    store = integration_store
    await store.upsert_settings(name="Household", home_currency="NZD")
    await store.upsert_account("Everyday", "Asset", "NZD", account_id="nzd-everyday")
    await store.upsert_account("Brokerage", "Asset", "USD", account_id="usd-brokerage")
    await store.upsert_account("Flat Loan", "Liability", "EUR", account_id="eur-loan")
    for year in (2024, 2025):
        sheet = await store.create_balance_sheet(year)
        for month in range(1, 13):
            await store.upsert_entry(sheet.id, "nzd-everyday", month, 1000.0 * month)
        for month in (1, 2, 3):
            await store.upsert_entry(sheet.id, "usd-brokerage", month, 100.0)
            await store.upsert_entry(sheet.id, "eur-loan", month, 10.0)
    return store


@pytest.fixture
def api_config(tmp_path: Path) -> AppConfig:
    """Config for API integration tests, startup sync enabled."""
    return AppConfig(
        storage=StorageConfig(sqlite_path=str(tmp_path / "api-test.db")),
        providers=ProvidersConfig(frankfurter=FrankfurterConfig()),
        sync=SyncConfig(on_startup=True, after_balance_sheet_create=True),
    )
