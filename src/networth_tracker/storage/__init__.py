"""Persistence for settings, ledger collaborators, and currency rates."""

from networth_tracker.storage.store import (
    AccountStore,
    BalanceSheetStore,
    EntryStore,
    LedgerStore,
    RateStore,
    SettingsStore,
    SqliteStore,
    create_store,
)

__all__ = [
    "AccountStore",
    "BalanceSheetStore",
    "EntryStore",
    "LedgerStore",
    "RateStore",
    "SettingsStore",
    "SqliteStore",
    "create_store",
]
