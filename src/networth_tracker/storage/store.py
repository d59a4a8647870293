"""Storage backend: Protocol definitions, SQLite implementation, factory."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from networth_tracker.core.config import StorageConfig
from networth_tracker.core.exceptions import ConfigurationError, PersistenceError
from networth_tracker.core.models import (
    Account,
    AccountType,
    BalanceSheet,
    CurrencyRate,
    Entry,
    RateKey,
    UserSettings,
    normalize_currency,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


# --- Collaborator protocols consumed by sync and aggregation ---


@runtime_checkable
class SettingsStore(Protocol):
    async def get_settings(self) -> UserSettings | None: ...
    async def get_home_currency(self) -> str | None: ...
    async def set_sync_needed(self, needed: bool) -> UserSettings: ...


@runtime_checkable
class AccountStore(Protocol):
    async def list_accounts(self, include_archived: bool = True) -> list[Account]: ...


@runtime_checkable
class BalanceSheetStore(Protocol):
    async def list_balance_sheets(self) -> list[BalanceSheet]: ...


@runtime_checkable
class EntryStore(Protocol):
    async def list_entries(self) -> list[Entry]: ...


@runtime_checkable
class RateStore(Protocol):
    """Persistence for currency rates. Pure storage, no business logic."""

    async def list_rates(self) -> list[CurrencyRate]: ...
    async def upsert_rate(
        self,
        key: RateKey,
        rate: float,
        provider: str,
        timestamp: datetime | None = None,
    ) -> CurrencyRate: ...


@runtime_checkable
class LedgerStore(
    SettingsStore, AccountStore, BalanceSheetStore, EntryStore, RateStore, Protocol
):
    """Everything sync and aggregation read from, behind one handle."""


class SqliteStore:
    """SQLite implementation of every storage protocol.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS user_settings (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    home_currency TEXT NOT NULL,
                    theme TEXT NOT NULL DEFAULT 'Light',
                    needs_exchange_sync INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS accounts (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    account_type TEXT NOT NULL
                        CHECK (account_type IN ('Asset', 'Liability')),
                    currency TEXT NOT NULL,
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    is_archived INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS balance_sheets (
                    id TEXT PRIMARY KEY,
                    year INTEGER NOT NULL UNIQUE,
                    created_at TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS entries (
                    id TEXT PRIMARY KEY,
                    balance_sheet_id TEXT NOT NULL
                        REFERENCES balance_sheets(id) ON DELETE CASCADE,
                    account_id TEXT NOT NULL
                        REFERENCES accounts(id) ON DELETE CASCADE,
                    month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
                    amount REAL NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(balance_sheet_id, account_id, month)
                )""",
                """CREATE TABLE IF NOT EXISTS currency_rates (
                    id TEXT PRIMARY KEY,
                    from_currency TEXT NOT NULL,
                    to_currency TEXT NOT NULL,
                    rate REAL NOT NULL,
                    month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
                    year INTEGER NOT NULL,
                    provider TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    UNIQUE(from_currency, to_currency, year, month)
                )""",
                # Indexes
                "CREATE INDEX IF NOT EXISTS idx_entries_sheet ON entries(balance_sheet_id)",
                "CREATE INDEX IF NOT EXISTS idx_entries_account ON entries(account_id)",
                "CREATE INDEX IF NOT EXISTS idx_rates_period ON currency_rates(year, month)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL + FK, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA foreign_keys=ON")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise PersistenceError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- User Settings ---

    async def get_settings(self) -> UserSettings | None:
        try:
            async with self._db.execute(
                "SELECT * FROM user_settings ORDER BY created_at LIMIT 1"
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_settings(row) if row is not None else None
        except Exception as e:
            raise PersistenceError(
                f"Failed to read user settings: {e}",
                context={"operation": "query", "table": "user_settings"},
            ) from e

    async def get_home_currency(self) -> str | None:
        settings = await self.get_settings()
        return settings.home_currency if settings is not None else None

    async def upsert_settings(
        self, name: str, home_currency: str, theme: str = "Light"
    ) -> UserSettings:
        """Create or update the singleton settings row.

        Changing the home currency flags the rate history as needing a sync.
        """
        try:
            home = normalize_currency(home_currency)
        except ValueError as e:
            raise ConfigurationError(
                str(e), context={"field": "home_currency", "value": home_currency}
            ) from e
        existing = await self.get_settings()
        now = _utcnow().isoformat()
        try:
            if existing is None:
                settings_id = str(uuid.uuid4())
                await self._db.execute(
                    """INSERT INTO user_settings
                       (id, name, home_currency, theme, needs_exchange_sync,
                        created_at, updated_at)
                       VALUES (?, ?, ?, ?, 1, ?, ?)""",
                    (settings_id, name, home, theme, now, now),
                )
            else:
                settings_id = existing.id
                needs_sync = existing.needs_exchange_sync or (
                    existing.home_currency != home
                )
                await self._db.execute(
                    """UPDATE user_settings
                       SET name = ?, home_currency = ?, theme = ?,
                           needs_exchange_sync = ?, updated_at = ?
                       WHERE id = ?""",
                    (name, home, theme, int(needs_sync), now, settings_id),
                )
            await self._db.commit()
        except Exception as e:
            raise PersistenceError(
                f"Failed to save user settings: {e}",
                context={"operation": "upsert", "table": "user_settings"},
            ) from e
        return await self.get_settings()

    async def set_sync_needed(self, needed: bool) -> UserSettings:
        existing = await self.get_settings()
        if existing is None:
            raise ConfigurationError(
                "User settings not found",
                context={"field": "user_settings"},
            )
        try:
            await self._db.execute(
                """UPDATE user_settings
                   SET needs_exchange_sync = ?, updated_at = ?
                   WHERE id = ?""",
                (int(needed), _utcnow().isoformat(), existing.id),
            )
            await self._db.commit()
        except Exception as e:
            raise PersistenceError(
                f"Failed to update sync flag: {e}",
                context={"operation": "update", "table": "user_settings"},
            ) from e
        return await self.get_settings()

    # --- Accounts ---

    async def upsert_account(
        self,
        name: str,
        account_type: AccountType | str,
        currency: str,
        account_id: str | None = None,
        sort_order: int = 0,
        is_archived: bool = False,
    ) -> Account:
        account_id = account_id or str(uuid.uuid4())
        try:
            # validated before the write so a rejected row never reaches the table
            account = Account(
                id=account_id,
                name=name,
                account_type=AccountType(account_type),
                currency=currency,
                sort_order=sort_order,
                is_archived=is_archived,
                created_at=_utcnow(),
            )
            await self._db.execute(
                """INSERT INTO accounts
                   (id, name, account_type, currency, sort_order, is_archived, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       name = excluded.name,
                       account_type = excluded.account_type,
                       currency = excluded.currency,
                       sort_order = excluded.sort_order,
                       is_archived = excluded.is_archived""",
                (
                    account.id,
                    account.name,
                    str(account.account_type),
                    account.currency,
                    account.sort_order,
                    int(account.is_archived),
                    account.created_at.isoformat(),
                ),
            )
            await self._db.commit()
            async with self._db.execute(
                "SELECT * FROM accounts WHERE id = ?", (account_id,)
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_account(row)
        except Exception as e:
            raise PersistenceError(
                f"Failed to save account: {e}",
                context={"operation": "upsert", "table": "accounts", "account_id": account_id},
            ) from e

    async def list_accounts(self, include_archived: bool = True) -> list[Account]:
        try:
            query = "SELECT * FROM accounts"
            if not include_archived:
                query += " WHERE is_archived = 0"
            query += " ORDER BY sort_order, name"
            async with self._db.execute(query) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_account(r) for r in rows]
        except Exception as e:
            raise PersistenceError(
                f"Failed to list accounts: {e}",
                context={"operation": "query", "table": "accounts"},
            ) from e

    # --- Balance Sheets ---

    async def create_balance_sheet(self, year: int) -> BalanceSheet:
        sheet = BalanceSheet(id=str(uuid.uuid4()), year=year, created_at=_utcnow())
        try:
            await self._db.execute(
                "INSERT INTO balance_sheets (id, year, created_at) VALUES (?, ?, ?)",
                (sheet.id, sheet.year, sheet.created_at.isoformat()),
            )
            await self._db.commit()
        except Exception as e:
            raise PersistenceError(
                f"Failed to create balance sheet for {year}: {e}",
                context={"operation": "insert", "table": "balance_sheets", "year": year},
            ) from e
        return sheet

    async def list_balance_sheets(self) -> list[BalanceSheet]:
        try:
            async with self._db.execute(
                "SELECT * FROM balance_sheets ORDER BY year DESC"
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_balance_sheet(r) for r in rows]
        except Exception as e:
            raise PersistenceError(
                f"Failed to list balance sheets: {e}",
                context={"operation": "query", "table": "balance_sheets"},
            ) from e

    async def delete_balance_sheet(self, sheet_id: str) -> bool:
        """Delete a balance sheet, its entries, and the rates for its year.

        Returns False if no such balance sheet exists.
        """
        try:
            async with self._db.execute(
                "SELECT year FROM balance_sheets WHERE id = ?", (sheet_id,)
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return False
            year = row["year"]
            await self._db.execute(
                "DELETE FROM entries WHERE balance_sheet_id = ?", (sheet_id,)
            )
            await self._db.execute(
                "DELETE FROM currency_rates WHERE year = ?", (year,)
            )
            await self._db.execute(
                "DELETE FROM balance_sheets WHERE id = ?", (sheet_id,)
            )
            await self._db.commit()
            logger.info("Deleted balance sheet %s (year %d)", sheet_id, year)
            return True
        except Exception as e:
            await self._db.rollback()
            raise PersistenceError(
                f"Failed to delete balance sheet: {e}",
                context={"operation": "delete", "table": "balance_sheets", "id": sheet_id},
            ) from e

    # --- Entries ---

    async def upsert_entry(
        self, balance_sheet_id: str, account_id: str, month: int, amount: float
    ) -> Entry:
        try:
            await self._db.execute(
                """INSERT INTO entries
                   (id, balance_sheet_id, account_id, month, amount, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(balance_sheet_id, account_id, month) DO UPDATE SET
                       amount = excluded.amount,
                       updated_at = excluded.updated_at""",
                (
                    str(uuid.uuid4()),
                    balance_sheet_id,
                    account_id,
                    month,
                    amount,
                    _utcnow().isoformat(),
                ),
            )
            await self._db.commit()
            async with self._db.execute(
                """SELECT * FROM entries
                   WHERE balance_sheet_id = ? AND account_id = ? AND month = ?""",
                (balance_sheet_id, account_id, month),
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_entry(row)
        except Exception as e:
            raise PersistenceError(
                f"Failed to save entry: {e}",
                context={
                    "operation": "upsert",
                    "table": "entries",
                    "balance_sheet_id": balance_sheet_id,
                    "account_id": account_id,
                },
            ) from e

    async def list_entries(self) -> list[Entry]:
        try:
            async with self._db.execute("SELECT * FROM entries") as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_entry(r) for r in rows]
        except Exception as e:
            raise PersistenceError(
                f"Failed to list entries: {e}",
                context={"operation": "query", "table": "entries"},
            ) from e

    # --- Currency Rates ---

    async def list_rates(self, year: int | None = None) -> list[CurrencyRate]:
        try:
            query = "SELECT * FROM currency_rates"
            params: list = []
            if year is not None:
                query += " WHERE year = ?"
                params.append(year)
            query += " ORDER BY year DESC, month ASC, from_currency, to_currency"
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_rate(r) for r in rows]
        except Exception as e:
            raise PersistenceError(
                f"Failed to list currency rates: {e}",
                context={"operation": "query", "table": "currency_rates"},
            ) from e

    async def get_rate(self, rate_id: str) -> CurrencyRate | None:
        try:
            async with self._db.execute(
                "SELECT * FROM currency_rates WHERE id = ?", (rate_id,)
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_rate(row) if row is not None else None
        except Exception as e:
            raise PersistenceError(
                f"Failed to get currency rate: {e}",
                context={"operation": "query", "table": "currency_rates", "id": rate_id},
            ) from e

    async def upsert_rate(
        self,
        key: RateKey,
        rate: float,
        provider: str,
        timestamp: datetime | None = None,
    ) -> CurrencyRate:
        """Insert or update the single row for ``key``.

        An existing row keeps its id; rate, provider and timestamp are
        overwritten. Atomic at the statement level.
        """
        try:
            candidate = CurrencyRate(
                id=str(uuid.uuid4()),
                from_currency=key.from_currency,
                to_currency=key.to_currency,
                rate=rate,
                month=key.month,
                year=key.year,
                provider=provider,
                timestamp=timestamp or _utcnow(),
            )
        except ValueError as e:
            raise PersistenceError(
                f"Rejected currency rate: {e}",
                context={
                    "operation": "validate",
                    "table": "currency_rates",
                    "key": tuple(key),
                },
            ) from e

        try:
            async with self._db.execute(
                """INSERT INTO currency_rates
                   (id, from_currency, to_currency, rate, month, year, provider, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(from_currency, to_currency, year, month) DO UPDATE SET
                       rate = excluded.rate,
                       provider = excluded.provider,
                       timestamp = excluded.timestamp
                   RETURNING *""",
                (
                    candidate.id,
                    candidate.from_currency,
                    candidate.to_currency,
                    candidate.rate,
                    candidate.month,
                    candidate.year,
                    candidate.provider,
                    candidate.timestamp.isoformat(),
                ),
            ) as cursor:
                row = await cursor.fetchone()
            await self._db.commit()
            return self._row_to_rate(row)
        except Exception as e:
            raise PersistenceError(
                f"Failed to upsert currency rate: {e}",
                context={
                    "operation": "upsert",
                    "table": "currency_rates",
                    "key": tuple(key),
                },
            ) from e

    async def delete_rate(self, rate_id: str) -> bool:
        try:
            cursor = await self._db.execute(
                "DELETE FROM currency_rates WHERE id = ?", (rate_id,)
            )
            await self._db.commit()
            return cursor.rowcount > 0
        except Exception as e:
            raise PersistenceError(
                f"Failed to delete currency rate: {e}",
                context={"operation": "delete", "table": "currency_rates", "id": rate_id},
            ) from e

    # --- Row Mapping ---

    @staticmethod
    def _row_to_settings(row: aiosqlite.Row) -> UserSettings:
        return UserSettings(
            id=row["id"],
            name=row["name"],
            home_currency=row["home_currency"],
            theme=row["theme"],
            needs_exchange_sync=bool(row["needs_exchange_sync"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_account(row: aiosqlite.Row) -> Account:
        return Account(
            id=row["id"],
            name=row["name"],
            account_type=AccountType(row["account_type"]),
            currency=row["currency"],
            sort_order=row["sort_order"],
            is_archived=bool(row["is_archived"]),
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_balance_sheet(row: aiosqlite.Row) -> BalanceSheet:
        return BalanceSheet(
            id=row["id"],
            year=row["year"],
            created_at=_parse_ts(row["created_at"]),
        )

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> Entry:
        return Entry(
            id=row["id"],
            balance_sheet_id=row["balance_sheet_id"],
            account_id=row["account_id"],
            month=row["month"],
            amount=row["amount"],
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_rate(row: aiosqlite.Row) -> CurrencyRate:
        return CurrencyRate(
            id=row["id"],
            from_currency=row["from_currency"],
            to_currency=row["to_currency"],
            rate=row["rate"],
            month=row["month"],
            year=row["year"],
            provider=row["provider"],
            timestamp=_parse_ts(row["timestamp"]),
        )


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize the SQLite storage backend."""
    store = SqliteStore(config)
    await store.initialize()
    return store
