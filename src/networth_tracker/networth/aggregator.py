"""Home-currency net worth series from entries, accounts, sheets and rates."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from networth_tracker.core.exceptions import ConfigurationError, ConsistencyError
from networth_tracker.core.models import (
    AccountType,
    NetWorthDataPoint,
    Period,
    RateKey,
)
from networth_tracker.storage.store import LedgerStore

logger = logging.getLogger(__name__)

# Applied when a foreign-currency entry has no stored rate for its month.
MISSING_RATE_FACTOR = 1.0


@dataclass
class _MonthlyTotals:
    assets: float = 0.0
    liabilities: float = 0.0


def is_future(period: Period, today: date) -> bool:
    """True if ``period`` starts after the month containing ``today``."""
    return (period.year, period.month) > (today.year, today.month)


class NetWorthService:
    """Aggregates ledger entries into a monthly net worth series.

    The collections are read independently with no shared transaction, so
    a concurrent writer can leave an entry pointing at a balance sheet or
    account this pass never saw; that surfaces as ``ConsistencyError``.

    Parameters
    ----------
    store : LedgerStore
        Storage handle.
    today : Callable[[], date]
        Clock for excluding future months. Injectable for tests.
    """

    def __init__(
        self,
        store: LedgerStore,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._today = today

    async def history(self) -> list[NetWorthDataPoint]:
        """One data point per past or current month with entries, ascending.

        Raises:
            ConfigurationError: No home currency is set.
            ConsistencyError: An entry references an unknown sheet or account.
        """
        home = await self._store.get_home_currency()
        if not home:
            raise ConfigurationError(
                "Home currency is not set",
                context={"field": "home_currency"},
            )

        entries = await self._store.list_entries()
        accounts = await self._store.list_accounts(include_archived=True)
        sheets = await self._store.list_balance_sheets()
        rates = await self._store.list_rates()

        account_map = {a.id: a for a in accounts}
        sheet_years = {s.id: s.year for s in sheets}
        rate_map = {r.key: r.rate for r in rates}

        totals: dict[Period, _MonthlyTotals] = {}
        missing: set[RateKey] = set()

        for entry in entries:
            year = sheet_years.get(entry.balance_sheet_id)
            if year is None:
                raise ConsistencyError(
                    "Balance sheet not found for entry",
                    context={
                        "entry_id": entry.id,
                        "balance_sheet_id": entry.balance_sheet_id,
                    },
                )
            account = account_map.get(entry.account_id)
            if account is None:
                raise ConsistencyError(
                    "Account not found for entry",
                    context={"entry_id": entry.id, "account_id": entry.account_id},
                )

            if account.currency == home:
                factor = 1.0
            else:
                key = RateKey(year, entry.month, account.currency, home)
                factor = rate_map.get(key)
                if factor is None:
                    missing.add(key)
                    factor = MISSING_RATE_FACTOR

            bucket = totals.setdefault(Period(year, entry.month), _MonthlyTotals())
            if account.account_type == AccountType.ASSET:
                bucket.assets += entry.amount * factor
            else:
                bucket.liabilities += entry.amount * factor

        if missing:
            logger.warning(
                "No stored rate for %d currency-month(s); converted at %.1f: %s",
                len(missing),
                MISSING_RATE_FACTOR,
                ", ".join(
                    f"{k.from_currency}->{k.to_currency} {k.month:02d}/{k.year}"
                    for k in sorted(missing)
                ),
            )

        today = self._today()
        return [
            NetWorthDataPoint(
                year=period.year,
                month=period.month,
                total_assets=agg.assets,
                total_liabilities=agg.liabilities,
                net_worth=agg.assets - agg.liabilities,
                currency=home,
            )
            for period, agg in sorted(totals.items())
            if not is_future(period, today)
        ]

    async def latest(self) -> NetWorthDataPoint | None:
        """The most recent data point of ``history()``, or None."""
        series = await self.history()
        return series[-1] if series else None
