"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# --- Type Aliases ---

CurrencyCode = str
AccountId = str
BalanceSheetId = str
ProviderName = str

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def normalize_currency(v: str) -> str:
    """Upper-case and validate a 3-letter ISO 4217 code."""
    code = v.strip().upper()
    if not _CURRENCY_RE.match(code):
        raise ValueError(f"currency must be a 3-letter ISO code, got {v!r}")
    return code


def _validate_month(v: int) -> int:
    if v < 1 or v > 12:
        raise ValueError(f"month must be between 1 and 12, got {v}")
    return v


# --- Enumerations ---


class AccountType(StrEnum):
    """Which side of the balance sheet an account sits on."""

    ASSET = "Asset"
    LIABILITY = "Liability"


class ProviderKind(StrEnum):
    """Registered exchange-rate providers.

    Closed set: adding a provider means adding a member here and a branch
    in ``rates.sync.build_providers``.
    """

    FRANKFURTER = "frankfurter"


MANUAL_PROVIDER: ProviderName = "manual"


# --- Lookup Keys ---


class RateKey(NamedTuple):
    """Identity of a monthly rate: (year, month, from_currency, to_currency)."""

    year: int
    month: int
    from_currency: CurrencyCode
    to_currency: CurrencyCode


class Period(NamedTuple):
    """A calendar month."""

    year: int
    month: int


# --- Collaborator Models ---


class UserSettings(BaseModel):
    """Singleton user settings row."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    home_currency: CurrencyCode
    theme: str = "Light"
    needs_exchange_sync: bool = False
    created_at: datetime
    updated_at: datetime

    @field_validator("home_currency")
    @classmethod
    def home_currency_is_iso(cls, v: str) -> str:
        return normalize_currency(v)


class Account(BaseModel):
    """A ledger account holding balances in a single currency."""

    model_config = ConfigDict(frozen=True)

    id: AccountId
    name: str
    account_type: AccountType
    currency: CurrencyCode
    sort_order: int = 0
    is_archived: bool = False
    created_at: datetime

    @field_validator("currency")
    @classmethod
    def currency_is_iso(cls, v: str) -> str:
        return normalize_currency(v)


class BalanceSheet(BaseModel):
    """A calendar year of ledger data."""

    model_config = ConfigDict(frozen=True)

    id: BalanceSheetId
    year: int
    created_at: datetime


class Entry(BaseModel):
    """One account balance for one month of one balance sheet's year."""

    model_config = ConfigDict(frozen=True)

    id: str
    balance_sheet_id: BalanceSheetId
    account_id: AccountId
    month: int
    amount: float
    updated_at: datetime

    @field_validator("month")
    @classmethod
    def month_in_range(cls, v: int) -> int:
        return _validate_month(v)


# --- Currency Rate Models ---


class CurrencyRate(BaseModel):
    """Multiplier converting one unit of from_currency into to_currency.

    ``timestamp`` is the instant the row was last written. Once it falls
    after the last day of (year, month) the row is finalized and rate sync
    leaves it alone.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    rate: float
    month: int
    year: int
    provider: ProviderName
    timestamp: datetime

    @field_validator("from_currency", "to_currency")
    @classmethod
    def currency_is_iso(cls, v: str) -> str:
        return normalize_currency(v)

    @field_validator("month")
    @classmethod
    def month_in_range(cls, v: int) -> int:
        return _validate_month(v)

    @field_validator("rate")
    @classmethod
    def rate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"rate must be >= 0, got {v}")
        return v

    @property
    def key(self) -> RateKey:
        return RateKey(self.year, self.month, self.from_currency, self.to_currency)


class RateObservation(BaseModel):
    """One reduced provider quote: foreign units per one home unit.

    Identity is (year, month, currency); the value is payload.
    """

    model_config = ConfigDict(frozen=True)

    year: int
    month: int
    currency: CurrencyCode
    value: float

    @field_validator("month")
    @classmethod
    def month_in_range(cls, v: int) -> int:
        return _validate_month(v)

    def __hash__(self) -> int:
        return hash((self.year, self.month, self.currency))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RateObservation):
            return NotImplemented
        return (self.year, self.month, self.currency) == (
            other.year,
            other.month,
            other.currency,
        )


class RateObservationSet(BaseModel):
    """Everything one provider returned for one sync pass."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderName
    observations: frozenset[RateObservation]


class SyncInputs(BaseModel):
    """Snapshot of collaborator state a sync pass works from."""

    model_config = ConfigDict(frozen=True)

    home_currency: CurrencyCode
    foreign_currencies: frozenset[CurrencyCode] = frozenset()
    years: frozenset[int] = frozenset()
    existing_rates: dict[RateKey, CurrencyRate] = {}

    @model_validator(mode="after")
    def home_not_foreign(self) -> SyncInputs:
        if self.home_currency in self.foreign_currencies:
            raise ValueError(
                f"home currency {self.home_currency} cannot also be a foreign currency"
            )
        return self


class SyncReport(BaseModel):
    """Outcome of ingesting one provider's observations."""

    provider: ProviderName
    processed: int = 0
    upserted: int = 0
    skipped_finalized: int = 0
    failed: int = 0


# --- Net Worth Models ---


class NetWorthDataPoint(BaseModel):
    """Home-currency totals for one calendar month. Computed, never stored."""

    model_config = ConfigDict(frozen=True)

    year: int
    month: int
    total_assets: float
    total_liabilities: float
    net_worth: float
    currency: CurrencyCode

    @model_validator(mode="after")
    def net_worth_consistent(self) -> NetWorthDataPoint:
        expected = self.total_assets - self.total_liabilities
        if abs(self.net_worth - expected) > 1e-6:
            raise ValueError(
                f"net_worth ({self.net_worth}) must equal "
                f"total_assets - total_liabilities ({expected})"
            )
        return self

    @property
    def period(self) -> Period:
        return Period(self.year, self.month)
