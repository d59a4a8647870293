"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from networth_tracker.core.models import normalize_currency


# -- Health --


class HealthResponse(BaseModel):
    status: str
    version: str
    home_currency: str | None
    needs_exchange_sync: bool
    total_rates: int
    pending_syncs: int


# -- Net Worth --


class NetWorthPointResponse(BaseModel):
    """One month of the net worth series."""

    year: int
    month: int
    total_assets: float
    total_liabilities: float
    net_worth: float
    currency: str


# -- Currency Rates --


class CurrencyRateResponse(BaseModel):
    id: str
    from_currency: str
    to_currency: str
    rate: float
    year: int
    month: int
    provider: str
    timestamp: datetime


class CurrencyRateRequest(BaseModel):
    """Manual rate entry. Overwrites any stored value for the same month."""

    from_currency: str = Field(..., min_length=3, max_length=3)
    to_currency: str = Field(..., min_length=3, max_length=3)
    year: int = Field(..., ge=1900, le=2100)
    month: int = Field(..., ge=1, le=12)
    rate: float = Field(..., ge=0)

    @field_validator("from_currency", "to_currency")
    @classmethod
    def currency_is_iso(cls, v: str) -> str:
        return normalize_currency(v)


# -- Balance Sheets --


class BalanceSheetRequest(BaseModel):
    year: int = Field(..., ge=1900, le=2100)


class BalanceSheetResponse(BaseModel):
    id: str
    year: int
    created_at: datetime


# -- Jobs --


class JobResponse(BaseModel):
    """Response after triggering a sync job."""

    job_id: str
    status: str
    created_at: datetime
    message: str


class JobStatusResponse(BaseModel):
    """Sync job status for polling."""

    job_id: str
    status: str
    created_at: datetime
    completed_at: datetime | None = None
    result: dict | None = None
    error: str | None = None
