"""FastAPI route definitions for the networth-tracker API."""

from __future__ import annotations

from datetime import UTC as _UTC, datetime
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response

import networth_tracker
from networth_tracker.api.deps import (
    AppState,
    JobStatus,
    get_app_state,
    get_config,
    get_net_worth_service,
    get_scheduler,
    get_store,
)
from networth_tracker.api.schemas import (
    BalanceSheetRequest,
    BalanceSheetResponse,
    CurrencyRateRequest,
    CurrencyRateResponse,
    HealthResponse,
    JobResponse,
    JobStatusResponse,
    NetWorthPointResponse,
)
from networth_tracker.core.config import AppConfig
from networth_tracker.core.models import MANUAL_PROVIDER, RateKey
from networth_tracker.networth.aggregator import NetWorthService
from networth_tracker.rates.scheduler import SyncScheduler
from networth_tracker.storage.store import SqliteStore

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: SqliteStore = Depends(get_store),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """System health and sync status."""
    settings = await store.get_settings()
    rates = await store.list_rates()
    return HealthResponse(
        status="ok",
        version=networth_tracker.__version__,
        home_currency=settings.home_currency if settings else None,
        needs_exchange_sync=settings.needs_exchange_sync if settings else False,
        total_rates=len(rates),
        pending_syncs=scheduler.pending,
    )


# -- Net Worth --


@router.get("/net-worth", response_model=list[NetWorthPointResponse])
async def get_net_worth_history(
    service: NetWorthService = Depends(get_net_worth_service),
):
    """Monthly net worth in the home currency, oldest first."""
    history = await service.history()
    return [NetWorthPointResponse(**point.model_dump()) for point in history]


@router.get("/net-worth/latest", response_model=NetWorthPointResponse | None)
async def get_latest_net_worth(
    service: NetWorthService = Depends(get_net_worth_service),
):
    """The most recent month of the series, or null when there is none."""
    latest = await service.latest()
    return NetWorthPointResponse(**latest.model_dump()) if latest else None


# -- Currency Rates --


@router.get("/currency-rates", response_model=list[CurrencyRateResponse])
async def list_currency_rates(
    year: int | None = Query(None, description="Filter by year"),
    store: SqliteStore = Depends(get_store),
):
    """Stored monthly rates, newest year first."""
    rates = await store.list_rates(year=year)
    return [CurrencyRateResponse(**r.model_dump()) for r in rates]


@router.put("/currency-rates", response_model=CurrencyRateResponse)
async def upsert_currency_rate(
    request: CurrencyRateRequest,
    store: SqliteStore = Depends(get_store),
):
    """Enter or correct a rate by hand."""
    if request.from_currency == request.to_currency:
        raise HTTPException(
            status_code=422,
            detail="from_currency and to_currency must differ",
        )
    key = RateKey(request.year, request.month, request.from_currency, request.to_currency)
    rate = await store.upsert_rate(key, request.rate, MANUAL_PROVIDER)
    return CurrencyRateResponse(**rate.model_dump())


@router.delete("/currency-rates/{rate_id}", status_code=204)
async def delete_currency_rate(
    rate_id: str,
    store: SqliteStore = Depends(get_store),
):
    """Remove a stored rate."""
    if not await store.delete_rate(rate_id):
        raise HTTPException(status_code=404, detail=f"Rate '{rate_id}' not found")
    return Response(status_code=204)


# -- Balance Sheets --


@router.get("/balance-sheets", response_model=list[BalanceSheetResponse])
async def list_balance_sheets(store: SqliteStore = Depends(get_store)):
    sheets = await store.list_balance_sheets()
    return [BalanceSheetResponse(**s.model_dump()) for s in sheets]


@router.post("/balance-sheets", response_model=BalanceSheetResponse, status_code=201)
async def create_balance_sheet(
    request: BalanceSheetRequest,
    store: SqliteStore = Depends(get_store),
    scheduler: SyncScheduler = Depends(get_scheduler),
    config: AppConfig = Depends(get_config),
):
    """Create a balance sheet year and kick off a background rate sync."""
    existing = await store.list_balance_sheets()
    if any(s.year == request.year for s in existing):
        raise HTTPException(
            status_code=409,
            detail=f"Balance sheet for {request.year} already exists",
        )
    sheet = await store.create_balance_sheet(request.year)
    if config.sync.after_balance_sheet_create:
        scheduler.submit(f"balance-sheet-{sheet.year}")
    return BalanceSheetResponse(**sheet.model_dump())


@router.delete("/balance-sheets/{sheet_id}", status_code=204)
async def delete_balance_sheet(
    sheet_id: str,
    store: SqliteStore = Depends(get_store),
):
    """Delete a balance sheet with its entries and that year's rates."""
    if not await store.delete_balance_sheet(sheet_id):
        raise HTTPException(
            status_code=404, detail=f"Balance sheet '{sheet_id}' not found"
        )
    return Response(status_code=204)


# -- Sync Trigger --


@router.post("/sync", response_model=JobResponse, status_code=202)
async def trigger_sync(
    background_tasks: BackgroundTasks,
    state: AppState = Depends(get_app_state),
):
    """Trigger an exchange-rate sync (async job)."""
    job_id = f"sync-{uuid4().hex[:8]}"
    now = datetime.now(tz=_UTC).isoformat()
    job = JobStatus(job_id=job_id, status="pending", created_at=now)
    state.jobs[job_id] = job

    background_tasks.add_task(_run_sync_job, state, job)

    return JobResponse(
        job_id=job_id,
        status="pending",
        created_at=datetime.fromisoformat(now),
        message="Exchange rate sync queued",
    )


# -- Jobs --


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    state: AppState = Depends(get_app_state),
):
    """Poll job status."""
    job = state.jobs.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")

    return JobStatusResponse(
        job_id=job.job_id,
        status=job.status,
        created_at=datetime.fromisoformat(job.created_at),
        completed_at=(datetime.fromisoformat(job.completed_at) if job.completed_at else None),
        result=job.result,
        error=job.error,
    )


# -- Helpers --


async def _run_sync_job(state: AppState, job: JobStatus) -> None:
    """Execute a sync in the background and record the outcome on the job."""
    job.status = "running"
    try:
        reports = await state.sync_service.run()
        job.status = "completed"
        job.completed_at = datetime.now(tz=_UTC).isoformat()
        job.result = {
            "synced": bool(reports),
            "reports": [r.model_dump() for r in reports],
        }
    except Exception as e:
        job.status = "failed"
        job.completed_at = datetime.now(tz=_UTC).isoformat()
        job.error = str(e)
