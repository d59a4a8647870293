"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass, field

from fastapi import Request
from fastapi.responses import JSONResponse

from networth_tracker.core.config import AppConfig
from networth_tracker.networth.aggregator import NetWorthService
from networth_tracker.rates.scheduler import SyncScheduler
from networth_tracker.rates.sync import RateSyncService
from networth_tracker.storage.store import SqliteStore


@dataclass
class JobStatus:
    """Tracks a background sync job."""

    job_id: str
    status: str  # "pending" | "running" | "completed" | "failed"
    created_at: str  # ISO-8601
    completed_at: str | None = None
    result: dict | None = None
    error: str | None = None


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: AppConfig
    store: SqliteStore
    sync_service: RateSyncService
    scheduler: SyncScheduler
    jobs: dict[str, JobStatus] = field(default_factory=dict)


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> AppConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_store(request: Request) -> SqliteStore:
    """Dependency: retrieve storage backend."""
    return request.app.state.app_state.store


def get_scheduler(request: Request) -> SyncScheduler:
    """Dependency: retrieve the background sync scheduler."""
    return request.app.state.app_state.scheduler


def get_net_worth_service(request: Request) -> NetWorthService:
    """Dependency: a net worth aggregator over the shared store."""
    return NetWorthService(request.app.state.app_state.store)


EXEMPT_PATHS = {"/api/health"}


async def api_key_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: validate X-API-Key header when authentication is enabled."""
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    config = request.app.state.app_state.config
    if config.api.api_key:
        api_key = request.headers.get("X-API-Key")
        if api_key != config.api.api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "detail": "Invalid or missing API key"},
            )
    return await call_next(request)
