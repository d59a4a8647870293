"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import networth_tracker
from networth_tracker.api.deps import AppState, api_key_middleware
from networth_tracker.api.routes import router
from networth_tracker.core.config import AppConfig, load_config
from networth_tracker.core.exceptions import (
    ConfigurationError,
    ConsistencyError,
    NetWorthError,
    PersistenceError,
    SyncError,
)
from networth_tracker.rates.scheduler import SyncScheduler
from networth_tracker.rates.sync import RateSyncService, build_providers
from networth_tracker.storage.store import create_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    store = await create_store(config.storage)
    sync_service = RateSyncService(store, build_providers(config))
    scheduler = SyncScheduler(sync_service.sync)

    app.state.app_state = AppState(
        config=config,
        store=store,
        sync_service=sync_service,
        scheduler=scheduler,
        jobs={},
    )

    if config.sync.on_startup:
        scheduler.submit("startup")

    yield

    await scheduler.shutdown()
    await store.close()


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Net Worth Tracker API",
        description="Multi-currency net worth with monthly exchange-rate sync",
        version=networth_tracker.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # the key is read from the lifespan-resolved config on every request
    app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    @app.exception_handler(NetWorthError)
    async def networth_exception_handler(request: Request, exc: NetWorthError):
        status_map = {
            ConfigurationError: 400,
            ConsistencyError: 409,
            SyncError: 502,
            PersistenceError: 500,
        }
        status = status_map.get(type(exc), 500)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app

