"""
FastAPI application entry point.

Configures middleware, lifespan events, and mounts all routers.
Run locally: uvicorn voice_emulator.main:app --reload
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from pathlib import Path

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from voice_emulator.agents.executor import PipelineExecutor
from voice_emulator.agents.graph import PipelineDeps
from voice_emulator.api.v1.routes import health, jobs
from voice_emulator.core.config import Settings, get_settings
from voice_emulator.core.logging import get_logger, setup_logging
from voice_emulator.core.security import limiter
from voice_emulator.services.document_service import STATIC_PREFIX
from voice_emulator.services.job_store import JobStore

logger = get_logger(__name__)


async def sweep_jobs_forever(store: JobStore, interval_seconds: float) -> None:
    """Periodically drop expired jobs from the store."""
    while True:
        await asyncio.sleep(interval_seconds)
        store.sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown events."""
    settings: Settings = app.state.settings
    setup_logging()
    logger.info("app_starting", environment=settings.app_env)

    sweeper = asyncio.create_task(
        sweep_jobs_forever(app.state.job_store, settings.sweep_interval_seconds)
    )

    yield

    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    logger.info("app_shutting_down")


def create_app(settings: Settings | None = None, deps: PipelineDeps | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Voice Emulator",
        description="Collects a public figure's writing across sources and synthesizes a voice profile",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.app_env != "production" else None,
        redoc_url="/redoc" if settings.app_env != "production" else None,
    )

    # ── Core services (one store per process) ───────────────
    store = JobStore(retention_seconds=settings.job_retention_seconds)
    app.state.settings = settings
    app.state.job_store = store
    app.state.executor = PipelineExecutor(store, deps=deps, settings=settings)

    # ── Middleware ──────────────────────────────────────────
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Rate limiting ───────────────────────────────────────
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ── Static files (exported documents) ───────────────────
    Path(settings.documents_dir).mkdir(parents=True, exist_ok=True)
    app.mount(STATIC_PREFIX, StaticFiles(directory=settings.documents_dir), name="documents")

    # ── Routes ──────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(jobs.router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {
            "service": "Voice Emulator",
            "version": "0.1.0",
            "docs": "/docs",
            "health": "/healthz/",
        }

    return app


app = create_app()
