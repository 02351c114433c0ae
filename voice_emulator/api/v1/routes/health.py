"""Health check endpoint for monitoring."""

from __future__ import annotations

from fastapi import APIRouter

from voice_emulator.api.v1.deps import AppSettings, Store
from voice_emulator.schemas.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/healthz/", response_model=HealthResponse)
async def health_check(settings: AppSettings, store: Store) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        environment=settings.app_env,
        jobs=store.counts(),
    )
