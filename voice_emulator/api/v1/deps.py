"""
Shared FastAPI dependencies for v1 API routes.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from voice_emulator.agents.executor import PipelineExecutor
from voice_emulator.core.config import Settings, get_settings
from voice_emulator.core.security import verify_api_key
from voice_emulator.services.job_store import JobStore


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def get_executor(request: Request) -> PipelineExecutor:
    return request.app.state.executor


# Re-export for convenience in route files
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Store = Annotated[JobStore, Depends(get_job_store)]
Executor = Annotated[PipelineExecutor, Depends(get_executor)]
