"""
Pydantic v2 schemas for API request/response validation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from voice_emulator.models.job import JobProgress, JobStatus, PipelineStage


# ── Job start ───────────────────────────────────────────────
class StartJobRequest(BaseModel):
    target_name: str = Field(min_length=1, max_length=200)
    hints: dict[str, str] = Field(default_factory=dict)

    @field_validator("target_name")
    @classmethod
    def strip_target_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("target_name must not be blank")
        return v


class StartJobResponse(BaseModel):
    job_id: str
    session_id: str
    status: JobStatus = JobStatus.QUEUED
    message: str = "Voice emulation pipeline started in background"
    status_url: str


# ── Job status ──────────────────────────────────────────────
class JobStatusResponse(BaseModel):
    job_id: str
    status: JobStatus
    stage: PipelineStage
    created_at: datetime
    updated_at: datetime
    progress: JobProgress | None = None
    result: dict[str, Any] | None = None
    document_url: str | None = None
    error: str | None = None


class CancelJobResponse(BaseModel):
    job_id: str
    canceled: bool
    status: JobStatus


# ── Health check ────────────────────────────────────────────
class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "0.1.0"
    environment: str
    jobs: dict[str, int] = Field(default_factory=dict)
