"""
Job record — one pipeline execution as seen by the store and the status poller.

Uses str-valued enums so records serialise straight into API responses.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


# ── Enums ───────────────────────────────────────────────────
class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELED)


class PipelineStage(str, enum.Enum):
    CREATED = "created"
    DISCOVERING = "discovering"
    COLLECTING = "collecting"
    CONSOLIDATING = "consolidating"
    SYNTHESIZING = "synthesizing"
    COMPLETED = "completed"
    FAILED = "failed"


# Forward edges of the executor state machine. FAILED is reachable from any
# stage not listed as terminal, so it is handled separately in can_transition.
STAGE_TRANSITIONS: dict[PipelineStage, frozenset[PipelineStage]] = {
    PipelineStage.CREATED: frozenset({PipelineStage.DISCOVERING}),
    PipelineStage.DISCOVERING: frozenset({PipelineStage.COLLECTING}),
    PipelineStage.COLLECTING: frozenset({PipelineStage.CONSOLIDATING}),
    PipelineStage.CONSOLIDATING: frozenset(
        {PipelineStage.SYNTHESIZING, PipelineStage.COMPLETED}
    ),
    PipelineStage.SYNTHESIZING: frozenset({PipelineStage.COMPLETED}),
    PipelineStage.COMPLETED: frozenset(),
    PipelineStage.FAILED: frozenset(),
}


def can_transition(current: PipelineStage, target: PipelineStage) -> bool:
    if target == PipelineStage.FAILED:
        return current not in (PipelineStage.COMPLETED, PipelineStage.FAILED)
    return target in STAGE_TRANSITIONS[current]


# ── Models ──────────────────────────────────────────────────
class JobProgress(BaseModel):
    message: str
    percentage: int = Field(ge=0, le=100)


class Job(BaseModel):
    id: str
    status: JobStatus = JobStatus.QUEUED
    stage: PipelineStage = PipelineStage.CREATED
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    progress: JobProgress | None = None
    result: dict[str, Any] | None = None
    error: str | None = None

    def touch(self) -> None:
        self.updated_at = utcnow()
