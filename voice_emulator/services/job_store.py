"""
In-memory job store — keyed registry of Job records.

One instance is built at startup (see main.lifespan) and shared by the API
layer and the pipeline executor. Every read hands out a deep copy, and every
mutation happens under a short lock that is never held across an await.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from voice_emulator.core.errors import InvalidStageTransition, JobNotFoundError
from voice_emulator.core.logging import get_logger
from voice_emulator.models.job import (
    Job,
    JobProgress,
    JobStatus,
    PipelineStage,
    can_transition,
    utcnow,
)

logger = get_logger(__name__)

JobExecutor = Callable[[Job], Awaitable[dict[str, Any]]]


class JobStore:
    def __init__(self, retention_seconds: int = 3600) -> None:
        self.retention = timedelta(seconds=retention_seconds)
        self._jobs: dict[str, Job] = {}
        self._running: set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    # ── Create / read ───────────────────────────────────────
    def create_job(self, data: dict[str, Any]) -> str:
        job = Job(id=str(uuid.uuid4()), data=dict(data))
        with self._lock:
            self._jobs[job.id] = job
        logger.info("job_created", job_id=job.id)
        return job.id

    def get_job(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    def counts(self) -> dict[str, int]:
        with self._lock:
            tally = Counter(job.status.value for job in self._jobs.values())
        return {status.value: tally.get(status.value, 0) for status in JobStatus}

    # ── Lifecycle ───────────────────────────────────────────
    async def process_job(self, job_id: str, executor: JobExecutor) -> None:
        """
        Run `executor` for a queued job and record its terminal state.

        An executor exception is recorded on the job and then re-raised, so a
        caller that does not await this coroutine must guard it separately.
        A job canceled before it starts is never handed to the executor.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status != JobStatus.QUEUED:
                logger.warning("job_not_startable", job_id=job_id, status=job.status.value)
                return
            job.status = JobStatus.RUNNING
            job.touch()
            self._running.add(job_id)
            snapshot = job.model_copy(deep=True)

        try:
            result = await executor(snapshot)
        except asyncio.CancelledError:
            self._finish(job_id, JobStatus.CANCELED)
            raise
        except Exception as e:
            self._finish(job_id, JobStatus.FAILED, error=str(e) or e.__class__.__name__)
            raise
        else:
            self._finish(job_id, JobStatus.COMPLETED, result=result)
        finally:
            with self._lock:
                self._running.discard(job_id)

    def _finish(
        self,
        job_id: str,
        status: JobStatus,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            # A job canceled mid-run keeps its canceled status.
            if job is None or job.status != JobStatus.RUNNING:
                return
            job.status = status
            if status == JobStatus.COMPLETED:
                job.result = result
            elif status == JobStatus.FAILED:
                job.error = error
                job.stage = PipelineStage.FAILED
            job.touch()
        logger.info("job_finished", job_id=job_id, status=status.value)

    def fail_job(self, job_id: str, error: str) -> None:
        """Force a failed transition; no-op unless the job is still active."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return
            job.status = JobStatus.FAILED
            job.stage = PipelineStage.FAILED
            job.error = error
            job.touch()
        logger.info("job_finished", job_id=job_id, status=JobStatus.FAILED.value)

    def cancel_job(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status not in (JobStatus.QUEUED, JobStatus.RUNNING):
                return False
            job.status = JobStatus.CANCELED
            job.touch()
        logger.info("job_canceled", job_id=job_id)
        return True

    # ── Progress ────────────────────────────────────────────
    def update_progress(self, job_id: str, message: str, percentage: int) -> None:
        """Best effort. Percentages are clamped and never move backwards."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return
            pct = max(0, min(100, int(percentage)))
            if job.progress is not None:
                pct = max(pct, job.progress.percentage)
            job.progress = JobProgress(message=message, percentage=pct)
            job.touch()

    def set_stage(self, job_id: str, stage: PipelineStage) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.RUNNING:
                return
            if not can_transition(job.stage, stage):
                raise InvalidStageTransition(job.stage.value, stage.value)
            job.stage = stage
            job.touch()

    # ── Housekeeping ────────────────────────────────────────
    def sweep(self, now: datetime | None = None) -> int:
        """Drop jobs idle past the retention window. Running jobs are never removed."""
        cutoff = (now or utcnow()) - self.retention
        with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if job.updated_at < cutoff and job_id not in self._running
            ]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            logger.info("jobs_swept", removed=len(expired))
        return len(expired)
