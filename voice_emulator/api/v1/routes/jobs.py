"""
Voice emulation job endpoints.

POST /api/v1/jobs                   — start a pipeline run (background task)
GET  /api/v1/jobs/{job_id}          — poll job status
POST /api/v1/jobs/{job_id}/cancel   — cancel a queued or running job
"""

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status

from voice_emulator.api.v1.deps import AuthenticatedUser, Executor, Store
from voice_emulator.core.config import get_settings
from voice_emulator.core.logging import get_logger
from voice_emulator.core.security import limiter
from voice_emulator.models.job import JobStatus
from voice_emulator.schemas.schemas import (
    CancelJobResponse,
    JobStatusResponse,
    StartJobRequest,
    StartJobResponse,
)

router = APIRouter(prefix="/jobs", tags=["jobs"])
logger = get_logger(__name__)


def _start_limit() -> str:
    return get_settings().start_rate_limit


@router.post("", response_model=StartJobResponse, status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(_start_limit)
async def start_job(
    request: Request,
    body: StartJobRequest,
    background_tasks: BackgroundTasks,
    executor: Executor,
    _api_key: AuthenticatedUser,
) -> StartJobResponse:
    """Start a voice emulation run. Returns immediately with a job_id for polling."""
    job_id = executor.start(body.target_name, body.hints)
    background_tasks.add_task(executor.run, job_id)

    job = executor.store.get_job(job_id)
    return StartJobResponse(
        job_id=job_id,
        session_id=job.data["session_id"] if job else "",
        status_url=str(request.url_for("get_job_status", job_id=job_id).path),
    )


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str, store: Store, _api_key: AuthenticatedUser) -> JobStatusResponse:
    """Get the latest snapshot of a job."""
    job = store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")

    completed = job.status == JobStatus.COMPLETED
    return JobStatusResponse(
        job_id=job.id,
        status=job.status,
        stage=job.stage,
        created_at=job.created_at,
        updated_at=job.updated_at,
        progress=job.progress,
        result=job.result if completed else None,
        document_url=(job.result or {}).get("document_url") if completed else None,
        error=(job.error or "Job failed") if job.status == JobStatus.FAILED else None,
    )


@router.post("/{job_id}/cancel", response_model=CancelJobResponse)
async def cancel_job(job_id: str, executor: Executor, _api_key: AuthenticatedUser) -> CancelJobResponse:
    """Cancel a queued or running job. Finished jobs are left untouched."""
    if executor.store.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")

    canceled = executor.cancel(job_id)
    job = executor.store.get_job(job_id)
    logger.info("cancel_requested", job_id=job_id, canceled=canceled)
    return CancelJobResponse(
        job_id=job_id,
        canceled=canceled,
        status=job.status if job else JobStatus.CANCELED,
    )
