"""
Pipeline executor — the job-level boundary around the pipeline graph.

start() registers a job and returns its id; run() is what the API schedules
in the background. run() is the top-level error boundary: nothing escapes it,
and any exception not already recorded by the store forces a failed job.
Each run executes inside its own asyncio task so cancel() can preempt it;
the resulting CancelledError interrupts whichever collector or network call
is pending.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

from voice_emulator.agents.coordinator import fan_in
from voice_emulator.agents.graph import PROGRESS_DONE, PipelineDeps, build_graph, default_deps
from voice_emulator.agents.state import PipelineState
from voice_emulator.core.config import Settings, get_settings
from voice_emulator.core.logging import get_logger, job_context
from voice_emulator.models.job import Job, PipelineStage
from voice_emulator.services.job_store import JobStore

logger = get_logger(__name__)


class PipelineExecutor:
    def __init__(
        self,
        store: JobStore,
        deps: PipelineDeps | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.deps = deps or default_deps(settings or get_settings())
        self.graph = build_graph(self.deps, store)
        self._tasks: dict[str, asyncio.Task] = {}

    def start(self, target_name: str, hints: dict[str, str] | None = None) -> str:
        """Create a queued job for `target_name`. Execution begins with run()."""
        session_id = f"voice-emulator-{uuid.uuid4().hex[:12]}"
        job_id = self.store.create_job(
            {"target_name": target_name, "hints": dict(hints or {}), "session_id": session_id}
        )
        logger.info("pipeline_triggered", job_id=job_id, target=target_name)
        return job_id

    async def run(self, job_id: str) -> None:
        """Background entry point. Never raises, except when itself cancelled."""
        if job_id in self._tasks:
            logger.warning("pipeline_already_running", job_id=job_id)
            return
        task = asyncio.create_task(self.store.process_job(job_id, self._execute))
        self._tasks[job_id] = task
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.info("pipeline_canceled", job_id=job_id)
        except Exception as e:
            logger.error("pipeline_failed", job_id=job_id, error=str(e))
            self.store.fail_job(job_id, str(e) or e.__class__.__name__)
        finally:
            if self._tasks.get(job_id) is task:
                del self._tasks[job_id]

    def cancel(self, job_id: str) -> bool:
        """Mark the job canceled and interrupt its in-flight task, if any."""
        canceled = self.store.cancel_job(job_id)
        task = self._tasks.get(job_id)
        if canceled and task is not None and not task.done():
            task.cancel()
        return canceled

    async def _execute(self, job: Job) -> dict[str, Any]:
        data = job.data
        initial: PipelineState = {
            "job_id": job.id,
            "session_id": data["session_id"],
            "target_name": data["target_name"],
            "hints": data.get("hints", {}),
            "collected": {},
            "error_log": [],
            "voice_profile": None,
        }
        with job_context(job.id, data["session_id"]):
            final = await self.graph.ainvoke(initial)

        self.store.set_stage(job.id, PipelineStage.COMPLETED)
        self.store.update_progress(job.id, "Pipeline completed!", PROGRESS_DONE)

        consolidation = final["consolidation"]
        result: dict[str, Any] = {
            "session_id": data["session_id"],
            "target_name": data["target_name"],
            "discovery": final.get("discovery"),
            **{r["source"]: r for r in fan_in(final)},
            "consolidation": consolidation,
            "document_url": consolidation["document_url"],
            "voice_profile": final.get("voice_profile"),
            "error_log": final.get("error_log", []),
        }
        logger.info(
            "pipeline_completed",
            job_id=job.id,
            total_pieces=consolidation["total_pieces"],
            degraded=len(result["error_log"]),
        )
        return result
