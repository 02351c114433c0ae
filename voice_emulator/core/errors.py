"""
Exception taxonomy for the pipeline core.

Degraded-source and artifact-export failures are absorbed as data and never
raised past their stage; only the types below cross component boundaries.
"""

from __future__ import annotations


class VoiceEmulatorError(Exception):
    """Base class for errors raised by the pipeline core."""


class JobNotFoundError(VoiceEmulatorError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidStageTransition(VoiceEmulatorError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Illegal pipeline transition {current} -> {target}")
        self.current = current
        self.target = target


class CollectorError(VoiceEmulatorError):
    """A content source could not be read. Absorbed by the collector guard."""


class ConsolidationError(VoiceEmulatorError):
    """Collector output could not be merged. Fails the job."""


class DocumentExportError(VoiceEmulatorError):
    """The artifact exporter could not produce a document."""
