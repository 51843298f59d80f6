"""In-memory job registry with TTL expiry.

Jobs live in a single process, so this is a per-instance table. All access
goes through one lock and readers always get copies, so a status poll never
observes a half-applied update from the pipeline.
"""

import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from mediasuite.config import get_settings
from mediasuite.exceptions import JobNotFoundError

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    """Render job status."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """Render or merge job record."""

    id: str
    kind: str = "render"
    status: JobStatus = JobStatus.PROCESSING
    progress: int = 1
    stage: str = "queued"
    output_path: str | None = None
    download_url: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    finished_at: datetime | None = None
    # Monotonic clock reading at completion, drives expiry
    finished_monotonic: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the status response shape."""
        data: dict[str, Any] = {
            "jobId": self.id,
            "kind": self.kind,
            "progress": self.progress,
            "status": self.status.value,
            "stage": self.stage,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.finished_at:
            data["finishedAt"] = self.finished_at.isoformat()
        if self.download_url:
            data["downloadUrl"] = self.download_url
        if self.error:
            data["error"] = self.error
        return data


class JobRegistry:
    """Thread-safe job table.

    - ``update_progress`` clamps to [0, 100] and never lowers progress
    - terminal jobs (completed/failed) are immutable
    - finished jobs expire after ``ttl_seconds``; expiry also removes the
      job's output file
    """

    def __init__(self, ttl_seconds: int | None = None) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_seconds if ttl_seconds is not None else get_settings().job_retention_seconds

    def create(self, kind: str = "render") -> Job:
        job = Job(id=uuid.uuid4().hex, kind=kind, stage="queued")
        with self._lock:
            self._prune_expired()
            self._jobs[job.id] = job
            logger.info(f"[JOB] Created {kind} job {job.id}")
            return replace(job)

    def get(self, job_id: str) -> Job:
        """Snapshot of a job.

        Raises:
            JobNotFoundError: unknown or expired id
        """
        with self._lock:
            self._prune_expired()
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return replace(job)

    def _require_active(self, job_id: str) -> Job | None:
        """Live record for mutation; None (and a warning) if terminal."""
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.is_terminal:
            logger.warning(f"[JOB] Ignoring update to finished job {job_id}")
            return None
        return job

    def update_progress(self, job_id: str, progress: float, stage: str | None = None) -> Job:
        with self._lock:
            job = self._require_active(job_id)
            if job is None:
                return replace(self._jobs[job_id])
            value = max(0, min(100, int(progress)))
            if value > job.progress:
                job.progress = value
            if stage:
                job.stage = stage
            job.updated_at = _now()
            return replace(job)

    def complete(self, job_id: str, output_path: str, download_url: str) -> Job:
        with self._lock:
            job = self._require_active(job_id)
            if job is None:
                return replace(self._jobs[job_id])
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.stage = "completed"
            job.output_path = output_path
            job.download_url = download_url
            self._finish(job)
            logger.info(f"[JOB] {job_id} completed: {download_url}")
            return replace(job)

    def fail(self, job_id: str, error: str) -> Job:
        with self._lock:
            job = self._require_active(job_id)
            if job is None:
                return replace(self._jobs[job_id])
            job.status = JobStatus.FAILED
            job.stage = "failed"
            job.error = error
            self._finish(job)
            logger.info(f"[JOB] {job_id} failed: {error}")
            return replace(job)

    def _finish(self, job: Job) -> None:
        job.finished_at = job.updated_at = _now()
        job.finished_monotonic = time.monotonic()

    def prune(self) -> int:
        """Remove expired jobs now; returns how many were removed."""
        with self._lock:
            return self._prune_expired()

    def _prune_expired(self) -> int:
        """Remove expired entries (called under lock)."""
        now = time.monotonic()
        expired = [
            job for job in self._jobs.values()
            if job.finished_monotonic is not None and now - job.finished_monotonic > self._ttl
        ]
        for job in expired:
            del self._jobs[job.id]
            if job.output_path and os.path.exists(job.output_path):
                try:
                    os.remove(job.output_path)
                except OSError as e:
                    logger.warning(f"[JOB] Could not remove output of expired job {job.id}: {e}")
        if expired:
            logger.info(f"[JOB] Pruned {len(expired)} expired job(s)")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


# Singleton instance
job_registry = JobRegistry()
