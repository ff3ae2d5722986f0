import asyncio
import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import Dict, Optional, Union

from ..errors import StorageError
from ..models import FileTask, Job

logger = logging.getLogger(__name__)


class JobRegistry:
    """
    In-memory job store that owns per-job folders and their expiry.

    Each job gets ``<jobs_dir>/<id>/uploads`` and ``<jobs_dir>/<id>/outputs``.
    A timer started at creation removes the folder and forgets the job after
    ``ttl_s`` seconds, whatever state the job is in. Nothing survives a
    restart.
    """

    def __init__(self, jobs_dir: Union[str, Path], ttl_s: float = 24 * 60 * 60) -> None:
        self.jobs_dir = Path(jobs_dir)
        self.ttl_s = ttl_s
        self._jobs: Dict[str, Job] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def create_job(self) -> Job:
        """
        Create a QUEUED job with empty upload/output folders and start its TTL.

        Must be called from the event loop that will run the expiry timer.
        """
        job_id = uuid.uuid4().hex
        job_dir = self.jobs_dir / job_id
        upload_dir = job_dir / "uploads"
        output_dir = job_dir / "outputs"

        try:
            upload_dir.mkdir(parents=True, exist_ok=True)
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create job folders under {job_dir}: {e}") from e

        job = Job(
            id=job_id,
            job_dir=job_dir,
            upload_dir=upload_dir,
            output_dir=output_dir,
            ttl_s=self.ttl_s,
        )
        self._jobs[job_id] = job
        loop = asyncio.get_running_loop()
        self._timers[job_id] = loop.call_later(self.ttl_s, self.expire, job_id)

        logger.info("Job %s created, expires in %.0fs", job_id, self.ttl_s)
        return job

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def upload_path(self, job: Job, original_name: str) -> Path:
        """Unique destination for an upload: ``<epoch-ms>-<basename>``."""
        base = Path(original_name).name or "upload"
        stamp = int(time.time() * 1000)
        candidate = job.upload_dir / f"{stamp}-{base}"
        counter = 1
        while candidate.exists():
            candidate = job.upload_dir / f"{stamp}-{counter}-{base}"
            counter += 1
        return candidate

    def add_file(self, job: Job, original_name: str, input_path: Path) -> FileTask:
        """Attach a stored upload to the job, keeping upload order."""
        task = FileTask(original_name=original_name, input_path=input_path)
        job.files.append(task)
        return task

    def expire(self, job_id: str) -> bool:
        """
        Remove a job's folder and forget it.

        Safe while the job is processing: the job is flagged expired so the
        pipeline stops touching its paths. Returns False for unknown ids.
        """
        return self._remove(job_id, "expired")

    def discard(self, job_id: str) -> bool:
        """Drop a job whose upload never completed."""
        return self._remove(job_id, "discarded")

    def shutdown(self) -> None:
        """Cancel pending expiry timers (folders are left on disk)."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def _remove(self, job_id: str, reason: str) -> bool:
        timer = self._timers.pop(job_id, None)
        if timer is not None:
            timer.cancel()

        job = self._jobs.pop(job_id, None)
        if job is None:
            return False

        job.expired = True
        try:
            shutil.rmtree(job.job_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Job %s %s but %s could not be removed: %s", job_id, reason, job.job_dir, e)

        logger.info("Job %s %s (status %s)", job_id, reason, job.status.value)
        return True
