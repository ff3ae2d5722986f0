"""Bounded-concurrency job scheduler.

The scheduler is an actor. submit(), admit_next() and job completion only
post messages to an inbox; a single owner task consumes the inbox and is the
only code that touches the pending queue and the active count. Everything runs
on one asyncio loop, so ffmpeg runs are the only points where control passes
between jobs.

Job lifecycle:
    QUEUED → PROCESSING   (admitted while fewer than max_concurrent_jobs run)
    PROCESSING → DONE     (every file rendered, in upload order)
    PROCESSING → ERROR    (first file failure; remaining files are not attempted)
"""

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, Deque, Optional, Set, Tuple

from ..errors import JumpcutError, describe_error
from ..models import FileTask, Job, JobStatus

logger = logging.getLogger(__name__)

FileProcessor = Callable[[Job, FileTask], Awaitable[None]]


class _Message(Enum):
    SUBMIT = "submit"
    ADMIT = "admit"
    DONE = "done"
    STOP = "stop"


class JobScheduler:
    """Admits queued jobs up to a concurrency limit and runs their files in order.

    Example:
        >>> scheduler = JobScheduler(pipeline.process_file, max_concurrent_jobs=2)
        >>> await scheduler.start()
        >>> scheduler.submit(job)
        >>> await scheduler.join()
    """

    def __init__(self, process_file: FileProcessor, max_concurrent_jobs: int = 2):
        """Initialize scheduler.

        Args:
            process_file: Coroutine rendering one file of a job; raising marks
                the job ERROR
            max_concurrent_jobs: Maximum jobs in PROCESSING at once
        """
        if max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")

        self.process_file = process_file
        self.max_concurrent_jobs = max_concurrent_jobs

        self._pending: Deque[Job] = deque()
        self._active = 0
        self._inbox: "asyncio.Queue[Tuple[_Message, Optional[Job]]]" = asyncio.Queue()
        self._owner: Optional[asyncio.Task] = None
        self._job_tasks: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def running(self) -> bool:
        return self._owner is not None and not self._owner.done()

    async def start(self) -> None:
        """Start the owner loop on the running event loop."""
        if self.running:
            return
        self._owner = asyncio.create_task(self._run(), name="jumpcut-scheduler")

    async def stop(self) -> None:
        """Stop the owner loop and cancel jobs still processing (process shutdown)."""
        if self._owner is None:
            return
        self._inbox.put_nowait((_Message.STOP, None))
        await self._owner
        self._owner = None

        tasks = list(self._job_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def submit(self, job: Job) -> None:
        """Queue a job for processing."""
        self._idle.clear()
        self._inbox.put_nowait((_Message.SUBMIT, job))

    def admit_next(self) -> None:
        """Ask the owner loop to admit queued jobs. A no-op if none can start."""
        self._inbox.put_nowait((_Message.ADMIT, None))

    async def join(self) -> None:
        """Wait until nothing is queued or processing."""
        await self._idle.wait()

    async def _run(self) -> None:
        while True:
            kind, job = await self._inbox.get()
            if kind is _Message.STOP:
                break

            if kind is _Message.SUBMIT:
                self._pending.append(job)
                logger.info("Job %s queued with %d file(s)", job.id, len(job.files))
            elif kind is _Message.DONE:
                self._active -= 1

            self._admit()

            if not self._pending and self._active == 0 and self._inbox.empty():
                self._idle.set()

    def _admit(self) -> None:
        while self._active < self.max_concurrent_jobs and self._pending:
            job = self._pending.popleft()
            if job.expired:
                logger.info("Job %s expired while queued, dropping it", job.id)
                continue

            self._active += 1
            job.status = JobStatus.PROCESSING
            logger.info(
                "Job %s: QUEUED -> PROCESSING (%d/%d active)",
                job.id,
                self._active,
                self.max_concurrent_jobs,
            )
            task = asyncio.create_task(self._run_job(job), name=f"jumpcut-job-{job.id}")
            self._job_tasks.add(task)
            task.add_done_callback(self._job_tasks.discard)

    async def _run_job(self, job: Job) -> None:
        try:
            await self._process_files(job)
        finally:
            self._inbox.put_nowait((_Message.DONE, job))

    async def _process_files(self, job: Job) -> None:
        current: Optional[FileTask] = None
        try:
            for file in job.files:
                current = file
                file.status = JobStatus.PROCESSING
                await self.process_file(job, file)
                file.status = JobStatus.DONE
            job.status = JobStatus.DONE
            logger.info("Job %s: PROCESSING -> DONE (%d file(s))", job.id, len(job.files))

        except asyncio.CancelledError:
            self._fail(job, current, "Processing cancelled by shutdown")
            raise

        except JumpcutError as e:
            message = describe_error(e)
            self._fail(job, current, message)
            logger.error("Job %s: PROCESSING -> ERROR on %s: %s", job.id, _name(current), message)

        except Exception as e:
            # Unexpected failure still only takes down this job
            self._fail(job, current, describe_error(e))
            logger.exception("Job %s: PROCESSING -> ERROR on %s", job.id, _name(current))

    @staticmethod
    def _fail(job: Job, file: Optional[FileTask], message: str) -> None:
        if file is not None:
            file.status = JobStatus.ERROR
            file.error = message
        job.status = JobStatus.ERROR
        job.error = message


def _name(file: Optional[FileTask]) -> str:
    return file.original_name if file is not None else "<no file>"
