"""Job store and scheduler.

:class:`JobStore` is the single owner of the in-memory job table.  Every
read and every mutation goes through its methods, serialised by one
``asyncio.Lock``: status transitions, pending-queue pushes and pops, the
active-job counter, progress updates and both sweeps.

Scheduling:

- at most ``capacity`` jobs are Processing at any time;
- pending jobs are promoted strictly in submission order whenever a slot
  frees up (on submit and on every completion or failure);
- each promoted job races a hard timeout.  On expiry its execution task is
  cancelled and awaited (which closes every browser session it opened)
  before the job is marked Failed with reason ``"timed out"``;
- :meth:`JobStore.stop` fails queued jobs and stops promoting, then cancels
  running jobs until none is left.

Completed artifacts live on disk (see
:class:`~fanfic_downloader.jobs.artifacts.ArtifactStorage`).  A periodic
sweep removes finished jobs older than the retention window, and
:meth:`JobStore.start` removes artifact files left behind by a previous
process.  Artifact file I/O runs in worker threads outside the lock.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Optional

import structlog

from fanfic_downloader.core.exceptions import (
    ArtifactMissingError,
    JobNotFoundError,
    JobNotReadyError,
)
from fanfic_downloader.core.logging_config import job_id_var
from fanfic_downloader.core.schemas.jobs import JobView, QueueStats
from fanfic_downloader.jobs.artifacts import ArtifactStorage
from fanfic_downloader.jobs.models import (
    DownloadResult,
    Job,
    JobKind,
    JobSource,
    JobStatus,
    OutputFormat,
    StoredArtifact,
)

logger = structlog.get_logger(__name__)

#: Executes one job; receives a progress reporter taking a percentage.
JobExecutor = Callable[[Job, Callable[[int], None]], Awaitable[DownloadResult]]

TIMEOUT_REASON = "timed out"
CANCEL_REASON = "cancelled"
SHUTDOWN_REASON = "interrupted by shutdown"

#: Capacity of each job's progress channel.
PROGRESS_BUFFER = 32


class JobStore:
    """In-memory job table with a bounded-concurrency FIFO scheduler.

    Args:
        executor: Coroutine function producing a job's rendered output,
            normally :meth:`~fanfic_downloader.jobs.runner.JobRunner.run`.
        storage: Artifact storage for completed jobs.
        capacity: Maximum number of simultaneously Processing jobs.
        timeout_seconds: Hard deadline per job execution.
        retention_seconds: Lifetime of a finished job after completion.
        cleanup_interval_seconds: Interval of the retention sweep.
        clock: Wall-clock source (epoch seconds); injectable for tests.
    """

    def __init__(
        self,
        executor: JobExecutor,
        storage: ArtifactStorage,
        *,
        capacity: int,
        timeout_seconds: float,
        retention_seconds: float,
        cleanup_interval_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._executor = executor
        self._storage = storage
        self.capacity = capacity
        self._timeout = timeout_seconds
        self._retention = retention_seconds
        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock

        self._lock = asyncio.Lock()
        self._jobs: dict[str, Job] = {}
        self._pending: deque[str] = deque()
        self._active = 0
        self._progress: dict[str, asyncio.Queue[int]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._sweeper: Optional[asyncio.Task[None]] = None
        self._closing = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Prepare the scratch directory, drop orphaned files, start the sweep."""
        await asyncio.to_thread(self._storage.ensure_dir)
        async with self._lock:
            known = set(self._jobs)
        await asyncio.to_thread(self._storage.sweep_orphans, known)
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="job-retention-sweep")
        logger.info(
            "job_store_started",
            capacity=self.capacity,
            directory=str(self._storage.directory),
        )

    async def stop(self) -> None:
        """Stop the sweep, fail queued jobs and cancel every running job.

        No job is promoted once stopping has begun, so every browser session
        is closed when this returns.
        """
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        async with self._lock:
            self._closing = True
            dropped = len(self._pending)
            while self._pending:
                job = self._jobs.get(self._pending.popleft())
                if job is not None:
                    self._fail_locked(job, SHUTDOWN_REASON)
        cancelled = 0
        while self._tasks:
            tasks = list(self._tasks)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._tasks.difference_update(tasks)
            cancelled += len(tasks)
        logger.info("job_store_stopped", cancelled_jobs=cancelled, dropped_jobs=dropped)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def submit(self, kind: JobKind, source: JobSource, fmt: OutputFormat) -> str:
        """Create a Pending job, enqueue it, and promote queued jobs if possible.

        Reachability of *source* is not checked here; that happens when
        the job runs.

        Returns:
            The new job's id.
        """
        job = Job(
            id=str(uuid.uuid4()),
            kind=kind,
            source=source,
            output_format=fmt,
            created_at=self._clock(),
        )
        async with self._lock:
            self._jobs[job.id] = job
            self._pending.append(job.id)
            logger.info(
                "job_created",
                job_id=job.id,
                kind=kind.value,
                site=source.site,
                format=fmt.value,
                pending=len(self._pending),
            )
            self._drain_locked()
        return job.id

    async def status(self, job_id: str) -> JobView:
        """Return a read-only view of a job.

        Raises:
            JobNotFoundError: If the id is unknown.
        """
        async with self._lock:
            job = self._get_locked(job_id)
            self._collect_progress_locked(job)
            position = self._queue_position_locked(job_id)
            return JobView.from_job(job, position)

    async def fetch_result(self, job_id: str) -> StoredArtifact:
        """Return the artifact of a Completed job.

        A job whose artifact file has disappeared is removed from the table.

        Raises:
            JobNotFoundError: If the id is unknown.
            JobNotReadyError: If the job is not Completed.
            ArtifactMissingError: If the artifact file is gone.
        """
        async with self._lock:
            return self._completed_artifact_locked(job_id)

    async def claim_result(self, job_id: str) -> StoredArtifact:
        """Take ownership of a Completed job's artifact.

        The job leaves the table in the same critical section, so a result
        is handed out at most once.  The caller deletes the file with
        :meth:`discard_artifact` once it has been delivered.

        Raises:
            JobNotFoundError: If the id is unknown or already claimed.
            JobNotReadyError: If the job is not Completed.
            ArtifactMissingError: If the artifact file is gone.
        """
        async with self._lock:
            artifact = self._completed_artifact_locked(job_id)
            del self._jobs[job_id]
            self._progress.pop(job_id, None)
        logger.info("result_claimed", job_id=job_id)
        return artifact

    async def discard_artifact(self, artifact: StoredArtifact) -> bool:
        """Delete an artifact file outside the lock."""
        return await asyncio.to_thread(self._storage.delete, artifact.path)

    async def cancel(self, job_id: str) -> bool:
        """Cancel a Pending job.

        The job stays in the table as Failed with reason ``"cancelled"``.

        Returns:
            ``True`` if cancelled; ``False`` if the job is already
            Processing or terminal.

        Raises:
            JobNotFoundError: If the id is unknown.
        """
        async with self._lock:
            job = self._get_locked(job_id)
            if job.status is not JobStatus.PENDING:
                return False
            self._pending.remove(job_id)
            self._fail_locked(job, CANCEL_REASON)
            logger.info("job_cancelled", job_id=job_id)
            return True

    async def delete(self, job_id: str) -> bool:
        """Remove a job and its artifact file.  Idempotent.

        Returns:
            ``True`` if a job record was removed.
        """
        async with self._lock:
            job = self._jobs.pop(job_id, None)
            if job is None:
                return False
            if job.status is JobStatus.PENDING:
                self._pending.remove(job_id)
            self._progress.pop(job_id, None)
        if job.result is not None:
            await self.discard_artifact(job.result)
        logger.info("job_deleted", job_id=job_id, status=job.status.value)
        return True

    async def stats(self) -> QueueStats:
        async with self._lock:
            return QueueStats(
                active=self._active,
                pending=len(self._pending),
                capacity=self.capacity,
                total=len(self._jobs),
            )

    async def sweep_expired(self, now: Optional[float] = None) -> int:
        """Remove finished jobs whose completion is older than the retention window.

        The artifact file is deleted first; a job whose file cannot be
        deleted is kept for the next sweep.

        Returns:
            Number of jobs removed.
        """
        now = self._clock() if now is None else now
        async with self._lock:
            expired = [
                job
                for job in self._jobs.values()
                if job.status.is_terminal
                and job.completed_at is not None
                and now - job.completed_at > self._retention
            ]

        removable = [
            job.id
            for job in expired
            if job.result is None or await self.discard_artifact(job.result)
        ]

        removed = 0
        async with self._lock:
            for job_id in removable:
                if self._jobs.pop(job_id, None) is not None:
                    self._progress.pop(job_id, None)
                    removed += 1
            remaining = len(self._jobs)
        if removed:
            logger.info("expired_jobs_removed", removed=removed, remaining=remaining)
        return removed

    # ------------------------------------------------------------------
    # Scheduling internals (call with the lock held)
    # ------------------------------------------------------------------

    def _get_locked(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _completed_artifact_locked(self, job_id: str) -> StoredArtifact:
        job = self._get_locked(job_id)
        if job.status is not JobStatus.COMPLETED or job.result is None:
            raise JobNotReadyError(job_id, job.status.value, job.error)
        artifact = job.result
        if not artifact.path.is_file():
            del self._jobs[job_id]
            logger.warning("artifact_missing", job_id=job_id, path=str(artifact.path))
            raise ArtifactMissingError(job_id)
        return artifact

    def _queue_position_locked(self, job_id: str) -> Optional[int]:
        try:
            return self._pending.index(job_id) + 1
        except ValueError:
            return None

    def _collect_progress_locked(self, job: Job) -> None:
        channel = self._progress.get(job.id)
        if channel is None:
            return
        while not channel.empty():
            value = channel.get_nowait()
            if job.status is JobStatus.PROCESSING:
                job.advance_progress(value)

    def _fail_locked(self, job: Job, reason: str) -> None:
        job.status = JobStatus.FAILED
        job.error = reason
        job.completed_at = self._clock()

    def _drain_locked(self) -> None:
        """Promote pending jobs, oldest first, while capacity allows."""
        if self._closing:
            return
        while self._active < self.capacity and self._pending:
            job_id = self._pending.popleft()
            job = self._jobs.get(job_id)
            if job is None or job.status is not JobStatus.PENDING:
                continue
            self._active += 1
            job.status = JobStatus.PROCESSING
            job.started_at = self._clock()
            self._progress[job_id] = asyncio.Queue(maxsize=PROGRESS_BUFFER)
            task = asyncio.create_task(self._execute(job), name=f"job-{job_id}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            logger.info(
                "job_started",
                job_id=job_id,
                active=self._active,
                pending=len(self._pending),
            )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(self, job: Job) -> None:
        """Run one job to a terminal state, then free its slot."""
        structlog.contextvars.bind_contextvars(job_id=job.id)
        job_id_var.set(job.id)
        channel = self._progress[job.id]

        def report(percent: int) -> None:
            # Bounded channel: the oldest update is dropped when full.
            if channel.full():
                channel.get_nowait()
            channel.put_nowait(percent)

        run = asyncio.ensure_future(self._executor(job, report))
        try:
            done, _ = await asyncio.wait({run}, timeout=self._timeout)
            if not done:
                run.cancel()
                await asyncio.gather(run, return_exceptions=True)
                async with self._lock:
                    self._fail_locked(job, TIMEOUT_REASON)
                logger.error("job_failed", error=TIMEOUT_REASON, timeout_seconds=self._timeout)
                return

            result = run.result()
            artifact = await asyncio.to_thread(self._storage.write, job.id, result)
            async with self._lock:
                owned = self._complete_locked(job, result, artifact)
            if not owned:
                await self.discard_artifact(artifact)
                logger.info("job_completed_after_delete", path=str(artifact.path))
        except asyncio.CancelledError:
            run.cancel()
            await asyncio.gather(run, return_exceptions=True)
            async with self._lock:
                self._fail_locked(job, SHUTDOWN_REASON)
            raise
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            async with self._lock:
                self._fail_locked(job, reason)
            logger.error("job_failed", error=reason, error_type=type(exc).__name__)
        finally:
            async with self._lock:
                self._active -= 1
                self._progress.pop(job.id, None)
                self._drain_locked()

    def _complete_locked(self, job: Job, result: DownloadResult, artifact: StoredArtifact) -> bool:
        """Record completion.  Returns ``False`` if the job was deleted meanwhile."""
        if job.id not in self._jobs:
            return False
        self._collect_progress_locked(job)
        job.result = artifact
        job.metadata = dict(result.metadata)
        job.status = JobStatus.COMPLETED
        job.completed_at = self._clock()
        job.advance_progress(100)
        logger.info(
            "job_completed",
            duration_seconds=round(job.completed_at - (job.started_at or job.created_at), 3),
            size_bytes=artifact.size_bytes,
        )
        return True

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            try:
                await self.sweep_expired()
            except Exception:
                logger.exception("retention_sweep_failed")
