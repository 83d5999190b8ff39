# ============================================================================
# WORKER EXECUTOR
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Job execution engine
# PURPOSE: Run one claimed job with timeout, completion and retry bookkeeping
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Executor

Executes claimed jobs through the worker registry with:
- Timeout enforcement (asyncio.wait_for, job_timeout_seconds)
- Idempotent completion after the worker returns
- Failure recording with polynomial backoff
- Logging context (job_id, kind, queue, worker_id) for the whole run

The executor is the only place a job failure is recorded. Step workers
just raise.
"""

import asyncio
import random
import time
from datetime import timedelta
from typing import Callable, Optional

from core.config import Defaults, get_defaults
from core.contracts import JobState
from core.logging import get_logger, log_context
from core.models import Job
from core.models.job import utcnow
from handlers.registry import WorkerNotFoundError, WorkerRegistry
from repositories.job_store import JobStore
from worker.contracts import ExecutionResult, ExecutionStatus

logger = get_logger(__name__)

# Error text stored per attempt is truncated to this length
MAX_ERROR_LENGTH = 2000


def retry_backoff(
    attempt: int,
    max_seconds: float,
    jitter: Callable[[], float] = random.random,
) -> timedelta:
    """
    Delay before the next attempt: attempt**4 seconds plus up to 10% jitter.

    Args:
        attempt: Attempt that just failed (1-based)
        max_seconds: Upper bound on the delay
        jitter: Source of values in [0, 1)

    Returns:
        Delay, never above max_seconds
    """
    base = float(max(attempt, 1) ** 4)
    delay = base + base * 0.1 * jitter()
    return timedelta(seconds=min(delay, max_seconds))


class JobExecutor:
    """
    Executes claimed jobs.

    Takes a running Job, runs its worker, and returns an ExecutionResult
    after the store has recorded the outcome.
    """

    def __init__(
        self,
        store: JobStore,
        registry: WorkerRegistry,
        worker_id: str,
        defaults: Optional[Defaults] = None,
        jitter: Callable[[], float] = random.random,
    ):
        """
        Initialize executor.

        Args:
            store: Job store
            registry: Kind -> worker lookup
            worker_id: Identifier for this worker process
            defaults: Timeouts and backoff limits
            jitter: Backoff jitter source, overridable for tests
        """
        self.store = store
        self.registry = registry
        self.worker_id = worker_id
        self.defaults = defaults or get_defaults()
        self._jitter = jitter

    @property
    def timeout_seconds(self) -> float:
        return self.defaults.jobs.job_timeout_seconds

    async def execute(self, job: Job) -> ExecutionResult:
        """
        Execute a job.

        Raises:
            DatabaseError: the outcome could not be recorded; the job stays
                running until rescued
        """
        start_time = time.time()

        with log_context(
            job_id=job.id,
            kind=job.kind,
            queue=job.queue,
            attempt=job.attempt,
            worker_id=self.worker_id,
            workflow=job.metadata,
        ):
            logger.info(f"Executing job {job.id} ({job.kind}), attempt {job.attempt}/{job.max_attempts}")

            try:
                worker = self.registry.get_or_raise(job.kind)
                await asyncio.wait_for(worker.work(job), timeout=self.timeout_seconds)

            except asyncio.TimeoutError:
                logger.error(f"Job {job.id} timed out after {self.timeout_seconds}s")
                return await self._fail(
                    job, f"TimeoutError: job timed out after {self.timeout_seconds}s", start_time
                )

            except WorkerNotFoundError as e:
                logger.error(str(e))
                return await self._fail(job, str(e), start_time)

            except Exception as e:
                logger.exception(f"Job {job.id} failed with exception")
                return await self._fail(job, f"{type(e).__name__}: {e}", start_time)

            # Workers complete inside their own transaction; this is a no-op then
            result = await self.store.complete(job.id)
            duration_ms = int((time.time() - start_time) * 1000)
            if result.changed:
                logger.warning(
                    f"Worker for {job.kind} returned without completing job {job.id}; "
                    f"completed by the executor outside the worker's transaction"
                )
            logger.info(f"Job {job.id} completed in {duration_ms}ms (changed={result.changed})")

            return ExecutionResult(
                job_id=job.id,
                kind=job.kind,
                queue=job.queue,
                status=ExecutionStatus.COMPLETED,
                attempt=job.attempt,
                duration_ms=duration_ms,
            )

    async def _fail(self, job: Job, error: str, start_time: float) -> ExecutionResult:
        """Record a failed attempt; the store decides retryable vs discarded."""
        error = error[:MAX_ERROR_LENGTH]
        delay = retry_backoff(job.attempt, self.defaults.jobs.max_backoff_seconds, self._jitter)
        retry_at = utcnow() + delay

        updated = await self.store.record_failure(job.id, error, retry_at)
        duration_ms = int((time.time() - start_time) * 1000)

        if updated.state == JobState.DISCARDED:
            logger.warning(f"Job {job.id} discarded after {updated.attempt} attempts: {error}")
            status = ExecutionStatus.DISCARDED
            retry_at = None
        else:
            logger.info(f"Job {job.id} will retry at {retry_at.isoformat()} (in {delay.total_seconds():.1f}s)")
            status = ExecutionStatus.RETRYING

        return ExecutionResult(
            job_id=job.id,
            kind=job.kind,
            queue=job.queue,
            status=status,
            attempt=updated.attempt,
            error_message=error,
            retry_at=retry_at,
            duration_ms=duration_ms,
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "MAX_ERROR_LENGTH",
    "retry_backoff",
    "JobExecutor",
]
