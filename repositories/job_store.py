# ============================================================================
# JOB STORE INTERFACE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Durable job store contract
# PURPOSE: Abstract job store plus the state transitions every backend shares
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Store Interface

The job store is the only component that mutates job bookkeeping.

Submission side (used by workflow services):
- transaction(): scope for atomic multi-insert and completion
- insert_many_tx(): insert a batch of jobs, reporting unique collisions
- list() / get(): read jobs by filter or id
- complete_tx(): idempotently mark a job completed

Engine side (used by the executor):
- fetch_available(): claim eligible jobs for a queue
- record_failure(): retry with backoff or discard
- cancel(), rescue_stuck()

State transitions are implemented once here as pure functions so that
every backend applies the same rules.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, AsyncContextManager, Iterable, List, Optional, Sequence

from core.contracts import JobState
from core.errors import NotExistError
from core.models import (
    AttemptError,
    Job,
    JobInsertResult,
    JobListParams,
    JobResult,
    JobSpec,
)

logger = logging.getLogger(__name__)

# Backend-specific transaction handle (psycopg connection, in-memory tx, ...)
Tx = Any

# States the executor may claim from
CLAIMABLE_STATES = (JobState.AVAILABLE, JobState.RETRYABLE, JobState.SCHEDULED)


# ============================================================================
# STATE TRANSITIONS
# ============================================================================

def complete_job(job: Job, now: datetime) -> bool:
    """
    Mark a job completed in place.

    Returns:
        True if the state changed; False for an already finalized job
    """
    if job.state.is_terminal():
        if job.state != JobState.COMPLETED:
            logger.warning(f"Not completing job {job.id}: already {job.state.value}")
        return False

    job.state = JobState.COMPLETED
    job.finalized_at = now
    return True


def fail_job(job: Job, error: str, retry_at: datetime, now: datetime) -> bool:
    """
    Record a failed attempt in place.

    The job becomes RETRYABLE at retry_at, or DISCARDED once attempt
    has reached max_attempts.

    Returns:
        True if the job was running and the failure was applied
    """
    if job.state != JobState.RUNNING:
        logger.warning(f"Ignoring failure for job {job.id} in state {job.state.value}")
        return False

    job.errors.append(AttemptError(attempt=job.attempt, at=now, error=error[:2000]))
    if job.attempt >= job.max_attempts:
        job.state = JobState.DISCARDED
        job.finalized_at = now
    else:
        job.state = JobState.RETRYABLE
        job.scheduled_at = retry_at
    return True


def cancel_job(job: Job, now: datetime) -> bool:
    """Cancel a job that is neither running nor finalized."""
    if job.state == JobState.RUNNING or job.state.is_terminal():
        return False
    job.state = JobState.CANCELLED
    job.finalized_at = now
    return True


def rescue_job(job: Job, now: datetime) -> None:
    """Return a stuck running job to the retry path."""
    job.errors.append(AttemptError(
        attempt=job.attempt,
        at=now,
        error="job rescued after exceeding its running deadline",
    ))
    if job.attempt >= job.max_attempts:
        job.state = JobState.DISCARDED
        job.finalized_at = now
    else:
        job.state = JobState.RETRYABLE
        job.scheduled_at = now


def claim_job(job: Job, worker_id: str, now: datetime) -> None:
    job.state = JobState.RUNNING
    job.attempt += 1
    job.attempted_at = now
    job.attempted_by = worker_id


def is_sequence_blocked(job: Job, others: Iterable[Job]) -> bool:
    """
    Whether an earlier job in the same sequence still holds this one back.

    A job waits for every lower-id job in its sequence whose kind differs
    from its own until that job has completed. A discarded or cancelled
    job halts the rest of its sequence. Consecutive jobs of the same kind
    run side by side.
    """
    if job.sequence_key is None:
        return False
    for other in others:
        if (
            other.sequence_key == job.sequence_key
            and other.id < job.id
            and other.kind != job.kind
            and other.state != JobState.COMPLETED
        ):
            return True
    return False


# ============================================================================
# INTERFACE
# ============================================================================

class JobStore(ABC):
    """Durable job store."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[Tx]:
        """
        Open a transaction.

        Commits on clean exit, rolls back when the block raises.
        """

    @abstractmethod
    async def insert_many_tx(self, tx: Tx, specs: Sequence[JobSpec]) -> List[JobInsertResult]:
        """
        Insert jobs inside a caller-owned transaction.

        A spec whose unique key collides with an in-flight job is not
        inserted; the existing job is returned with duplicate=True.

        Raises:
            DatabaseError: any other insert failure (caller must roll back)
        """

    async def insert_many(self, specs: Sequence[JobSpec]) -> List[JobInsertResult]:
        """Insert jobs in their own transaction."""
        async with self.transaction() as tx:
            return await self.insert_many_tx(tx, specs)

    @abstractmethod
    async def list(self, params: JobListParams) -> List[Job]:
        """
        List jobs matching a filter, newest (highest id) first.

        Returns an empty list when nothing matches.
        """

    @abstractmethod
    async def get(self, job_id: int) -> Job:
        """
        Get a job by id.

        Raises:
            NotExistError: no such job
        """

    @abstractmethod
    async def complete_tx(self, tx: Tx, job_id: int) -> JobResult:
        """
        Mark a job completed inside a caller-owned transaction.

        Idempotent: completing a completed job returns changed=False.

        Raises:
            NotExistError: no such job
        """

    async def complete(self, job_id: int) -> JobResult:
        async with self.transaction() as tx:
            return await self.complete_tx(tx, job_id)

    @abstractmethod
    async def fetch_available(self, queue: str, limit: int, worker_id: str) -> List[Job]:
        """
        Claim up to `limit` eligible jobs from a queue and mark them running.

        Eligible: claimable state, scheduled_at reached, not blocked by
        its sequence. Returned in id order.
        """

    @abstractmethod
    async def record_failure(self, job_id: int, error: str, retry_at: datetime) -> Job:
        """Record a failed attempt; returns the updated job."""

    @abstractmethod
    async def cancel(self, job_id: int) -> Job:
        """Cancel a job that has not started; running jobs are left alone."""

    @abstractmethod
    async def rescue_stuck(self, older_than: timedelta) -> int:
        """
        Move jobs running for longer than `older_than` back to retryable.

        Returns:
            Number of jobs rescued
        """

    async def close(self) -> None:
        """Release backend resources."""


def not_found(op: str, job_id: Optional[int]) -> NotExistError:
    return NotExistError(op, f"job {job_id} not found")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "Tx",
    "CLAIMABLE_STATES",
    "JobStore",
    "complete_job",
    "fail_job",
    "cancel_job",
    "rescue_job",
    "claim_job",
    "is_sequence_blocked",
    "not_found",
]
