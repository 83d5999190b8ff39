# ============================================================================
# IN-MEMORY JOB STORE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Job store backend for tests and local runs
# PURPOSE: Dict-backed JobStore with buffered, all-or-nothing transactions
# CREATED: 19 OCT 2026
# ============================================================================
"""
In-Memory Job Store

Implements the JobStore contract in process memory. Data is not
persisted across restarts.

Transactions buffer their writes in a MemoryTx and apply them in one
synchronous step on commit, so a rolled-back batch leaves no trace.
Ids are allocated at insert time and are not reused after a rollback,
the same way a database sequence behaves.

Usage:
    store = MemoryJobStore()
    async with store.transaction() as tx:
        results = await store.insert_many_tx(tx, specs)
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from core.contracts import JobState
from core.errors import CODE_TRANSACTIONAL_QUEUE, DatabaseError
from core.models import Job, JobInsertResult, JobListParams, JobResult, JobSpec
from core.models.job import utcnow

from .job_store import (
    CLAIMABLE_STATES,
    JobStore,
    cancel_job,
    claim_job,
    complete_job,
    fail_job,
    is_sequence_blocked,
    not_found,
    rescue_job,
)

logger = logging.getLogger(__name__)


class MemoryTx:
    """Write buffer for one in-memory transaction."""

    def __init__(self, jobs: Dict[int, Job]):
        self._committed = jobs
        self.staged: Dict[int, Job] = {}
        self.inserted: List[int] = []

    def view(self, job_id: int) -> Optional[Job]:
        """A job as seen from inside this transaction."""
        if job_id in self.staged:
            return self.staged[job_id]
        return self._committed.get(job_id)

    def jobs(self) -> Iterable[Job]:
        for job_id, job in self._committed.items():
            if job_id not in self.staged:
                yield job
        yield from self.staged.values()

    def stage(self, job: Job) -> Job:
        """Copy a committed job into the buffer for modification."""
        if job.id not in self.staged:
            self.staged[job.id] = job.model_copy(deep=True)
        return self.staged[job.id]


class MemoryJobStore(JobStore):
    """Store jobs in local memory."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._jobs: Dict[int, Job] = {}
        self._next_id = 1
        self._clock = clock

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @asynccontextmanager
    async def transaction(self):
        tx = MemoryTx(self._jobs)
        try:
            yield tx
        except BaseException:
            logger.debug(f"Rolled back transaction ({len(tx.staged)} staged jobs)")
            raise
        self._commit(tx)

    def _commit(self, tx: MemoryTx) -> None:
        # Another transaction may have committed a colliding job meanwhile
        for job_id in tx.inserted:
            job = tx.staged[job_id]
            if job.unique_key is None:
                continue
            for other in self._jobs.values():
                if other.unique_key == job.unique_key and other.state.is_in_flight():
                    raise DatabaseError(
                        "memory_job_store.commit",
                        f"unique key conflict for {job.kind} with job {other.id}",
                        code=CODE_TRANSACTIONAL_QUEUE,
                    )
        self._jobs.update(tx.staged)

    # =========================================================================
    # SUBMISSION SIDE
    # =========================================================================

    async def insert_many_tx(self, tx: MemoryTx, specs: Sequence[JobSpec]) -> List[JobInsertResult]:
        now = self._clock()
        return [self._insert_one(tx, spec, now) for spec in specs]

    def _insert_one(self, tx: MemoryTx, spec: JobSpec, now: datetime) -> JobInsertResult:
        job = spec.to_job(now)

        if job.unique_key is not None:
            by_state = spec.opts.unique_opts.by_state
            existing = self._find_unique(tx.jobs(), job.unique_key, by_state)
            if existing is not None:
                return JobInsertResult(job=existing.model_copy(deep=True), duplicate=True)

        job.id = self._next_id
        self._next_id += 1
        tx.staged[job.id] = job
        tx.inserted.append(job.id)
        return JobInsertResult(job=job.model_copy(deep=True))

    @staticmethod
    def _find_unique(jobs: Iterable[Job], unique_key: str, by_state) -> Optional[Job]:
        matches = [job for job in jobs if job.unique_key == unique_key and job.state in by_state]
        if not matches:
            return None
        return max(matches, key=lambda job: job.id)

    async def list(self, params: JobListParams) -> List[Job]:
        matches = sorted(
            (job for job in self._jobs.values() if params.matches(job)),
            key=lambda job: job.id,
            reverse=True,
        )
        if params.limit is not None:
            matches = matches[:params.limit]
        return [job.model_copy(deep=True) for job in matches]

    async def get(self, job_id: int) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise not_found("memory_job_store.get", job_id)
        return job.model_copy(deep=True)

    async def complete_tx(self, tx: MemoryTx, job_id: int) -> JobResult:
        job = tx.view(job_id)
        if job is None:
            raise not_found("memory_job_store.complete_tx", job_id)

        staged = tx.stage(job)
        changed = complete_job(staged, self._clock())
        return JobResult(job=staged.model_copy(deep=True), changed=changed)

    # =========================================================================
    # ENGINE SIDE
    # =========================================================================

    async def fetch_available(self, queue: str, limit: int, worker_id: str) -> List[Job]:
        now = self._clock()
        ordered = sorted(self._jobs.values(), key=lambda job: job.id)
        claimed = []

        for job in ordered:
            if len(claimed) >= limit:
                break
            if job.queue != queue or job.state not in CLAIMABLE_STATES:
                continue
            if job.scheduled_at > now:
                continue
            if is_sequence_blocked(job, ordered):
                continue
            claim_job(job, worker_id, now)
            claimed.append(job.model_copy(deep=True))

        return claimed

    async def record_failure(self, job_id: int, error: str, retry_at: datetime) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise not_found("memory_job_store.record_failure", job_id)
        fail_job(job, error, retry_at, self._clock())
        return job.model_copy(deep=True)

    async def cancel(self, job_id: int) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise not_found("memory_job_store.cancel", job_id)
        if not cancel_job(job, self._clock()):
            logger.info(f"Job {job_id} not cancelled (state={job.state.value})")
        return job.model_copy(deep=True)

    async def rescue_stuck(self, older_than: timedelta) -> int:
        now = self._clock()
        deadline = now - older_than
        rescued = 0
        for job in self._jobs.values():
            if job.state == JobState.RUNNING and job.attempted_at and job.attempted_at < deadline:
                rescue_job(job, now)
                rescued += 1
        if rescued:
            logger.warning(f"Rescued {rescued} stuck jobs")
        return rescued


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["MemoryJobStore", "MemoryTx"]
