# ============================================================================
# JOB STORE REQUEST / RESULT CONTRACTS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core model - Insert options, list filters, operation results
# PURPOSE: Typed inputs and outputs of the job store adapter
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Store Contracts

Inputs:
- UniqueOpts / InsertOpts: how a job is inserted (queue, retries, dedup)
- JobSpec: args + insert options for one job
- JobListParams: fluent filter for listing jobs

Outputs:
- JobInsertResult: the inserted (or colliding) job, plus a duplicate flag
- JobResult: the job after completion, plus whether the call changed it
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from core.contracts import ALL_STATES, IN_FLIGHT_STATES, JobState
from core.models.args import JobArgs
from core.models.job import Job


# ============================================================================
# INSERT
# ============================================================================

@dataclass(frozen=True)
class UniqueOpts:
    """
    Deduplication settings.

    Two jobs collide when their unique keys match and the existing job
    is in one of by_state. by_period buckets time so that the key
    changes once the window rolls over.
    """
    by_period: Optional[timedelta] = None
    by_state: FrozenSet[JobState] = IN_FLIGHT_STATES

    def bucket(self, now: datetime) -> Optional[int]:
        if self.by_period is None:
            return None
        period = int(self.by_period.total_seconds())
        return int(now.timestamp()) // period


@dataclass(frozen=True)
class InsertOpts:
    """Per-job insert options."""
    queue: str
    max_attempts: int = 5
    unique_opts: Optional[UniqueOpts] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    scheduled_at: Optional[datetime] = None
    pending: bool = False


@dataclass(frozen=True)
class JobSpec:
    """One job to insert."""
    args: JobArgs
    opts: InsertOpts

    def to_job(self, now: datetime) -> Job:
        """Build the row to persist, resolving unique and sequence keys."""
        unique_key = None
        if self.opts.unique_opts is not None:
            unique_key = self.args.unique_key(self.opts.unique_opts.bucket(now))

        scheduled_at = self.opts.scheduled_at or now
        if self.opts.pending:
            state = JobState.PENDING
        elif scheduled_at > now:
            state = JobState.SCHEDULED
        else:
            state = JobState.AVAILABLE

        return Job(
            kind=self.args.kind,
            queue=self.opts.queue,
            args=self.args.to_payload(),
            metadata=dict(self.opts.metadata),
            state=state,
            max_attempts=self.opts.max_attempts,
            unique_key=unique_key,
            sequence_key=self.args.sequence_key(),
            created_at=now,
            scheduled_at=scheduled_at,
        )


@dataclass
class JobInsertResult:
    """Outcome of inserting one job."""
    job: Job
    duplicate: bool = False


@dataclass
class JobResult:
    """Outcome of completing one job."""
    job: Job
    changed: bool


# ============================================================================
# LIST
# ============================================================================

@dataclass(frozen=True)
class JobListParams:
    """
    Filter for listing jobs. Results are ordered by id descending.

    Builder methods return a new instance, so a base filter can be
    shared across several queries:

        base = JobListParams().queues("metabase").metadata({"datasetID": ds})
        latest = await store.list(base.kinds(kind).first(1))
    """
    queue_names: Tuple[str, ...] = ()
    kind_names: Tuple[str, ...] = ()
    state_set: FrozenSet[JobState] = ALL_STATES
    metadata_filter: Dict[str, str] = field(default_factory=dict)
    ids: Tuple[int, ...] = ()
    limit: Optional[int] = None

    def queues(self, *queues: str) -> "JobListParams":
        return replace(self, queue_names=tuple(queues))

    def kinds(self, *kinds: str) -> "JobListParams":
        return replace(self, kind_names=tuple(kinds))

    def states(self, states: Iterable[JobState]) -> "JobListParams":
        return replace(self, state_set=frozenset(states))

    def metadata(self, metadata: Dict[str, str]) -> "JobListParams":
        return replace(self, metadata_filter=dict(metadata))

    def job_ids(self, *ids: int) -> "JobListParams":
        return replace(self, ids=tuple(ids))

    def first(self, n: int) -> "JobListParams":
        return replace(self, limit=n)

    def matches(self, job: Job) -> bool:
        """Whether a job satisfies this filter (ignores limit)."""
        if self.queue_names and job.queue not in self.queue_names:
            return False
        if self.kind_names and job.kind not in self.kind_names:
            return False
        if job.state not in self.state_set:
            return False
        if self.ids and job.id not in self.ids:
            return False
        for key, value in self.metadata_filter.items():
            if job.metadata.get(key) != value:
                return False
        return True


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "UniqueOpts",
    "InsertOpts",
    "JobSpec",
    "JobInsertResult",
    "JobResult",
    "JobListParams",
]
