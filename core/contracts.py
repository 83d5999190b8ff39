# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Foundation - Core enums shared by store, services and workers
# PURPOSE: Job lifecycle states, surfaced step status, queue names
# CREATED: 19 OCT 2026
# ============================================================================
"""
Base contracts for the workflow orchestration layer.

These define the values that cross boundaries:
- SQL (PostgreSQL job table)
- Python (store, services, workers)
- HTTP (status responses)
"""

from enum import Enum
from typing import FrozenSet


# ============================================================================
# STATUS ENUMS
# ============================================================================

class JobState(str, Enum):
    """
    Job lifecycle states as stored by the job store.

    State transitions:
        AVAILABLE -> RUNNING -> COMPLETED
                             -> RETRYABLE -> RUNNING ...
                             -> DISCARDED (attempts exhausted)
        SCHEDULED -> AVAILABLE (when scheduled_at passes)
        any non-running, non-terminal -> CANCELLED
    """
    AVAILABLE = "available"      # Ready to be picked up
    SCHEDULED = "scheduled"      # Deferred until scheduled_at
    RUNNING = "running"          # Claimed by a worker
    RETRYABLE = "retryable"      # Failed, waiting for the next attempt
    COMPLETED = "completed"      # Finished successfully
    DISCARDED = "discarded"      # Failed with no attempts left
    CANCELLED = "cancelled"      # Cancelled before running
    PENDING = "pending"          # Inserted on hold

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self in TERMINAL_STATES

    def is_in_flight(self) -> bool:
        """Check if this state participates in uniqueness checks."""
        return self in IN_FLIGHT_STATES


class JobStatus(str, Enum):
    """
    Aggregated step status surfaced to callers.

    Collapses the store's states into what a progress view needs.
    """
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def from_job_state(cls, state: JobState) -> "JobStatus":
        """Map a stored job state to its surfaced status."""
        if state in (JobState.AVAILABLE, JobState.RUNNING, JobState.RETRYABLE):
            return cls.RUNNING
        if state == JobState.COMPLETED:
            return cls.COMPLETED
        if state in (JobState.DISCARDED, JobState.CANCELLED):
            return cls.FAILED
        return cls.PENDING


TERMINAL_STATES: FrozenSet[JobState] = frozenset({
    JobState.COMPLETED,
    JobState.DISCARDED,
    JobState.CANCELLED,
})

# States in which an existing job blocks a new one with the same unique key
IN_FLIGHT_STATES: FrozenSet[JobState] = frozenset({
    JobState.AVAILABLE,
    JobState.PENDING,
    JobState.RUNNING,
    JobState.RETRYABLE,
    JobState.SCHEDULED,
})

ALL_STATES: FrozenSet[JobState] = frozenset(JobState)


# ============================================================================
# QUEUES
# ============================================================================

class QueueName(str, Enum):
    """Named lanes; each has its own worker pool."""
    METABASE = "metabase"
    METABASE_RESYNC = "metabase_resync"
    WORKSTATION = "workstation"
    WORKSTATION_CONNECTIVITY = "workstation_connectivity"


# Metadata keys carrying the workflow correlation key
METADATA_DATASET_ID = "datasetID"
METADATA_IDENT = "ident"
# Which pipeline a metabase step belongs to ("restricted" | "open")
METADATA_WORKFLOW = "workflow"


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "JobState",
    "JobStatus",
    "TERMINAL_STATES",
    "IN_FLIGHT_STATES",
    "ALL_STATES",
    "QueueName",
    "METADATA_DATASET_ID",
    "METADATA_IDENT",
    "METADATA_WORKFLOW",
]
