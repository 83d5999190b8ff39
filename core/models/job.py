# ============================================================================
# JOB MODEL
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core model - One unit of durable work
# PURPOSE: Row model for the jobs table plus attempt error records
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Model

A Job is one durable unit of work: one step of a workflow.

The job store owns every field. Workers see a Job as read-only input and
only change it through the store's complete operation.
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError

from core.contracts import JobState
from core.errors import CODE_DECODING, InternalError
from core.models.args import JobArgs

A = TypeVar("A", bound=JobArgs)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttemptError(BaseModel):
    """Failure recorded for one attempt."""
    attempt: int
    at: datetime = Field(default_factory=utcnow)
    error: str = Field(..., max_length=2000)


class Job(BaseModel):
    """
    A persisted job.

    Maps to: <schema>.jobs table

    Lifecycle:
        1. Inserted as AVAILABLE (or SCHEDULED when deferred)
        2. Claimed by an executor -> RUNNING, attempt += 1
        3. Worker succeeds -> COMPLETED
        4. Worker fails -> RETRYABLE until max_attempts, then DISCARDED
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "jobs"
    __sql_primary_key__: ClassVar[List[str]] = ["id"]
    __sql_serial_columns__: ClassVar[List[str]] = ["id"]
    __sql_indexes__: ClassVar[List[Dict[str, Any]]] = [
        {"name": "idx_jobs_queue_kind_state", "columns": ["queue", "kind", "state"]},
        {"name": "idx_jobs_claim", "columns": ["queue", "state", "scheduled_at"],
         "partial_where": "state IN ('available', 'retryable')"},
        {"name": "idx_jobs_sequence", "columns": ["sequence_key", "id"],
         "partial_where": "sequence_key IS NOT NULL"},
        {"name": "idx_jobs_metadata", "columns": ["metadata"], "type": "gin"},
        # Uniqueness only holds while a job is in flight
        {"name": "uq_jobs_unique_key", "columns": ["unique_key"], "unique": True,
         "partial_where": "unique_key IS NOT NULL AND state IN "
                          "('available', 'pending', 'running', 'retryable', 'scheduled')"},
    ]

    id: Optional[int] = Field(default=None, description="Assigned by the store on insert")
    kind: str = Field(..., max_length=128)
    queue: str = Field(..., max_length=64)
    args: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, str] = Field(
        default_factory=dict,
        description="Flat lookup map carrying the workflow correlation key",
    )
    state: JobState = Field(default=JobState.AVAILABLE)

    attempt: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=5, ge=1)
    errors: List[AttemptError] = Field(default_factory=list)

    unique_key: Optional[str] = Field(default=None, max_length=64)
    sequence_key: Optional[str] = Field(default=None, max_length=512)
    attempted_by: Optional[str] = Field(default=None, max_length=128)

    created_at: datetime = Field(default_factory=utcnow)
    scheduled_at: datetime = Field(default_factory=utcnow)
    attempted_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None

    def decode_args(self, args_cls: Type[A]) -> A:
        """
        Decode the stored payload into its args model.

        Raises:
            InternalError: payload does not match the model
        """
        if args_cls.kind and args_cls.kind != self.kind:
            raise InternalError(
                "job.decode_args",
                f"job {self.id} has kind {self.kind}, expected {args_cls.kind}",
                code=CODE_DECODING,
            )
        try:
            return args_cls.model_validate(self.args)
        except ValidationError as e:
            raise InternalError(
                "job.decode_args",
                f"job {self.id} ({self.kind}): {e}",
                code=CODE_DECODING,
            ) from e

    def error_messages(self) -> List[str]:
        """Attempt errors, deduplicated in first-seen order."""
        seen: Dict[str, None] = {}
        for err in self.errors:
            seen.setdefault(err.error, None)
        return list(seen)

    @property
    def is_finalized(self) -> bool:
        return self.state.is_terminal()


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["Job", "AttemptError", "utcnow"]
