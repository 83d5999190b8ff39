# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Foundation - Typed errors for the orchestration layer
# PURPOSE: Database / NotExist / Internal errors tagged with operation names
# CREATED: 19 OCT 2026
# ============================================================================
"""
Error Taxonomy

Every error raised by the store and the workflow services is a
WorkflowError carrying:
- kind: what class of failure it is (database, not_exist, internal)
- op:   the operation that failed, for traceability
- code: an optional machine-readable code

Services re-wrap errors raised below them with their own op name but
never change the kind. Duplicate submissions are not errors; they are
reported as a flag on the returned handle.

Usage:
    from core.errors import DatabaseError, wrap

    try:
        ...
    except psycopg.Error as e:
        raise DatabaseError("pg_job_store.list", str(e), code=CODE_TRANSACTIONAL_QUEUE) from e
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure classes callers branch on."""
    DATABASE = "database"
    NOT_EXIST = "not_exist"
    INTERNAL = "internal"


# Error codes
CODE_TRANSACTIONAL_QUEUE = "TRANSACTIONAL_QUEUE"
CODE_DECODING = "DECODING"
CODE_INVARIANT = "INVARIANT"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class WorkflowError(Exception):
    """Base exception for orchestration errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        op: str,
        message: str,
        code: Optional[str] = None,
    ):
        self.op = op
        self.message = message
        self.code = code
        super().__init__(f"{op}: {message}")

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "op": self.op,
            "code": self.code,
            "message": self.message,
        }


class DatabaseError(WorkflowError):
    """Store or connectivity failure."""
    kind = ErrorKind.DATABASE


class NotExistError(WorkflowError):
    """An expected record is missing (e.g. a workflow step not reached yet)."""
    kind = ErrorKind.NOT_EXIST


class InternalError(WorkflowError):
    """Invariant violation or undecodable stored payload."""
    kind = ErrorKind.INTERNAL


_ERROR_CLASSES = {
    ErrorKind.DATABASE: DatabaseError,
    ErrorKind.NOT_EXIST: NotExistError,
    ErrorKind.INTERNAL: InternalError,
}


def wrap(op: str, err: WorkflowError) -> WorkflowError:
    """
    Re-wrap an error under a new operation name, preserving its kind.

    The original error is chained as __cause__ when the caller raises
    the result with `raise wrap(op, e) from e`.

    Args:
        op: Name of the operation surfacing the error
        err: Error raised by a lower layer

    Returns:
        New error of the same kind and code
    """
    cls = _ERROR_CLASSES[err.kind]
    return cls(op, str(err), code=err.code)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ErrorKind",
    "CODE_TRANSACTIONAL_QUEUE",
    "CODE_DECODING",
    "CODE_INVARIANT",
    "WorkflowError",
    "DatabaseError",
    "NotExistError",
    "InternalError",
    "wrap",
]
