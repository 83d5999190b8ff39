# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors, models, and schema utilities
# CREATED: 19 OCT 2026
# ============================================================================

from core.contracts import JobState, JobStatus, QueueName
from core.errors import (
    WorkflowError,
    DatabaseError,
    NotExistError,
    InternalError,
)
from core.models import (
    Job,
    JobArgs,
    JobSpec,
    InsertOpts,
    UniqueOpts,
    JobListParams,
    JobHeader,
    WorkflowHandle,
)
from core.schema import PydanticToSQL

__all__ = [
    # Enums
    "JobState",
    "JobStatus",
    "QueueName",
    # Errors
    "WorkflowError",
    "DatabaseError",
    "NotExistError",
    "InternalError",
    # Models
    "Job",
    "JobArgs",
    "JobSpec",
    "InsertOpts",
    "UniqueOpts",
    "JobListParams",
    "JobHeader",
    "WorkflowHandle",
    # Schema
    "PydanticToSQL",
]
