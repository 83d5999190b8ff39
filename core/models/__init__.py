# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# CREATED: 19 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

Pydantic models for the workflow orchestration layer.
The Job model defines SQL metadata via __sql_* ClassVar attributes
for DDL generation.
"""

from core.models.args import (
    JobArgs,
    SequenceOpts,
    ARGS_BY_KIND,
    MetabasePreflightCheckJob,
    MetabaseCreatePermissionGroupJob,
    MetabaseCreateRestrictedCollectionJob,
    MetabaseEnsureServiceAccountJob,
    MetabaseCreateServiceAccountKeyJob,
    MetabaseAddProjectIAMPolicyBindingJob,
    MetabaseCreateBigqueryDatabaseJob,
    MetabaseVerifyBigqueryDatabaseJob,
    MetabaseFinalizeBigqueryDatabaseJob,
    MetabaseDeleteBigqueryDatabaseJob,
    MetabaseResyncAllUsersJob,
    WorkstationJob,
    WorkstationStartJob,
    WorkstationConnectJob,
    WorkstationDisconnectJob,
    WorkstationNotifyJob,
)
from core.models.job import Job, AttemptError
from core.models.queries import (
    UniqueOpts,
    InsertOpts,
    JobSpec,
    JobInsertResult,
    JobResult,
    JobListParams,
)
from core.models.status import (
    Diff,
    JobHeader,
    StepRecord,
    WorkstationJobRecord,
    WorkstationStartRecord,
    WorkflowHandle,
    WorkflowStatus,
    RestrictedMetabaseWorkflowStatus,
    OpenMetabaseWorkflowStatus,
    ConnectivityWorkflowStatus,
)

__all__ = [
    # Args
    "JobArgs",
    "SequenceOpts",
    "ARGS_BY_KIND",
    "MetabasePreflightCheckJob",
    "MetabaseCreatePermissionGroupJob",
    "MetabaseCreateRestrictedCollectionJob",
    "MetabaseEnsureServiceAccountJob",
    "MetabaseCreateServiceAccountKeyJob",
    "MetabaseAddProjectIAMPolicyBindingJob",
    "MetabaseCreateBigqueryDatabaseJob",
    "MetabaseVerifyBigqueryDatabaseJob",
    "MetabaseFinalizeBigqueryDatabaseJob",
    "MetabaseDeleteBigqueryDatabaseJob",
    "MetabaseResyncAllUsersJob",
    "WorkstationJob",
    "WorkstationStartJob",
    "WorkstationConnectJob",
    "WorkstationDisconnectJob",
    "WorkstationNotifyJob",
    # Job
    "Job",
    "AttemptError",
    # Store contracts
    "UniqueOpts",
    "InsertOpts",
    "JobSpec",
    "JobInsertResult",
    "JobResult",
    "JobListParams",
    # Status
    "Diff",
    "JobHeader",
    "StepRecord",
    "WorkstationJobRecord",
    "WorkstationStartRecord",
    "WorkflowHandle",
    "WorkflowStatus",
    "RestrictedMetabaseWorkflowStatus",
    "OpenMetabaseWorkflowStatus",
    "ConnectivityWorkflowStatus",
]
