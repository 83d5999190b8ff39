# ============================================================================
# METABASE WORKFLOW SERVICE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Service - Analytics database provisioning workflows
# PURPOSE: Submit and inspect restricted/open database pipelines per dataset
# CREATED: 19 OCT 2026
# ============================================================================
"""
Metabase Workflow Service

Workflows keyed by dataset id (metadata "datasetID"), all on the
"metabase" queue. Pipeline steps also carry metadata "workflow" so the
restricted and open readers never report each other's jobs:

    Restricted database (9 steps, in order):
        preflight -> permission_group -> collection -> service_account
        -> service_account_key -> project_iam -> database -> verify -> finalize

    Open database (4 steps):
        preflight -> database -> verify -> finalize

    Delete: a single teardown job, not sequenced.

Every provisioning step is unique on dataset_id within the metabase
window and sequenced on dataset_id across kinds, so steps of one
dataset run strictly in pipeline order.

Usage:
    queue = MetabaseQueue(store)
    handle = await queue.create_restricted_metabase_workflow(opts)
    status = await queue.get_restricted_metabase_workflow(opts.dataset_id)
"""

from typing import List, Optional, Sequence, Type

from pydantic import BaseModel, Field

from core.config import Defaults, get_defaults
from core.contracts import METADATA_DATASET_ID, METADATA_WORKFLOW, QueueName
from core.errors import WorkflowError, wrap
from core.logging import get_logger
from core.models import (
    InsertOpts,
    JobArgs,
    JobListParams,
    JobSpec,
    MetabaseAddProjectIAMPolicyBindingJob,
    MetabaseCreateBigqueryDatabaseJob,
    MetabaseCreatePermissionGroupJob,
    MetabaseCreateRestrictedCollectionJob,
    MetabaseCreateServiceAccountKeyJob,
    MetabaseDeleteBigqueryDatabaseJob,
    MetabaseEnsureServiceAccountJob,
    MetabaseFinalizeBigqueryDatabaseJob,
    MetabasePreflightCheckJob,
    MetabaseResyncAllUsersJob,
    MetabaseVerifyBigqueryDatabaseJob,
    OpenMetabaseWorkflowStatus,
    RestrictedMetabaseWorkflowStatus,
    StepRecord,
    UniqueOpts,
    WorkflowHandle,
)
from repositories.job_store import JobStore

from .workflows import (
    StepDef,
    read_history,
    read_leading_job,
    read_steps,
    step_record,
    submit_batch,
)

logger = get_logger(__name__)


class RestrictedMetabaseWorkflowOpts(BaseModel):
    """Parameters of the restricted database pipeline."""
    dataset_id: str = Field(..., min_length=1)
    permission_group_name: str
    collection_name: str
    account_id: str
    project_id: str
    display_name: str
    description: str = ""
    role: str
    member: str


RESTRICTED_STEPS: Sequence[StepDef] = (
    ("preflight", MetabasePreflightCheckJob),
    ("permission_group", MetabaseCreatePermissionGroupJob),
    ("collection", MetabaseCreateRestrictedCollectionJob),
    ("service_account", MetabaseEnsureServiceAccountJob),
    ("service_account_key", MetabaseCreateServiceAccountKeyJob),
    ("project_iam", MetabaseAddProjectIAMPolicyBindingJob),
    ("database", MetabaseCreateBigqueryDatabaseJob),
    ("verify", MetabaseVerifyBigqueryDatabaseJob),
    ("finalize", MetabaseFinalizeBigqueryDatabaseJob),
)

OPEN_STEPS: Sequence[StepDef] = (
    ("preflight", MetabasePreflightCheckJob),
    ("database", MetabaseCreateBigqueryDatabaseJob),
    ("verify", MetabaseVerifyBigqueryDatabaseJob),
    ("finalize", MetabaseFinalizeBigqueryDatabaseJob),
)


WORKFLOW_RESTRICTED = "restricted"
WORKFLOW_OPEN = "open"


def metabase_job_metadata(dataset_id: str, workflow: Optional[str] = None) -> dict:
    metadata = {METADATA_DATASET_ID: dataset_id}
    if workflow is not None:
        metadata[METADATA_WORKFLOW] = workflow
    return metadata


class MetabaseQueue:
    """Submits and inspects metabase workflows."""

    def __init__(self, store: JobStore, defaults: Optional[Defaults] = None):
        self.store = store
        self.defaults = defaults or get_defaults()

    def _insert_opts(self, dataset_id: str, workflow: Optional[str] = None) -> InsertOpts:
        return InsertOpts(
            queue=QueueName.METABASE.value,
            max_attempts=self.defaults.jobs.max_attempts,
            unique_opts=UniqueOpts(by_period=self.defaults.unique.metabase),
            metadata=metabase_job_metadata(dataset_id, workflow),
        )

    def _base_params(self, dataset_id: str, workflow: Optional[str] = None) -> JobListParams:
        return JobListParams().queues(QueueName.METABASE.value).metadata(
            metabase_job_metadata(dataset_id, workflow)
        )

    # =========================================================================
    # RESTRICTED DATABASE
    # =========================================================================

    async def create_restricted_metabase_workflow(
        self,
        opts: RestrictedMetabaseWorkflowOpts,
    ) -> WorkflowHandle:
        """
        Queue the 9-step restricted database pipeline.

        Returns:
            Handle; duplicate=True when a pipeline for the dataset is in flight

        Raises:
            DatabaseError: nothing was queued
        """
        op = "metabase_queue.create_restricted_metabase_workflow"
        ds = opts.dataset_id
        insert_opts = self._insert_opts(ds, WORKFLOW_RESTRICTED)

        steps: List[JobArgs] = [
            MetabasePreflightCheckJob(dataset_id=ds),
            MetabaseCreatePermissionGroupJob(
                dataset_id=ds,
                permission_group_name=opts.permission_group_name,
            ),
            MetabaseCreateRestrictedCollectionJob(
                dataset_id=ds,
                collection_name=opts.collection_name,
            ),
            MetabaseEnsureServiceAccountJob(
                dataset_id=ds,
                account_id=opts.account_id,
                project_id=opts.project_id,
                display_name=opts.display_name,
                description=opts.description,
            ),
            MetabaseCreateServiceAccountKeyJob(dataset_id=ds),
            MetabaseAddProjectIAMPolicyBindingJob(
                dataset_id=ds,
                project_id=opts.project_id,
                role=opts.role,
                member=opts.member,
            ),
            MetabaseCreateBigqueryDatabaseJob(dataset_id=ds),
            MetabaseVerifyBigqueryDatabaseJob(dataset_id=ds),
            MetabaseFinalizeBigqueryDatabaseJob(dataset_id=ds),
        ]

        return await submit_batch(
            self.store,
            [JobSpec(args=args, opts=insert_opts) for args in steps],
            op,
        )

    async def get_restricted_metabase_workflow(self, dataset_id: str) -> RestrictedMetabaseWorkflowStatus:
        """
        Current status of the restricted pipeline for a dataset.

        Raises:
            NotExistError: no step has been queued for the dataset
            InternalError: a step has more than one leading job or bad payload
            DatabaseError: store failure
        """
        op = "metabase_queue.get_restricted_metabase_workflow"
        records, missing = await read_steps(
            self.store, self._base_params(dataset_id, WORKFLOW_RESTRICTED), RESTRICTED_STEPS, op
        )
        return RestrictedMetabaseWorkflowStatus(dataset_id=dataset_id, missing=missing, **records)

    # =========================================================================
    # OPEN DATABASE
    # =========================================================================

    async def create_open_metabase_workflow(self, dataset_id: str) -> WorkflowHandle:
        """Queue the 4-step open database pipeline."""
        op = "metabase_queue.create_open_metabase_workflow"
        insert_opts = self._insert_opts(dataset_id, WORKFLOW_OPEN)
        steps = [args_cls(dataset_id=dataset_id) for _, args_cls in OPEN_STEPS]
        return await submit_batch(
            self.store,
            [JobSpec(args=args, opts=insert_opts) for args in steps],
            op,
        )

    async def get_open_metabase_workflow(self, dataset_id: str) -> OpenMetabaseWorkflowStatus:
        op = "metabase_queue.get_open_metabase_workflow"
        records, missing = await read_steps(
            self.store, self._base_params(dataset_id, WORKFLOW_OPEN), OPEN_STEPS, op
        )
        return OpenMetabaseWorkflowStatus(dataset_id=dataset_id, missing=missing, **records)

    # =========================================================================
    # DELETE
    # =========================================================================

    async def create_metabase_delete_job(self, dataset_id: str) -> WorkflowHandle:
        op = "metabase_queue.create_metabase_delete_job"
        spec = JobSpec(
            args=MetabaseDeleteBigqueryDatabaseJob(dataset_id=dataset_id),
            opts=self._insert_opts(dataset_id),
        )
        return await submit_batch(self.store, [spec], op)

    async def get_metabase_delete_job(self, dataset_id: str) -> StepRecord:
        """
        Latest delete job for a dataset.

        Raises:
            NotExistError: no delete job was ever queued
        """
        op = "metabase_queue.get_metabase_delete_job"
        job = await read_leading_job(
            self.store,
            self._base_params(dataset_id),
            MetabaseDeleteBigqueryDatabaseJob,
            "delete",
            op,
        )
        try:
            return step_record(job, MetabaseDeleteBigqueryDatabaseJob)
        except WorkflowError as e:
            raise wrap(op, e) from e

    # =========================================================================
    # RESYNC
    # =========================================================================

    async def create_resync_all_users_job(self) -> WorkflowHandle:
        """Queue a membership resync on the single-worker resync queue."""
        op = "metabase_queue.create_resync_all_users_job"
        spec = JobSpec(
            args=MetabaseResyncAllUsersJob(),
            opts=InsertOpts(
                queue=QueueName.METABASE_RESYNC.value,
                max_attempts=self.defaults.jobs.max_attempts,
                unique_opts=UniqueOpts(by_period=self.defaults.unique.metabase),
            ),
        )
        return await submit_batch(self.store, [spec], op)

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def get_step_history(
        self,
        dataset_id: str,
        args_cls: Type[JobArgs],
        limit: int = 10,
    ) -> List[StepRecord]:
        """Newest runs of one step kind for a dataset."""
        op = "metabase_queue.get_step_history"
        jobs = await read_history(self.store, self._base_params(dataset_id), args_cls, limit, op)
        try:
            return [step_record(job, args_cls) for job in jobs]
        except WorkflowError as e:
            raise wrap(op, e) from e


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "RestrictedMetabaseWorkflowOpts",
    "RESTRICTED_STEPS",
    "OPEN_STEPS",
    "WORKFLOW_RESTRICTED",
    "WORKFLOW_OPEN",
    "metabase_job_metadata",
    "MetabaseQueue",
]
