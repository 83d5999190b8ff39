# ============================================================================
# METABASE STEP WORKERS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Handlers - Analytics database provisioning steps
# PURPOSE: One worker per metabase job kind, delegating to MetabaseCapability
# CREATED: 19 OCT 2026
# ============================================================================
"""
Metabase Step Workers

Provisioning steps, delete and resync. Each worker decodes its args,
calls one MetabaseCapability operation and completes the job.
"""

from typing import ClassVar, List, Type

from core.contracts import QueueName
from core.models import (
    JobArgs,
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
)
from repositories.job_store import JobStore
from services.capabilities import MetabaseCapability

from .registry import StepWorker


class MetabaseStepWorker(StepWorker):
    queue: ClassVar[str] = QueueName.METABASE.value

    def __init__(self, store: JobStore, capability: MetabaseCapability):
        super().__init__(store)
        self.capability = capability


class PreflightCheckWorker(MetabaseStepWorker):
    args_cls = MetabasePreflightCheckJob
    description = "Check the dataset can be provisioned"

    async def run(self, args: MetabasePreflightCheckJob) -> None:
        await self.capability.preflight_check(args.dataset_id)


class CreatePermissionGroupWorker(MetabaseStepWorker):
    args_cls = MetabaseCreatePermissionGroupJob

    async def run(self, args: MetabaseCreatePermissionGroupJob) -> None:
        await self.capability.ensure_permission_group(args.dataset_id, args.permission_group_name)


class CreateRestrictedCollectionWorker(MetabaseStepWorker):
    args_cls = MetabaseCreateRestrictedCollectionJob

    async def run(self, args: MetabaseCreateRestrictedCollectionJob) -> None:
        await self.capability.ensure_collection(args.dataset_id, args.collection_name)


class EnsureServiceAccountWorker(MetabaseStepWorker):
    args_cls = MetabaseEnsureServiceAccountJob

    async def run(self, args: MetabaseEnsureServiceAccountJob) -> None:
        await self.capability.ensure_service_account(
            args.dataset_id,
            args.account_id,
            args.project_id,
            args.display_name,
            args.description,
        )


class CreateServiceAccountKeyWorker(MetabaseStepWorker):
    args_cls = MetabaseCreateServiceAccountKeyJob

    async def run(self, args: MetabaseCreateServiceAccountKeyJob) -> None:
        await self.capability.ensure_service_account_key(args.dataset_id)


class AddProjectIAMPolicyBindingWorker(MetabaseStepWorker):
    args_cls = MetabaseAddProjectIAMPolicyBindingJob

    async def run(self, args: MetabaseAddProjectIAMPolicyBindingJob) -> None:
        await self.capability.ensure_project_iam_binding(
            args.dataset_id, args.project_id, args.role, args.member
        )


class CreateBigqueryDatabaseWorker(MetabaseStepWorker):
    args_cls = MetabaseCreateBigqueryDatabaseJob

    async def run(self, args: MetabaseCreateBigqueryDatabaseJob) -> None:
        await self.capability.ensure_database(args.dataset_id)


class VerifyBigqueryDatabaseWorker(MetabaseStepWorker):
    args_cls = MetabaseVerifyBigqueryDatabaseJob
    description = "Fails until the database answers queries"

    async def run(self, args: MetabaseVerifyBigqueryDatabaseJob) -> None:
        await self.capability.verify_database(args.dataset_id)


class FinalizeBigqueryDatabaseWorker(MetabaseStepWorker):
    args_cls = MetabaseFinalizeBigqueryDatabaseJob

    async def run(self, args: MetabaseFinalizeBigqueryDatabaseJob) -> None:
        await self.capability.finalize_database(args.dataset_id)


class DeleteBigqueryDatabaseWorker(MetabaseStepWorker):
    args_cls = MetabaseDeleteBigqueryDatabaseJob
    description = "Tear down the database of a dataset"

    async def run(self, args: MetabaseDeleteBigqueryDatabaseJob) -> None:
        await self.capability.delete_database(args.dataset_id)


class ResyncAllUsersWorker(MetabaseStepWorker):
    args_cls = MetabaseResyncAllUsersJob
    queue = QueueName.METABASE_RESYNC.value
    description = "Reconcile permission group membership"

    async def run(self, args: JobArgs) -> None:
        await self.capability.resync_all_users()


METABASE_WORKERS: List[Type[MetabaseStepWorker]] = [
    PreflightCheckWorker,
    CreatePermissionGroupWorker,
    CreateRestrictedCollectionWorker,
    EnsureServiceAccountWorker,
    CreateServiceAccountKeyWorker,
    AddProjectIAMPolicyBindingWorker,
    CreateBigqueryDatabaseWorker,
    VerifyBigqueryDatabaseWorker,
    FinalizeBigqueryDatabaseWorker,
    DeleteBigqueryDatabaseWorker,
    ResyncAllUsersWorker,
]


__all__ = [
    "MetabaseStepWorker",
    "METABASE_WORKERS",
] + [cls.__name__ for cls in METABASE_WORKERS]
