# ============================================================================
# WORKSTATION WORKFLOW SERVICE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Service - Workstation lifecycle and connectivity workflows
# PURPOSE: Submit and inspect workstation jobs keyed by ident
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workstation Workflow Service

Everything here is keyed by the workstation ident (metadata "ident"):

    Workstation job     single job on "workstation", unique for 20 min
    Start job           single job on "workstation", unique for 15 min
    Connectivity        on "workstation_connectivity", unique for 15 min:
                            connect(h1) .. connect(hN) -> disconnect -> notify

Connectivity steps share one sequence per ident. Connects for different
hosts may run side by side, the disconnect waits for all of them, and
the notify waits for the disconnect.

History readers return the newest runs first. Workstation job history
carries a diff of the audited fields against the previous run.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from core.config import Defaults, get_defaults
from core.contracts import METADATA_IDENT, QueueName
from core.errors import NotExistError, WorkflowError, wrap
from core.logging import get_logger
from core.models import (
    ConnectivityWorkflowStatus,
    InsertOpts,
    Job,
    JobListParams,
    JobSpec,
    StepRecord,
    UniqueOpts,
    WorkflowHandle,
    WorkstationConnectJob,
    WorkstationDisconnectJob,
    WorkstationJob,
    WorkstationJobRecord,
    WorkstationNotifyJob,
    WorkstationStartJob,
    WorkstationStartRecord,
)
from repositories.job_store import JobStore

from .job_diff import diff_history
from .workflows import (
    job_header,
    read_history,
    read_leading_job,
    step_record,
    submit_batch,
)

logger = get_logger(__name__)


class WorkstationJobOpts(BaseModel):
    """Desired configuration of a workstation."""
    ident: str = Field(..., min_length=1)
    name: str
    email: str
    machine_type: str
    container_image: str


def workstation_job_metadata(ident: str) -> dict:
    return {METADATA_IDENT: ident}


def workstation_job_record(job: Job) -> WorkstationJobRecord:
    """Raises InternalError when the payload does not decode."""
    args = job.decode_args(WorkstationJob)
    return WorkstationJobRecord(**job_header(job).model_dump(), **args.to_payload())


def workstation_start_record(job: Job) -> WorkstationStartRecord:
    args = job.decode_args(WorkstationStartJob)
    return WorkstationStartRecord(**job_header(job).model_dump(), ident=args.ident)


class WorkstationQueue:
    """Submits and inspects workstation workflows."""

    def __init__(self, store: JobStore, defaults: Optional[Defaults] = None):
        self.store = store
        self.defaults = defaults or get_defaults()

    def _insert_opts(self, ident: str, queue: str, window) -> InsertOpts:
        return InsertOpts(
            queue=queue,
            max_attempts=self.defaults.jobs.max_attempts,
            unique_opts=UniqueOpts(by_period=window),
            metadata=workstation_job_metadata(ident),
        )

    def _base_params(self, ident: str, queue: str) -> JobListParams:
        return JobListParams().queues(queue).metadata(workstation_job_metadata(ident))

    # =========================================================================
    # WORKSTATION JOBS
    # =========================================================================

    async def create_workstation_job(self, opts: WorkstationJobOpts) -> WorkflowHandle:
        """Queue a create/update of the workstation."""
        op = "workstation_queue.create_workstation_job"
        spec = JobSpec(
            args=WorkstationJob(**opts.model_dump()),
            opts=self._insert_opts(
                opts.ident,
                QueueName.WORKSTATION.value,
                self.defaults.unique.workstation_job,
            ),
        )
        return await submit_batch(self.store, [spec], op)

    async def get_workstation_job(self, ident: str) -> WorkstationJobRecord:
        """Latest workstation job. Raises NotExistError when there is none."""
        op = "workstation_queue.get_workstation_job"
        job = await read_leading_job(
            self.store,
            self._base_params(ident, QueueName.WORKSTATION.value),
            WorkstationJob,
            "workstation",
            op,
        )
        try:
            return workstation_job_record(job)
        except WorkflowError as e:
            raise wrap(op, e) from e

    async def get_workstation_jobs(self, ident: str, limit: Optional[int] = None) -> List[WorkstationJobRecord]:
        """
        Newest workstation jobs, each with its diff against the run before.

        Args:
            ident: Workstation ident
            limit: Max runs; defaults to the configured history size

        Returns:
            Records newest first; empty when the workstation has no jobs
        """
        op = "workstation_queue.get_workstation_jobs"
        limit = limit or self.defaults.history.workstation_jobs
        jobs = await read_history(
            self.store,
            self._base_params(ident, QueueName.WORKSTATION.value),
            WorkstationJob,
            limit,
            op,
        )
        try:
            records = [workstation_job_record(job) for job in jobs]
        except WorkflowError as e:
            raise wrap(op, e) from e
        return diff_history(records)

    # =========================================================================
    # START JOBS
    # =========================================================================

    async def create_workstation_start_job(self, ident: str) -> WorkflowHandle:
        op = "workstation_queue.create_workstation_start_job"
        spec = JobSpec(
            args=WorkstationStartJob(ident=ident),
            opts=self._insert_opts(
                ident,
                QueueName.WORKSTATION.value,
                self.defaults.unique.workstation_start,
            ),
        )
        return await submit_batch(self.store, [spec], op)

    async def get_workstation_start_job(self, ident: str) -> WorkstationStartRecord:
        op = "workstation_queue.get_workstation_start_job"
        job = await read_leading_job(
            self.store,
            self._base_params(ident, QueueName.WORKSTATION.value),
            WorkstationStartJob,
            "start",
            op,
        )
        try:
            return workstation_start_record(job)
        except WorkflowError as e:
            raise wrap(op, e) from e

    async def get_workstation_start_jobs(self, ident: str, limit: Optional[int] = None) -> List[WorkstationStartRecord]:
        op = "workstation_queue.get_workstation_start_jobs"
        limit = limit or self.defaults.history.workstation_start_jobs
        jobs = await read_history(
            self.store,
            self._base_params(ident, QueueName.WORKSTATION.value),
            WorkstationStartJob,
            limit,
            op,
        )
        try:
            return [workstation_start_record(job) for job in jobs]
        except WorkflowError as e:
            raise wrap(op, e) from e

    # =========================================================================
    # CONNECTIVITY
    # =========================================================================

    async def create_connectivity_workflow(
        self,
        ident: str,
        request_id: str,
        hosts: List[str],
    ) -> WorkflowHandle:
        """
        Queue connect per host, then disconnect of everything else, then notify.

        Args:
            ident: Workstation ident
            request_id: Caller's request, echoed in the notification
            hosts: Hosts the workstation should reach after the workflow

        Returns:
            Handle listing every step; a connect already in flight for a
            host is reused and flagged duplicate. duplicate=True on the
            handle only when the identical request is already in flight
        """
        op = "workstation_queue.create_connectivity_workflow"
        insert_opts = self._insert_opts(
            ident,
            QueueName.WORKSTATION_CONNECTIVITY.value,
            self.defaults.unique.connectivity,
        )
        hosts = list(dict.fromkeys(hosts))

        specs = [
            JobSpec(args=WorkstationConnectJob(ident=ident, host=host), opts=insert_opts)
            for host in hosts
        ]
        specs.append(JobSpec(args=WorkstationDisconnectJob(ident=ident, hosts=hosts), opts=insert_opts))
        specs.append(JobSpec(
            args=WorkstationNotifyJob(ident=ident, request_id=request_id, hosts=hosts),
            opts=insert_opts,
        ))
        return await submit_batch(self.store, specs, op, skip_duplicates=True)

    async def get_connectivity_workflow(self, ident: str) -> ConnectivityWorkflowStatus:
        """
        Status of the latest connectivity request for a workstation.

        The latest notify (or, before it exists, the latest disconnect)
        names the request's hosts; the newest connect job per such host
        is reported.

        Raises:
            NotExistError: no connectivity job exists for the workstation
            InternalError / DatabaseError: from any single step
        """
        op = "workstation_queue.get_connectivity_workflow"
        base = self._base_params(ident, QueueName.WORKSTATION_CONNECTIVITY.value)
        missing: List[str] = []

        notify = await self._optional_step(base, WorkstationNotifyJob, "notify", op)
        disconnect = await self._optional_step(base, WorkstationDisconnectJob, "disconnect", op)

        hosts: Optional[List[str]] = None
        request_id = None
        if notify is not None:
            hosts = notify.args["hosts"]
            request_id = notify.args["request_id"]
        elif disconnect is not None:
            hosts = disconnect.args["hosts"]

        connect = await self._connect_records(base, hosts, op)

        if not connect:
            missing.append("connect")
        if disconnect is None:
            missing.append("disconnect")
        if notify is None:
            missing.append("notify")
        if len(missing) == 3:
            raise NotExistError(op, f"no connectivity jobs found for {ident}")

        return ConnectivityWorkflowStatus(
            ident=ident,
            request_id=request_id,
            connect=connect,
            disconnect=disconnect,
            notify=notify,
            missing=missing,
        )

    async def _optional_step(self, base: JobListParams, args_cls, step: str, op: str) -> Optional[StepRecord]:
        try:
            job = await read_leading_job(self.store, base, args_cls, step, op)
        except NotExistError:
            return None
        try:
            return step_record(job, args_cls)
        except WorkflowError as e:
            raise wrap(op, e) from e

    async def _connect_records(
        self,
        base: JobListParams,
        hosts: Optional[List[str]],
        op: str,
    ) -> List[StepRecord]:
        """Newest connect per host, in request host order when hosts are known."""
        try:
            jobs = await self.store.list(base.kinds(WorkstationConnectJob.kind))
        except WorkflowError as e:
            raise wrap(op, e) from e

        newest: Dict[str, StepRecord] = {}
        try:
            for job in jobs:
                record = step_record(job, WorkstationConnectJob)
                newest.setdefault(record.args["host"], record)
        except WorkflowError as e:
            raise wrap(op, e) from e

        if hosts is None:
            return sorted(newest.values(), key=lambda record: record.id)
        return [newest[host] for host in hosts if host in newest]


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "WorkstationJobOpts",
    "workstation_job_metadata",
    "workstation_job_record",
    "workstation_start_record",
    "WorkstationQueue",
]
