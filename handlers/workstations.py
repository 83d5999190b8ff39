# ============================================================================
# WORKSTATION STEP WORKERS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Handlers - Workstation lifecycle and connectivity steps
# PURPOSE: Workers for the workstation and workstation_connectivity queues
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workstation Step Workers

Lifecycle (queue "workstation"):
    WorkstationWorker       ensure the workstation matches its configuration
    WorkstationStartWorker  start it

Connectivity (queue "workstation_connectivity"), ordered per ident by
the job sequence:
    ConnectWorker           allow one host
    DisconnectWorker        drop every host not in the request
    NotifyWorker            tell the requester the change is applied
"""

from typing import ClassVar

from core.contracts import QueueName
from core.models import (
    WorkstationConnectJob,
    WorkstationDisconnectJob,
    WorkstationJob,
    WorkstationNotifyJob,
    WorkstationStartJob,
)
from repositories.job_store import JobStore
from services.capabilities import ConnectivityCapability, WorkstationCapability

from .registry import StepWorker


# ============================================================================
# LIFECYCLE
# ============================================================================

class WorkstationWorker(StepWorker):
    args_cls = WorkstationJob
    queue: ClassVar[str] = QueueName.WORKSTATION.value
    description = "Create or update a workstation"

    def __init__(self, store: JobStore, capability: WorkstationCapability):
        super().__init__(store)
        self.capability = capability

    async def run(self, args: WorkstationJob) -> None:
        await self.capability.ensure_workstation(
            args.ident,
            args.name,
            args.email,
            args.machine_type,
            args.container_image,
        )


class WorkstationStartWorker(StepWorker):
    args_cls = WorkstationStartJob
    queue: ClassVar[str] = QueueName.WORKSTATION.value

    def __init__(self, store: JobStore, capability: WorkstationCapability):
        super().__init__(store)
        self.capability = capability

    async def run(self, args: WorkstationStartJob) -> None:
        await self.capability.start_workstation(args.ident)


# ============================================================================
# CONNECTIVITY
# ============================================================================

class ConnectivityStepWorker(StepWorker):
    queue: ClassVar[str] = QueueName.WORKSTATION_CONNECTIVITY.value

    def __init__(self, store: JobStore, capability: ConnectivityCapability):
        super().__init__(store)
        self.capability = capability


class ConnectWorker(ConnectivityStepWorker):
    args_cls = WorkstationConnectJob

    async def run(self, args: WorkstationConnectJob) -> None:
        await self.capability.connect_host(args.ident, args.host)


class DisconnectWorker(ConnectivityStepWorker):
    args_cls = WorkstationDisconnectJob
    description = "Drop hosts not in the latest request"

    async def run(self, args: WorkstationDisconnectJob) -> None:
        await self.capability.disconnect_hosts(args.ident, keep=args.hosts)


class NotifyWorker(ConnectivityStepWorker):
    args_cls = WorkstationNotifyJob

    async def run(self, args: WorkstationNotifyJob) -> None:
        await self.capability.notify(args.ident, args.request_id, args.hosts)


__all__ = [
    "WorkstationWorker",
    "WorkstationStartWorker",
    "ConnectivityStepWorker",
    "ConnectWorker",
    "DisconnectWorker",
    "NotifyWorker",
]
