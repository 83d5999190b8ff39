# ============================================================================
# HANDLERS MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Step workers and their registry
# PURPOSE: Build the kind -> worker registry for a worker process
# CREATED: 19 OCT 2026
# ============================================================================
"""
Handlers Module

Usage:
    from handlers import build_registry

    registry = build_registry(store, metabase_cap, workstation_cap)
    worker = registry.get_or_raise(job.kind)
    await worker.work(job)
"""

from typing import Optional

from handlers.registry import (
    StepWorker,
    WorkerRegistry,
    WorkerError,
    WorkerNotFoundError,
    DuplicateWorkerError,
)
from handlers.metabase import METABASE_WORKERS
from handlers.workstations import (
    ConnectWorker,
    DisconnectWorker,
    NotifyWorker,
    WorkstationStartWorker,
    WorkstationWorker,
)
from repositories.job_store import JobStore
from services.capabilities import (
    ConnectivityCapability,
    LoggingMetabaseCapability,
    LoggingWorkstationCapability,
    MetabaseCapability,
    WorkstationCapability,
)


def build_registry(
    store: JobStore,
    metabase: Optional[MetabaseCapability] = None,
    workstation: Optional[WorkstationCapability] = None,
    connectivity: Optional[ConnectivityCapability] = None,
) -> WorkerRegistry:
    """
    Register a worker for every job kind.

    Capabilities default to the logging implementations.
    """
    metabase = metabase or LoggingMetabaseCapability()
    logging_workstation = LoggingWorkstationCapability()
    workstation = workstation or logging_workstation
    connectivity = connectivity or logging_workstation

    registry = WorkerRegistry()
    for worker_cls in METABASE_WORKERS:
        registry.register(worker_cls(store, metabase))

    registry.register(WorkstationWorker(store, workstation))
    registry.register(WorkstationStartWorker(store, workstation))

    registry.register(ConnectWorker(store, connectivity))
    registry.register(DisconnectWorker(store, connectivity))
    registry.register(NotifyWorker(store, connectivity))
    return registry


__all__ = [
    "build_registry",
    "StepWorker",
    "WorkerRegistry",
    "WorkerError",
    "WorkerNotFoundError",
    "DuplicateWorkerError",
]
