# ============================================================================
# WORKER REGISTRY
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Step worker registration and lookup
# PURPOSE: Map job kinds to the step workers that execute them
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Registry

Every job kind is executed by exactly one StepWorker. The registry is an
explicit object built at startup (see build_registry) and handed to the
executor, so tests and processes can hold independent registries.

Design:
- Registry is a dict (kind -> worker) plus per-kind metadata
- Fail-fast on duplicate registration
- Workers are async; there is no sync handler path

Step worker contract:
    1. decode the job args (InternalError on a bad payload)
    2. call the capability (ensure-style, safe to repeat)
    3. mark the job complete inside a store transaction
    Any exception is left to the executor, which owns retry and discard.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional, Type

from core.models import Job, JobArgs, JobResult
from repositories.job_store import JobStore

logger = logging.getLogger(__name__)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class WorkerError(Exception):
    """Base exception for worker registry errors."""
    pass


class WorkerNotFoundError(WorkerError):
    """Raised when no worker is registered for a job kind."""
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No worker registered for kind: {kind}")


class DuplicateWorkerError(WorkerError):
    """Raised when a job kind is registered twice."""
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Worker already registered for kind: {kind}")


# ============================================================================
# STEP WORKER
# ============================================================================

class StepWorker(ABC):
    """
    Executes one job kind.

    Subclasses set `args_cls` and `queue` and implement `run(args)`.
    """
    args_cls: ClassVar[Type[JobArgs]]
    queue: ClassVar[str]
    description: ClassVar[str] = ""

    def __init__(self, store: JobStore):
        self.store = store

    @property
    def kind(self) -> str:
        return self.args_cls.kind

    @abstractmethod
    async def run(self, args: JobArgs) -> None:
        """Perform the step. Must be safe to call again after a partial run."""

    async def work(self, job: Job) -> None:
        args = job.decode_args(self.args_cls)
        await self.run(args)
        await self.complete(job)

    async def complete(self, job: Job) -> JobResult:
        async with self.store.transaction() as tx:
            result = await self.store.complete_tx(tx, job.id)
        logger.debug(f"Job {job.id} ({job.kind}) completed (changed={result.changed})")
        return result


# ============================================================================
# REGISTRY
# ============================================================================

class WorkerRegistry:
    """Job kind -> StepWorker."""

    def __init__(self):
        self._workers: Dict[str, StepWorker] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}

    def register(self, worker: StepWorker) -> StepWorker:
        """
        Register a worker under its args kind.

        Raises:
            DuplicateWorkerError: the kind already has a worker
        """
        kind = worker.kind
        if kind in self._workers:
            raise DuplicateWorkerError(kind)

        self._workers[kind] = worker
        self._metadata[kind] = {
            "kind": kind,
            "queue": worker.queue,
            "description": worker.description,
            "worker": type(worker).__name__,
            "module": type(worker).__module__,
            "registered_at": datetime.now(timezone.utc).isoformat(),
        }

        logger.debug(f"Registered worker: {kind} ({type(worker).__name__}) on {worker.queue}")
        return worker

    def get(self, kind: str) -> Optional[StepWorker]:
        return self._workers.get(kind)

    def get_or_raise(self, kind: str) -> StepWorker:
        """
        Raises:
            WorkerNotFoundError if no worker handles the kind
        """
        worker = self._workers.get(kind)
        if worker is None:
            raise WorkerNotFoundError(kind)
        return worker

    def kinds(self, queue: Optional[str] = None) -> List[str]:
        """Registered kinds, optionally only those of one queue."""
        return [
            kind for kind, worker in self._workers.items()
            if queue is None or worker.queue == queue
        ]

    def queues(self) -> List[str]:
        """Queues that have at least one worker, in registration order."""
        return list(dict.fromkeys(worker.queue for worker in self._workers.values()))

    def list_workers(self) -> List[Dict[str, Any]]:
        return list(self._metadata.values())

    def missing(self, kinds: List[str]) -> List[str]:
        """Kinds from the list that have no worker."""
        return [kind for kind in kinds if kind not in self._workers]

    def __contains__(self, kind: str) -> bool:
        return kind in self._workers

    def __len__(self) -> int:
        return len(self._workers)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "StepWorker",
    "WorkerRegistry",
    "WorkerError",
    "WorkerNotFoundError",
    "DuplicateWorkerError",
]
