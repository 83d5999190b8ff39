# ============================================================================
# WORKER CONTRACTS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Worker execution results and configuration
# PURPOSE: Define what one job execution reports and how a worker is configured
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Contracts

Execution Result Format:
{
    "job_id": 42,
    "kind": "workstation_connect",
    "queue": "workstation_connectivity",
    "status": "retrying",
    "attempt": 2,
    "error_message": "TimeoutError: job timed out after 300s",
    "retry_at": "2026-10-19T12:00:16Z",
    "duration_ms": 300012
}

Status:
- completed: worker succeeded and the job is finalized
- retrying:  failure recorded, job rescheduled with backoff
- discarded: failure recorded on the last attempt
"""

import os
import socket
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from core.contracts import QueueName


# ============================================================================
# EXECUTION RESULT
# ============================================================================

class ExecutionStatus(str, Enum):
    """Outcome of one job execution."""
    COMPLETED = "completed"
    RETRYING = "retrying"
    DISCARDED = "discarded"


class ExecutionResult(BaseModel):
    """Result of executing one claimed job."""

    job_id: int
    kind: str
    queue: str
    status: ExecutionStatus
    attempt: int
    error_message: Optional[str] = None
    retry_at: Optional[datetime] = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ============================================================================
# WORKER CONFIGURATION
# ============================================================================

def _default_queues() -> List[str]:
    return [queue.value for queue in QueueName]


@dataclass
class WorkerConfig:
    """Configuration for a job worker process."""

    # Identity
    worker_id: str

    # Queues this process consumes
    queues: List[str] = field(default_factory=_default_queues)

    # Store backend: "postgres" or "memory"
    store_backend: str = "postgres"

    # Health endpoint
    health_port: int = 8080

    # Shutdown
    shutdown_timeout_seconds: int = 30

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        """Create config from environment variables."""
        queues = os.getenv("WORKER_QUEUES", "")
        return cls(
            worker_id=os.getenv("WORKER_ID", f"worker-{socket.gethostname()}"),
            queues=[q.strip() for q in queues.split(",") if q.strip()] or _default_queues(),
            store_backend=os.getenv("JOB_STORE", "postgres").lower(),
            health_port=int(os.getenv("HEALTH_PORT", "8080")),
            shutdown_timeout_seconds=int(os.getenv("SHUTDOWN_TIMEOUT", "30")),
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ExecutionStatus",
    "ExecutionResult",
    "WorkerConfig",
]
