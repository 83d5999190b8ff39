# ============================================================================
# WORKER MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Worker execution components
# PURPOSE: Job claiming, execution and retry bookkeeping
# CREATED: 19 OCT 2026
# ============================================================================
"""
Worker Module

Components of a worker process:
- contracts: Execution results and worker configuration
- executor: Runs one job with timeout, completion and backoff
- consumer: Per-queue polling loops and the rescuer
- main: Worker entry point (health server + consumer)
"""

from worker.contracts import (
    ExecutionResult,
    ExecutionStatus,
    WorkerConfig,
)
from worker.executor import (
    JobExecutor,
    retry_backoff,
)
from worker.consumer import (
    JobConsumer,
    QueueConsumer,
    install_signal_handlers,
)

__all__ = [
    # Contracts
    "ExecutionResult",
    "ExecutionStatus",
    "WorkerConfig",
    # Executor
    "JobExecutor",
    "retry_backoff",
    # Consumer
    "JobConsumer",
    "QueueConsumer",
    "install_signal_handlers",
]
