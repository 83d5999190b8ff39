# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for queues, retries, timeouts, uniqueness
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides defaults for queue concurrency, job execution and uniqueness
windows. These can be overridden via environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional

from core.contracts import QueueName


def _queue_env_key(queue: str) -> str:
    return f"QUEUE_{queue.upper()}_MAX_WORKERS"


@dataclass(frozen=True)
class QueueDefaults:
    """
    Per-queue concurrency limits.

    The resync queue is capped at one worker so that concurrent calls
    never hit the external API at the same time.
    """
    default_max_workers: int = 10
    max_workers: Dict[str, int] = field(default_factory=lambda: {
        QueueName.METABASE.value: 10,
        QueueName.METABASE_RESYNC.value: 1,
        QueueName.WORKSTATION.value: 10,
        QueueName.WORKSTATION_CONNECTIVITY.value: 10,
    })

    def get_max_workers(self, queue: str) -> int:
        """Max concurrent workers for a queue."""
        return self.max_workers.get(queue, self.default_max_workers)

    @classmethod
    def from_env(cls) -> "QueueDefaults":
        """Create from environment variables."""
        base = cls()
        default_max = int(os.getenv("QUEUE_DEFAULT_MAX_WORKERS", base.default_max_workers))
        max_workers = {
            queue: int(os.getenv(_queue_env_key(queue), limit))
            for queue, limit in base.max_workers.items()
        }
        return cls(default_max_workers=default_max, max_workers=max_workers)


@dataclass(frozen=True)
class JobDefaults:
    """
    Defaults for job insertion and execution.

    Controls retries, the execution timeout and executor polling.
    """
    max_attempts: int = 5
    job_timeout_seconds: int = 300  # 5 min
    poll_interval_seconds: float = 1.0
    rescue_interval_seconds: int = 60
    max_backoff_seconds: int = 24 * 60 * 60

    @property
    def rescue_after_seconds(self) -> int:
        """Running jobs older than this are considered stuck."""
        return self.job_timeout_seconds * 2

    @classmethod
    def from_env(cls) -> "JobDefaults":
        """Create from environment variables."""
        return cls(
            max_attempts=int(os.getenv("JOB_MAX_ATTEMPTS", 5)),
            job_timeout_seconds=int(os.getenv("JOB_TIMEOUT_SECONDS", 300)),
            poll_interval_seconds=float(os.getenv("JOB_POLL_INTERVAL", 1.0)),
            rescue_interval_seconds=int(os.getenv("JOB_RESCUE_INTERVAL", 60)),
            max_backoff_seconds=int(os.getenv("JOB_MAX_BACKOFF_SECONDS", 24 * 60 * 60)),
        )


@dataclass(frozen=True)
class UniqueWindows:
    """
    Deduplication windows per workflow family.

    A resubmission inside the window is reported as a duplicate while
    the earlier job is still in flight.
    """
    metabase: timedelta = timedelta(minutes=10)
    connectivity: timedelta = timedelta(minutes=15)
    workstation_start: timedelta = timedelta(minutes=15)
    workstation_job: timedelta = timedelta(minutes=20)

    @classmethod
    def from_env(cls) -> "UniqueWindows":
        """Create from environment variables (minutes)."""
        return cls(
            metabase=timedelta(minutes=int(os.getenv("UNIQUE_WINDOW_METABASE_MINUTES", 10))),
            connectivity=timedelta(minutes=int(os.getenv("UNIQUE_WINDOW_CONNECTIVITY_MINUTES", 15))),
            workstation_start=timedelta(minutes=int(os.getenv("UNIQUE_WINDOW_WORKSTATION_START_MINUTES", 15))),
            workstation_job=timedelta(minutes=int(os.getenv("UNIQUE_WINDOW_WORKSTATION_JOB_MINUTES", 20))),
        )


@dataclass(frozen=True)
class HistoryDefaults:
    """How many past jobs history endpoints return."""
    workstation_jobs: int = 10
    workstation_start_jobs: int = 5

    @classmethod
    def from_env(cls) -> "HistoryDefaults":
        """Create from environment variables."""
        return cls(
            workstation_jobs=int(os.getenv("HISTORY_WORKSTATION_JOBS", 10)),
            workstation_start_jobs=int(os.getenv("HISTORY_WORKSTATION_START_JOBS", 5)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    queues: QueueDefaults = field(default_factory=QueueDefaults)
    jobs: JobDefaults = field(default_factory=JobDefaults)
    unique: UniqueWindows = field(default_factory=UniqueWindows)
    history: HistoryDefaults = field(default_factory=HistoryDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            queues=QueueDefaults.from_env(),
            jobs=JobDefaults.from_env(),
            unique=UniqueWindows.from_env(),
            history=HistoryDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "QueueDefaults",
    "JobDefaults",
    "UniqueWindows",
    "HistoryDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
