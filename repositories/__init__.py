# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Job store backends
# PURPOSE: Durable job storage for workflow steps
# CREATED: 19 OCT 2026
# ============================================================================
"""
Repositories Module

Provides the job store: an abstract contract plus a PostgreSQL backend
(psycopg3 async with connection pooling) and an in-memory backend.

Usage:
    from repositories import open_store

    store = await open_store("postgres")
    job = await store.get(job_id)
"""

import logging

from .database import PoolSettings, get_pool, init_pool, close_pool, SCHEMA, TABLE_JOBS
from .job_store import JobStore, Tx
from .memory_job_store import MemoryJobStore
from .pg_job_store import PgJobStore

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("postgres", "memory")


async def open_store(backend: str = "postgres") -> JobStore:
    """
    Create the job store for a process.

    Args:
        backend: "postgres" (global pool from env) or "memory"

    Raises:
        ValueError: unknown backend
    """
    if backend == "memory":
        logger.warning("Using in-memory job store; jobs are lost on restart")
        return MemoryJobStore()
    if backend == "postgres":
        return PgJobStore(await get_pool())
    raise ValueError(f"Unknown job store backend: {backend} (expected one of {STORE_BACKENDS})")


__all__ = [
    "PoolSettings",
    "get_pool",
    "init_pool",
    "close_pool",
    "open_store",
    "STORE_BACKENDS",
    "SCHEMA",
    "TABLE_JOBS",
    "JobStore",
    "Tx",
    "MemoryJobStore",
    "PgJobStore",
]
