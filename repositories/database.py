# ============================================================================
# JOB STORE DATABASE POOL
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Shared psycopg pool for the Postgres job store
# PURPOSE: Resolve connection settings and own the process-wide pool
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job store database pool.

The API process and the worker process each hold one AsyncConnectionPool.
The pool is opened lazily by ``open_store("postgres")`` and closed on
shutdown. Settings are resolved once per call from the environment:

    DATABASE_URL           full conninfo, wins over everything else
    POSTGRES_HOST/PORT/DB/USER/PASSWORD/SSLMODE
    DB_POOL_MIN_SIZE       default 2
    DB_POOL_MAX_SIZE       default 10
    DB_POOL_TIMEOUT        seconds to wait for a free connection, default 30
    DB_SCHEMA              schema holding the jobs table, default "workflows"
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from psycopg import sql as psycopg_sql
from psycopg.conninfo import conninfo_to_dict, make_conninfo
from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)

_pool: Optional[AsyncConnectionPool] = None

SCHEMA = os.environ.get("DB_SCHEMA", "workflows")
TABLE_JOBS = psycopg_sql.Identifier(SCHEMA, "jobs")


@dataclass(frozen=True)
class PoolSettings:
    conninfo: str
    min_size: int = 2
    max_size: int = 10
    timeout: float = 30.0

    @classmethod
    def from_env(cls, conninfo: Optional[str] = None) -> "PoolSettings":
        return cls(
            conninfo=conninfo or get_connection_string(),
            min_size=int(os.environ.get("DB_POOL_MIN_SIZE", "2")),
            max_size=int(os.environ.get("DB_POOL_MAX_SIZE", "10")),
            timeout=float(os.environ.get("DB_POOL_TIMEOUT", "30")),
        )

    def describe(self) -> str:
        """Host/port/dbname only, never the password."""
        params = conninfo_to_dict(self.conninfo)
        return "{}:{}/{}".format(
            params.get("host", "localhost"),
            params.get("port", "5432"),
            params.get("dbname", "?"),
        )


def get_connection_string() -> str:
    if url := os.environ.get("DATABASE_URL"):
        return url

    return make_conninfo(
        host=os.environ.get("POSTGRES_HOST", "localhost"),
        port=os.environ.get("POSTGRES_PORT", "5432"),
        dbname=os.environ.get("POSTGRES_DB", "postgres"),
        user=os.environ.get("POSTGRES_USER", "postgres"),
        password=os.environ.get("POSTGRES_PASSWORD", ""),
        sslmode=os.environ.get("POSTGRES_SSLMODE", "prefer"),
        application_name="workflow-orchestrator",
    )


async def init_pool(settings: Optional[PoolSettings] = None) -> AsyncConnectionPool:
    """
    Open the process-wide pool.

    Calling this twice returns the pool that is already open; settings
    passed on the second call are ignored.
    """
    global _pool

    if _pool is not None:
        logger.warning("Job store pool already open, ignoring new settings")
        return _pool

    settings = settings or PoolSettings.from_env()
    logger.info(
        f"Opening job store pool on {settings.describe()} "
        f"(min={settings.min_size}, max={settings.max_size}, schema={SCHEMA})"
    )

    pool = AsyncConnectionPool(
        conninfo=settings.conninfo,
        min_size=settings.min_size,
        max_size=settings.max_size,
        timeout=settings.timeout,
        name="job-store",
        open=False,
    )
    await pool.open(wait=True, timeout=settings.timeout)
    _pool = pool
    return _pool


async def get_pool() -> AsyncConnectionPool:
    if _pool is None:
        return await init_pool()
    return _pool


async def close_pool() -> None:
    global _pool

    if _pool is None:
        return
    pool, _pool = _pool, None
    await pool.close()
    logger.info("Job store pool closed")


__all__ = [
    "PoolSettings",
    "get_connection_string",
    "init_pool",
    "get_pool",
    "close_pool",
    "SCHEMA",
    "TABLE_JOBS",
]
