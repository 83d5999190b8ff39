# ============================================================================
# POSTGRES JOB STORE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Durable job store on PostgreSQL
# PURPOSE: JobStore backed by the jobs table via psycopg3 async
# CREATED: 19 OCT 2026
# ============================================================================
"""
Postgres Job Store

Persists jobs in <schema>.jobs.

Key mechanics:
- Uniqueness: partial unique index on unique_key over in-flight states;
  inserts use ON CONFLICT DO NOTHING and fall back to reading the
  colliding job.
- Listing: metadata filtering uses JSONB containment (metadata @> ...)
  backed by a GIN index.
- Claiming: CTE with FOR UPDATE SKIP LOCKED; a job is skipped while an
  earlier job of another kind in its sequence has not completed, so a
  discarded or cancelled step halts the sequence.
- Transitions (complete/fail/cancel/rescue) lock the row, apply the
  shared transition rules, and write the row back.

Every psycopg error surfaces as a DatabaseError tagged with the failing
operation.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Sequence

import psycopg
from psycopg import AsyncConnection, sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.contracts import IN_FLIGHT_STATES, JobState
from core.errors import CODE_TRANSACTIONAL_QUEUE, DatabaseError
from core.models import Job, JobInsertResult, JobListParams, JobResult, JobSpec
from core.models.job import utcnow

from .database import TABLE_JOBS
from .job_store import (
    CLAIMABLE_STATES,
    JobStore,
    cancel_job,
    complete_job,
    fail_job,
    not_found,
    rescue_job,
)

logger = logging.getLogger(__name__)

# Must match the predicate of the uq_jobs_unique_key index
_UNIQUE_PREDICATE = sql.SQL(
    "unique_key IS NOT NULL AND state IN "
    "('available', 'pending', 'running', 'retryable', 'scheduled')"
)


def _db_error(op: str, err: Exception) -> DatabaseError:
    return DatabaseError(op, str(err), code=CODE_TRANSACTIONAL_QUEUE)


def _state_values(states) -> List[str]:
    return sorted(state.value for state in states)


class PgJobStore(JobStore):
    """JobStore on PostgreSQL."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @asynccontextmanager
    async def transaction(self):
        """Yield a connection inside BEGIN ... COMMIT."""
        try:
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                async with conn.transaction():
                    yield conn
        except psycopg.Error as e:
            raise _db_error("pg_job_store.transaction", e) from e

    # =========================================================================
    # SUBMISSION SIDE
    # =========================================================================

    async def insert_many_tx(self, tx: AsyncConnection, specs: Sequence[JobSpec]) -> List[JobInsertResult]:
        now = utcnow()
        results = []
        try:
            for spec in specs:
                results.append(await self._insert_one(tx, spec, now))
        except psycopg.Error as e:
            raise _db_error("pg_job_store.insert_many_tx", e) from e
        return results

    async def _insert_one(self, conn: AsyncConnection, spec: JobSpec, now: datetime) -> JobInsertResult:
        job = spec.to_job(now)

        result = await conn.execute(
            sql.SQL("""
            INSERT INTO {} (
                kind, queue, args, metadata, state, attempt, max_attempts,
                errors, unique_key, sequence_key, created_at, scheduled_at
            ) VALUES (
                %(kind)s, %(queue)s, %(args)s, %(metadata)s, %(state)s, 0,
                %(max_attempts)s, '[]'::jsonb, %(unique_key)s, %(sequence_key)s,
                %(created_at)s, %(scheduled_at)s
            )
            ON CONFLICT (unique_key) WHERE {} DO NOTHING
            RETURNING *
            """).format(TABLE_JOBS, _UNIQUE_PREDICATE),
            {
                "kind": job.kind,
                "queue": job.queue,
                "args": Json(job.args),
                "metadata": Json(job.metadata),
                "state": job.state.value,
                "max_attempts": job.max_attempts,
                "unique_key": job.unique_key,
                "sequence_key": job.sequence_key,
                "created_at": job.created_at,
                "scheduled_at": job.scheduled_at,
            },
        )
        row = await result.fetchone()
        if row is not None:
            return JobInsertResult(job=Job.model_validate(row))

        by_state = spec.opts.unique_opts.by_state if spec.opts.unique_opts else IN_FLIGHT_STATES
        result = await conn.execute(
            sql.SQL("""
            SELECT * FROM {}
            WHERE unique_key = %s AND state::text = ANY(%s)
            ORDER BY id DESC
            LIMIT 1
            """).format(TABLE_JOBS),
            (job.unique_key, _state_values(by_state)),
        )
        existing = await result.fetchone()
        if existing is None:
            # Collided with a row whose state left by_state; insert is still blocked
            raise DatabaseError(
                "pg_job_store.insert_many_tx",
                f"unique conflict for {job.kind} but no matching job found",
                code=CODE_TRANSACTIONAL_QUEUE,
            )
        logger.debug(f"Unique conflict for {job.kind}: existing job {existing['id']}")
        return JobInsertResult(job=Job.model_validate(existing), duplicate=True)

    async def list(self, params: JobListParams) -> List[Job]:
        clauses = [sql.SQL("state::text = ANY(%(states)s)")]
        values: Dict[str, Any] = {"states": _state_values(params.state_set)}

        if params.queue_names:
            clauses.append(sql.SQL("queue = ANY(%(queues)s)"))
            values["queues"] = list(params.queue_names)
        if params.kind_names:
            clauses.append(sql.SQL("kind = ANY(%(kinds)s)"))
            values["kinds"] = list(params.kind_names)
        if params.ids:
            clauses.append(sql.SQL("id = ANY(%(ids)s)"))
            values["ids"] = list(params.ids)
        if params.metadata_filter:
            clauses.append(sql.SQL("metadata @> %(metadata)s"))
            values["metadata"] = Json(params.metadata_filter)

        query = sql.SQL("SELECT * FROM {} WHERE {} ORDER BY id DESC").format(
            TABLE_JOBS, sql.SQL(" AND ").join(clauses)
        )
        if params.limit is not None:
            query = sql.SQL("{} LIMIT %(limit)s").format(query)
            values["limit"] = params.limit

        try:
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                result = await conn.execute(query, values)
                rows = await result.fetchall()
        except psycopg.Error as e:
            raise _db_error("pg_job_store.list", e) from e

        return [Job.model_validate(row) for row in rows]

    async def get(self, job_id: int) -> Job:
        try:
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                result = await conn.execute(
                    sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_JOBS),
                    (job_id,),
                )
                row = await result.fetchone()
        except psycopg.Error as e:
            raise _db_error("pg_job_store.get", e) from e

        if row is None:
            raise not_found("pg_job_store.get", job_id)
        return Job.model_validate(row)

    async def complete_tx(self, tx: AsyncConnection, job_id: int) -> JobResult:
        try:
            job = await self._lock(tx, job_id)
            if job is None:
                raise not_found("pg_job_store.complete_tx", job_id)
            changed = complete_job(job, utcnow())
            if changed:
                await self._save(tx, job)
        except psycopg.Error as e:
            raise _db_error("pg_job_store.complete_tx", e) from e
        return JobResult(job=job, changed=changed)

    # =========================================================================
    # ENGINE SIDE
    # =========================================================================

    async def fetch_available(self, queue: str, limit: int, worker_id: str) -> List[Job]:
        try:
            async with self.transaction() as conn:
                result = await conn.execute(
                    sql.SQL("""
                    WITH candidates AS (
                        SELECT j.id FROM {jobs} j
                        WHERE j.queue = %(queue)s
                          AND j.state::text = ANY(%(states)s)
                          AND j.scheduled_at <= NOW()
                          AND NOT EXISTS (
                              SELECT 1 FROM {jobs} prior
                              WHERE j.sequence_key IS NOT NULL
                                AND prior.sequence_key = j.sequence_key
                                AND prior.id < j.id
                                AND prior.kind <> j.kind
                                AND prior.state <> 'completed'
                          )
                        ORDER BY j.id
                        LIMIT %(limit)s
                        FOR UPDATE SKIP LOCKED
                    )
                    UPDATE {jobs}
                    SET state = 'running',
                        attempt = attempt + 1,
                        attempted_at = NOW(),
                        attempted_by = %(worker_id)s
                    WHERE id IN (SELECT id FROM candidates)
                    RETURNING *
                    """).format(jobs=TABLE_JOBS),
                    {
                        "queue": queue,
                        "states": _state_values(CLAIMABLE_STATES),
                        "limit": limit,
                        "worker_id": worker_id,
                    },
                )
                rows = await result.fetchall()
        except psycopg.Error as e:
            raise _db_error("pg_job_store.fetch_available", e) from e

        jobs = sorted((Job.model_validate(row) for row in rows), key=lambda job: job.id)
        if jobs:
            logger.debug(f"Claimed {len(jobs)} jobs from {queue}: {[job.id for job in jobs]}")
        return jobs

    async def record_failure(self, job_id: int, error: str, retry_at: datetime) -> Job:
        async with self.transaction() as conn:
            job = await self._lock(conn, job_id)
            if job is None:
                raise not_found("pg_job_store.record_failure", job_id)
            if fail_job(job, error, retry_at, utcnow()):
                await self._save(conn, job)
            return job

    async def cancel(self, job_id: int) -> Job:
        async with self.transaction() as conn:
            job = await self._lock(conn, job_id)
            if job is None:
                raise not_found("pg_job_store.cancel", job_id)
            if cancel_job(job, utcnow()):
                await self._save(conn, job)
            else:
                logger.info(f"Job {job_id} not cancelled (state={job.state.value})")
            return job

    async def rescue_stuck(self, older_than: timedelta) -> int:
        now = utcnow()
        async with self.transaction() as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE state = 'running' AND attempted_at < %s
                FOR UPDATE SKIP LOCKED
                """).format(TABLE_JOBS),
                (now - older_than,),
            )
            rows = await result.fetchall()
            for row in rows:
                job = Job.model_validate(row)
                rescue_job(job, now)
                await self._save(conn, job)

        if rows:
            logger.warning(f"Rescued {len(rows)} stuck jobs")
        return len(rows)

    # =========================================================================
    # ROW HELPERS
    # =========================================================================

    async def _lock(self, conn: AsyncConnection, job_id: int):
        result = await conn.execute(
            sql.SQL("SELECT * FROM {} WHERE id = %s FOR UPDATE").format(TABLE_JOBS),
            (job_id,),
        )
        row = await result.fetchone()
        return Job.model_validate(row) if row is not None else None

    async def _save(self, conn: AsyncConnection, job: Job) -> None:
        await conn.execute(
            sql.SQL("""
            UPDATE {} SET
                state = %(state)s,
                attempt = %(attempt)s,
                errors = %(errors)s,
                scheduled_at = %(scheduled_at)s,
                attempted_at = %(attempted_at)s,
                attempted_by = %(attempted_by)s,
                finalized_at = %(finalized_at)s
            WHERE id = %(id)s
            """).format(TABLE_JOBS),
            {
                "id": job.id,
                "state": job.state.value,
                "attempt": job.attempt,
                "errors": Json([err.model_dump(mode="json") for err in job.errors]),
                "scheduled_at": job.scheduled_at,
                "attempted_at": job.attempted_at,
                "attempted_by": job.attempted_by,
                "finalized_at": job.finalized_at,
            },
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["PgJobStore"]
