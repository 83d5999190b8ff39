# ============================================================================
# WORKFLOW PLUMBING
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Service - Shared submit/read logic for workflow services
# PURPOSE: Atomic batch submission and per-step status reconstruction
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Plumbing

Building blocks used by MetabaseQueue and WorkstationQueue:

Submission:
    submit_batch() inserts every step of one workflow in a single
    transaction. For fixed pipelines, if any step collides with an
    in-flight job the whole transaction is rolled back and the handle
    comes back with duplicate=True, so a resubmission never leaves half
    a pipeline. Fan-out workflows (connectivity) pass skip_duplicates:
    a colliding step is served by the job already in flight and the
    rest of the request is still queued.

Status:
    read_leading_job() fetches the newest job of one kind for a
    correlation key and insists on exactly one. read_steps() does that
    for every step of a pipeline, collecting steps not reached yet
    instead of failing on the first one.

History:
    read_history() lists the newest N jobs of one kind.
"""

from typing import Dict, List, Sequence, Tuple, Type

from core.errors import (
    CODE_INVARIANT,
    CODE_TRANSACTIONAL_QUEUE,
    InternalError,
    NotExistError,
    WorkflowError,
    wrap,
)
from core.contracts import JobStatus
from core.logging import get_logger
from core.models import (
    Job,
    JobArgs,
    JobHeader,
    JobInsertResult,
    JobListParams,
    JobSpec,
    StepRecord,
    WorkflowHandle,
)
from repositories.job_store import JobStore

logger = get_logger(__name__)

# (status attribute name, args model) per pipeline step
StepDef = Tuple[str, Type[JobArgs]]


# ============================================================================
# RECORDS
# ============================================================================

def job_header(job: Job, duplicate: bool = False) -> JobHeader:
    """Surface a stored job as a header."""
    return JobHeader(
        id=job.id,
        kind=job.kind,
        start_time=job.created_at,
        end_time=job.finalized_at,
        state=JobStatus.from_job_state(job.state),
        duplicate=duplicate,
        errors=job.error_messages(),
    )


def step_record(job: Job, args_cls: Type[JobArgs]) -> StepRecord:
    """
    Header plus decoded payload.

    Raises:
        InternalError: stored payload does not decode
    """
    args = job.decode_args(args_cls)
    return StepRecord(**job_header(job).model_dump(), args=args.to_payload())


# ============================================================================
# SUBMISSION
# ============================================================================

class _DuplicateBatch(Exception):
    """Raised inside the submit transaction to roll it back."""

    def __init__(self, results: List[JobInsertResult]):
        self.results = results
        super().__init__("duplicate workflow")


async def submit_batch(
    store: JobStore,
    specs: Sequence[JobSpec],
    op: str,
    skip_duplicates: bool = False,
) -> WorkflowHandle:
    """
    Insert all steps of one workflow in a single transaction.

    By default the batch is all-or-nothing: one colliding step rolls the
    whole transaction back. With skip_duplicates a colliding step is left
    to the job already in flight and the remaining steps are committed.

    Args:
        store: Job store
        specs: Steps in pipeline order
        op: Calling operation, for error tagging
        skip_duplicates: Commit the steps that do not collide

    Returns:
        Handle with the inserted jobs, or with the colliding jobs and
        duplicate=True when a pipeline is already in flight. With
        skip_duplicates the handle lists every step, colliding ones
        flagged, and duplicate=True only when nothing new was queued.

    Raises:
        DatabaseError: insert or commit failed; nothing was queued
    """
    try:
        async with store.transaction() as tx:
            results = await store.insert_many_tx(tx, specs)
            if not skip_duplicates and any(result.duplicate for result in results):
                raise _DuplicateBatch(results)
    except _DuplicateBatch as dup:
        duplicates = [r for r in dup.results if r.duplicate]
        logger.info(
            f"{op}: duplicate submission, {len(duplicates)}/{len(specs)} steps already in flight "
            f"(jobs {[r.job.id for r in duplicates]})"
        )
        return WorkflowHandle(
            jobs=[job_header(r.job, duplicate=True) for r in duplicates],
            duplicate=True,
        )
    except WorkflowError as e:
        raise wrap(op, e) from e

    inserted = [r.job.id for r in results if not r.duplicate]
    skipped = [r.job.id for r in results if r.duplicate]
    if skipped:
        logger.info(f"{op}: queued {len(inserted)} jobs {inserted}, {len(skipped)} already in flight {skipped}")
    else:
        logger.info(f"{op}: queued {len(results)} jobs {inserted}")
    return WorkflowHandle(
        jobs=[job_header(r.job, duplicate=r.duplicate) for r in results],
        duplicate=not inserted,
    )


# ============================================================================
# STATUS
# ============================================================================

async def read_leading_job(
    store: JobStore,
    base: JobListParams,
    args_cls: Type[JobArgs],
    step: str,
    op: str,
) -> Job:
    """
    Newest job of one kind matching a base filter.

    Raises:
        NotExistError: no job of this kind yet
        InternalError: the store returned more than one leading job
        DatabaseError: listing failed
    """
    try:
        jobs = await store.list(base.kinds(args_cls.kind).first(1))
    except WorkflowError as e:
        raise wrap(op, e) from e

    if not jobs:
        raise NotExistError(op, f"no {step} job found", code=CODE_TRANSACTIONAL_QUEUE)
    if len(jobs) > 1:
        raise InternalError(
            op,
            f"expected 1 {step} job, got {len(jobs)} ({[job.id for job in jobs]})",
            code=CODE_INVARIANT,
        )
    return jobs[0]


async def read_steps(
    store: JobStore,
    base: JobListParams,
    steps: Sequence[StepDef],
    op: str,
) -> Tuple[Dict[str, StepRecord], List[str]]:
    """
    Read one record per pipeline step, in order.

    Returns:
        (records by step name, names of steps with no job yet)

    Raises:
        NotExistError: no step has a job at all
        InternalError / DatabaseError: from any single step
    """
    records: Dict[str, StepRecord] = {}
    missing: List[str] = []

    for name, args_cls in steps:
        try:
            job = await read_leading_job(store, base, args_cls, name, op)
        except NotExistError:
            missing.append(name)
            continue
        try:
            records[name] = step_record(job, args_cls)
        except WorkflowError as e:
            raise wrap(op, e) from e

    if len(missing) == len(steps):
        raise NotExistError(op, f"no workflow jobs found for {base.metadata_filter}")
    return records, missing


# ============================================================================
# HISTORY
# ============================================================================

async def read_history(
    store: JobStore,
    base: JobListParams,
    args_cls: Type[JobArgs],
    limit: int,
    op: str,
) -> List[Job]:
    """Newest `limit` jobs of one kind; empty when none exist."""
    try:
        return await store.list(base.kinds(args_cls.kind).first(limit))
    except WorkflowError as e:
        raise wrap(op, e) from e


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "StepDef",
    "job_header",
    "step_record",
    "submit_batch",
    "read_leading_job",
    "read_steps",
    "read_history",
]
