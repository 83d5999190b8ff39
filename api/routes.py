# ============================================================================
# API ROUTES
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints for workflow submission and status
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Routes

FastAPI routes for the workflow services.

Status codes:
    202  workflow accepted (jobs queued)
    200  duplicate submission (an identical workflow is in flight), or a read
    404  NotExistError
    500  DatabaseError / InternalError
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from core.errors import ErrorKind, WorkflowError
from core.models import (
    ConnectivityWorkflowStatus,
    JobListParams,
    OpenMetabaseWorkflowStatus,
    RestrictedMetabaseWorkflowStatus,
    StepRecord,
    WorkflowHandle,
    WorkstationJobRecord,
    WorkstationStartRecord,
)
from repositories.job_store import JobStore
from services import (
    MetabaseQueue,
    RestrictedMetabaseWorkflowOpts,
    WorkstationJobOpts,
    WorkstationQueue,
)
from __version__ import __version__

from .schemas import (
    ConnectivityCreate,
    ErrorResponse,
    HealthResponse,
    JobResponse,
    RestrictedMetabaseCreate,
    WorkstationJobCreate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_store: Optional[JobStore] = None
_metabase_queue: Optional[MetabaseQueue] = None
_workstation_queue: Optional[WorkstationQueue] = None
_store_backend = "unknown"


def set_services(store: JobStore, metabase_queue: MetabaseQueue, workstation_queue: WorkstationQueue, store_backend: str = "unknown"):
    """Set service instances for dependency injection."""
    global _store, _metabase_queue, _workstation_queue, _store_backend
    _store = store
    _metabase_queue = metabase_queue
    _workstation_queue = workstation_queue
    _store_backend = store_backend


def get_store() -> JobStore:
    if _store is None:
        raise HTTPException(500, "Services not initialized")
    return _store


def get_metabase_queue() -> MetabaseQueue:
    if _metabase_queue is None:
        raise HTTPException(500, "Services not initialized")
    return _metabase_queue


def get_workstation_queue() -> WorkstationQueue:
    if _workstation_queue is None:
        raise HTTPException(500, "Services not initialized")
    return _workstation_queue


# ============================================================================
# ERROR TRANSLATION
# ============================================================================

_STATUS_BY_KIND = {
    ErrorKind.NOT_EXIST: 404,
    ErrorKind.DATABASE: 500,
    ErrorKind.INTERNAL: 500,
}

_ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Not found"},
    500: {"model": ErrorResponse, "description": "Store failure or invariant violation"},
}


def http_error(err: WorkflowError) -> HTTPException:
    """Map a workflow error onto an HTTP error with the error dict as detail."""
    status = _STATUS_BY_KIND.get(err.kind, 500)
    if status >= 500:
        logger.error(f"{err.kind.value} error: {err}")
    return HTTPException(status, err.to_dict())


def _accepted(handle: WorkflowHandle, response: Response) -> WorkflowHandle:
    response.status_code = 200 if handle.duplicate else 202
    return handle


# ============================================================================
# HEALTH
# ============================================================================

@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health():
    """Store reachability check."""
    store = get_store()
    try:
        await store.list(JobListParams().first(1))
    except WorkflowError as e:
        body = HealthResponse(
            status="unhealthy",
            version=__version__,
            store=_store_backend,
            details={"error": str(e)},
        )
        return JSONResponse(body.model_dump(), status_code=503)

    return HealthResponse(status="healthy", version=__version__, store=_store_backend)


# ============================================================================
# METABASE
# ============================================================================

@router.post(
    "/metabase/{dataset_id}/restricted",
    response_model=WorkflowHandle,
    status_code=202,
    tags=["Metabase"],
    responses={200: {"description": "Duplicate submission"}, **_ERROR_RESPONSES},
)
async def create_restricted_metabase_workflow(dataset_id: str, request: RestrictedMetabaseCreate, response: Response):
    """
    Start the restricted database pipeline for a dataset.

    Returns immediately. Poll GET /metabase/{dataset_id}/restricted.
    """
    opts = RestrictedMetabaseWorkflowOpts(dataset_id=dataset_id, **request.model_dump())
    try:
        handle = await get_metabase_queue().create_restricted_metabase_workflow(opts)
    except WorkflowError as e:
        raise http_error(e) from e
    return _accepted(handle, response)


@router.get(
    "/metabase/{dataset_id}/restricted",
    response_model=RestrictedMetabaseWorkflowStatus,
    tags=["Metabase"],
    responses=_ERROR_RESPONSES,
)
async def get_restricted_metabase_workflow(dataset_id: str):
    try:
        return await get_metabase_queue().get_restricted_metabase_workflow(dataset_id)
    except WorkflowError as e:
        raise http_error(e) from e


@router.post(
    "/metabase/{dataset_id}/open",
    response_model=WorkflowHandle,
    status_code=202,
    tags=["Metabase"],
    responses={200: {"description": "Duplicate submission"}, **_ERROR_RESPONSES},
)
async def create_open_metabase_workflow(dataset_id: str, response: Response):
    """Start the open database pipeline for a dataset."""
    try:
        handle = await get_metabase_queue().create_open_metabase_workflow(dataset_id)
    except WorkflowError as e:
        raise http_error(e) from e
    return _accepted(handle, response)


@router.get(
    "/metabase/{dataset_id}/open",
    response_model=OpenMetabaseWorkflowStatus,
    tags=["Metabase"],
    responses=_ERROR_RESPONSES,
)
async def get_open_metabase_workflow(dataset_id: str):
    try:
        return await get_metabase_queue().get_open_metabase_workflow(dataset_id)
    except WorkflowError as e:
        raise http_error(e) from e


@router.delete(
    "/metabase/{dataset_id}",
    response_model=WorkflowHandle,
    status_code=202,
    tags=["Metabase"],
    responses={200: {"description": "Duplicate submission"}, **_ERROR_RESPONSES},
)
async def delete_metabase_database(dataset_id: str, response: Response):
    """Queue teardown of the dataset's database."""
    try:
        handle = await get_metabase_queue().create_metabase_delete_job(dataset_id)
    except WorkflowError as e:
        raise http_error(e) from e
    return _accepted(handle, response)


@router.get(
    "/metabase/{dataset_id}/delete",
    response_model=StepRecord,
    tags=["Metabase"],
    responses=_ERROR_RESPONSES,
)
async def get_metabase_delete_job(dataset_id: str):
    try:
        return await get_metabase_queue().get_metabase_delete_job(dataset_id)
    except WorkflowError as e:
        raise http_error(e) from e


@router.post(
    "/metabase/resync",
    response_model=WorkflowHandle,
    status_code=202,
    tags=["Metabase"],
    responses={200: {"description": "Duplicate submission"}, **_ERROR_RESPONSES},
)
async def resync_all_users(response: Response):
    """Queue a permission group membership resync for all users."""
    try:
        handle = await get_metabase_queue().create_resync_all_users_job()
    except WorkflowError as e:
        raise http_error(e) from e
    return _accepted(handle, response)


# ============================================================================
# WORKSTATIONS
# ============================================================================

@router.post(
    "/workstations/{ident}/jobs",
    response_model=WorkflowHandle,
    status_code=202,
    tags=["Workstations"],
    responses={200: {"description": "Duplicate submission"}, **_ERROR_RESPONSES},
)
async def create_workstation_job(ident: str, request: WorkstationJobCreate, response: Response):
    opts = WorkstationJobOpts(ident=ident, **request.model_dump())
    try:
        handle = await get_workstation_queue().create_workstation_job(opts)
    except WorkflowError as e:
        raise http_error(e) from e
    return _accepted(handle, response)


@router.get(
    "/workstations/{ident}/jobs",
    response_model=List[WorkstationJobRecord],
    tags=["Workstations"],
    responses=_ERROR_RESPONSES,
)
async def get_workstation_jobs(ident: str, limit: Optional[int] = Query(None, ge=1, le=100)):
    """Newest workstation jobs, each with changes from the run before it."""
    try:
        return await get_workstation_queue().get_workstation_jobs(ident, limit)
    except WorkflowError as e:
        raise http_error(e) from e


@router.post(
    "/workstations/{ident}/start",
    response_model=WorkflowHandle,
    status_code=202,
    tags=["Workstations"],
    responses={200: {"description": "Duplicate submission"}, **_ERROR_RESPONSES},
)
async def create_workstation_start_job(ident: str, response: Response):
    try:
        handle = await get_workstation_queue().create_workstation_start_job(ident)
    except WorkflowError as e:
        raise http_error(e) from e
    return _accepted(handle, response)


@router.get(
    "/workstations/{ident}/start",
    response_model=List[WorkstationStartRecord],
    tags=["Workstations"],
    responses=_ERROR_RESPONSES,
)
async def get_workstation_start_jobs(ident: str, limit: Optional[int] = Query(None, ge=1, le=100)):
    try:
        return await get_workstation_queue().get_workstation_start_jobs(ident, limit)
    except WorkflowError as e:
        raise http_error(e) from e


@router.post(
    "/workstations/{ident}/connectivity",
    response_model=WorkflowHandle,
    status_code=202,
    tags=["Workstations"],
    responses={200: {"description": "Duplicate submission"}, **_ERROR_RESPONSES},
)
async def create_connectivity_workflow(ident: str, request: ConnectivityCreate, response: Response):
    """
    Set the hosts a workstation may reach.

    Connects every requested host, then disconnects all others, then
    notifies the requester.
    """
    try:
        handle = await get_workstation_queue().create_connectivity_workflow(
            ident, request.request_id, request.hosts
        )
    except WorkflowError as e:
        raise http_error(e) from e
    return _accepted(handle, response)


@router.get(
    "/workstations/{ident}/connectivity",
    response_model=ConnectivityWorkflowStatus,
    tags=["Workstations"],
    responses=_ERROR_RESPONSES,
)
async def get_connectivity_workflow(ident: str):
    try:
        return await get_workstation_queue().get_connectivity_workflow(ident)
    except WorkflowError as e:
        raise http_error(e) from e


# ============================================================================
# JOBS
# ============================================================================

@router.get("/jobs/{job_id}", response_model=JobResponse, tags=["Jobs"], responses=_ERROR_RESPONSES)
async def get_job(job_id: int):
    try:
        job = await get_store().get(job_id)
    except WorkflowError as e:
        raise http_error(e) from e
    return JobResponse.from_job(job)


@router.post("/jobs/{job_id}/cancel", response_model=JobResponse, tags=["Jobs"], responses=_ERROR_RESPONSES)
async def cancel_job(job_id: int):
    """
    Cancel a job that has not started.

    Running and finalized jobs are returned unchanged.
    """
    try:
        job = await get_store().cancel(job_id)
    except WorkflowError as e:
        raise http_error(e) from e
    return JobResponse.from_job(job)


__all__ = [
    "router",
    "set_services",
    "http_error",
]
