# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the API. Workflow handles, workflow
status and history records are returned as the service models
themselves (core.models.status).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.contracts import JobState, JobStatus
from core.models import Job


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class RestrictedMetabaseCreate(BaseModel):
    """Request to provision a restricted database for a dataset."""
    permission_group_name: str = Field(..., min_length=1)
    collection_name: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1, max_length=30)
    project_id: str = Field(..., min_length=1)
    display_name: str
    description: str = ""
    role: str = Field(..., description="IAM role granted to the member")
    member: str = Field(..., description="IAM member, e.g. serviceAccount:...")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "permission_group_name": "ds-42-readers",
                    "collection_name": "Dataset 42",
                    "account_id": "mb-ds-42",
                    "project_id": "analytics-prod",
                    "display_name": "Metabase ds-42",
                    "role": "roles/bigquery.dataViewer",
                    "member": "serviceAccount:mb-ds-42@analytics-prod.iam.gserviceaccount.com",
                }
            ]
        }
    }


class WorkstationJobCreate(BaseModel):
    """Request to create or reconfigure a workstation."""
    name: str
    email: str
    machine_type: str = Field(..., min_length=1)
    container_image: str = Field(..., min_length=1)


class ConnectivityCreate(BaseModel):
    """Request to set the hosts a workstation may reach."""
    request_id: str = Field(..., min_length=1, max_length=128)
    hosts: List[str] = Field(default_factory=list)


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class JobResponse(BaseModel):
    """Full job row plus its surfaced status."""
    id: int
    kind: str
    queue: str
    state: JobState
    status: JobStatus
    args: Dict[str, Any]
    metadata: Dict[str, str]
    attempt: int
    max_attempts: int
    errors: List[str] = []
    attempted_by: Optional[str] = None
    created_at: datetime
    scheduled_at: datetime
    attempted_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(
            id=job.id,
            kind=job.kind,
            queue=job.queue,
            state=job.state,
            status=JobStatus.from_job_state(job.state),
            args=job.args,
            metadata=job.metadata,
            attempt=job.attempt,
            max_attempts=job.max_attempts,
            errors=job.error_messages(),
            attempted_by=job.attempted_by,
            created_at=job.created_at,
            scheduled_at=job.scheduled_at,
            attempted_at=job.attempted_at,
            finalized_at=job.finalized_at,
        )


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    store: str
    details: Dict[str, Any] = {}


class ErrorResponse(BaseModel):
    """Error response body (under "detail")."""
    kind: str
    op: str
    code: Optional[str] = None
    message: str


__all__ = [
    "RestrictedMetabaseCreate",
    "WorkstationJobCreate",
    "ConnectivityCreate",
    "JobResponse",
    "HealthResponse",
    "ErrorResponse",
]
