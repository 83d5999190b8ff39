# ============================================================================
# WORKFLOW STATUS MODELS
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core model - Read-side views of jobs and workflows
# PURPOSE: Job headers, step records, composite workflow status, diffs
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Status Models

Read-only views assembled on each query and never persisted:
- JobHeader: the surfaced lifecycle of one job
- StepRecord: a header plus the decoded step payload
- WorkflowStatus subclasses: one record per step kind of a pipeline
- WorkflowHandle: what a submission returns
- Diff: added/removed values for one audited field
"""

from datetime import datetime
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field

from core.contracts import JobStatus


class Diff(BaseModel):
    """Change of one audited field between two runs."""
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)


class JobHeader(BaseModel):
    """Surfaced lifecycle of one job."""
    id: int
    kind: str
    start_time: datetime
    end_time: Optional[datetime] = None
    state: JobStatus
    duplicate: bool = False
    errors: List[str] = Field(default_factory=list)


class StepRecord(JobHeader):
    """A job header plus its decoded payload."""
    args: Dict[str, Any] = Field(default_factory=dict)


class WorkstationJobRecord(JobHeader):
    """One workstation configuration run, with its change from the previous run."""
    ident: str
    name: str
    email: str
    machine_type: str
    container_image: str
    diff: Dict[str, Diff] = Field(default_factory=dict)


class WorkstationStartRecord(JobHeader):
    ident: str


class WorkflowHandle(BaseModel):
    """Result of submitting a workflow."""
    jobs: List[JobHeader] = Field(default_factory=list)
    duplicate: bool = False


# ============================================================================
# COMPOSITE STATUS
# ============================================================================

class WorkflowStatus(BaseModel):
    """
    Base for pipeline status views.

    Subclasses declare STEPS, the attribute names of their step records
    in pipeline order. Steps not reached yet are None and listed in
    `missing`.
    """
    STEPS: ClassVar[Tuple[str, ...]] = ()

    missing: List[str] = Field(default_factory=list)

    def step_records(self) -> Iterator[Tuple[str, StepRecord]]:
        """Present step records in pipeline order."""
        for name in self.STEPS:
            value = getattr(self, name)
            if isinstance(value, list):
                for record in value:
                    yield name, record
            elif value is not None:
                yield name, value

    def is_running(self) -> bool:
        return any(
            record.state in (JobStatus.RUNNING, JobStatus.PENDING)
            for _, record in self.step_records()
        )

    def is_completed(self) -> bool:
        records = list(self.step_records())
        return (
            not self.missing
            and bool(records)
            and all(record.state == JobStatus.COMPLETED for _, record in records)
        )

    def error(self) -> Optional[str]:
        """Errors of the first failed step, if any."""
        for name, record in self.step_records():
            if record.state == JobStatus.FAILED:
                detail = "; ".join(record.errors) or "job failed"
                return f"{name}: {detail}"
        return None


class RestrictedMetabaseWorkflowStatus(WorkflowStatus):
    """Status of the restricted metabase database pipeline."""
    STEPS: ClassVar[Tuple[str, ...]] = (
        "preflight",
        "permission_group",
        "collection",
        "service_account",
        "service_account_key",
        "project_iam",
        "database",
        "verify",
        "finalize",
    )

    dataset_id: str
    preflight: Optional[StepRecord] = None
    permission_group: Optional[StepRecord] = None
    collection: Optional[StepRecord] = None
    service_account: Optional[StepRecord] = None
    service_account_key: Optional[StepRecord] = None
    project_iam: Optional[StepRecord] = None
    database: Optional[StepRecord] = None
    verify: Optional[StepRecord] = None
    finalize: Optional[StepRecord] = None


class OpenMetabaseWorkflowStatus(WorkflowStatus):
    """Status of the open metabase database pipeline."""
    STEPS: ClassVar[Tuple[str, ...]] = ("preflight", "database", "verify", "finalize")

    dataset_id: str
    preflight: Optional[StepRecord] = None
    database: Optional[StepRecord] = None
    verify: Optional[StepRecord] = None
    finalize: Optional[StepRecord] = None


class ConnectivityWorkflowStatus(WorkflowStatus):
    """Status of the latest connectivity change for a workstation."""
    STEPS: ClassVar[Tuple[str, ...]] = ("connect", "disconnect", "notify")

    ident: str
    request_id: Optional[str] = None
    connect: List[StepRecord] = Field(default_factory=list)
    disconnect: Optional[StepRecord] = None
    notify: Optional[StepRecord] = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "Diff",
    "JobHeader",
    "StepRecord",
    "WorkstationJobRecord",
    "WorkstationStartRecord",
    "WorkflowHandle",
    "WorkflowStatus",
    "RestrictedMetabaseWorkflowStatus",
    "OpenMetabaseWorkflowStatus",
    "ConnectivityWorkflowStatus",
]
