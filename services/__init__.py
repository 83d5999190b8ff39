# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Business logic layer
# PURPOSE: Workflow submission, status and history services
# CREATED: 19 OCT 2026
# ============================================================================
"""
Services Module

Workflow services sit between the API / callers and the job store.

Usage:
    from services import MetabaseQueue, WorkstationQueue

    metabase = MetabaseQueue(store)
    handle = await metabase.create_open_metabase_workflow("ds-1")
"""

from .capabilities import (
    ConnectivityCapability,
    LoggingMetabaseCapability,
    LoggingWorkstationCapability,
    MetabaseCapability,
    WorkstationCapability,
)
from .job_diff import diff_history, job_difference
from .metabase_queue import MetabaseQueue, RestrictedMetabaseWorkflowOpts
from .workstation_queue import WorkstationJobOpts, WorkstationQueue

__all__ = [
    "MetabaseQueue",
    "RestrictedMetabaseWorkflowOpts",
    "WorkstationQueue",
    "WorkstationJobOpts",
    "MetabaseCapability",
    "WorkstationCapability",
    "ConnectivityCapability",
    "LoggingMetabaseCapability",
    "LoggingWorkstationCapability",
    "job_difference",
    "diff_history",
]
