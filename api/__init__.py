# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for workflow submission and status
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the workflow services.
"""

from .routes import router, set_services
from .schemas import (
    ConnectivityCreate,
    JobResponse,
    RestrictedMetabaseCreate,
    WorkstationJobCreate,
)

__all__ = [
    "router",
    "set_services",
    "ConnectivityCreate",
    "JobResponse",
    "RestrictedMetabaseCreate",
    "WorkstationJobCreate",
]
