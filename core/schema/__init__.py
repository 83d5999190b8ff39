# ============================================================================
# SCHEMA MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Schema generation from Pydantic models
# PURPOSE: Generate PostgreSQL DDL from Pydantic models (single source of truth)
# CREATED: 19 OCT 2026
# ============================================================================

from core.schema.sql_generator import PydanticToSQL, IndexBuilder

__all__ = [
    "PydanticToSQL",
    "IndexBuilder",
]
