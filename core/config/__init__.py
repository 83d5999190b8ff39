# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the workflow layer.
"""

from core.config.defaults import (
    QueueDefaults,
    JobDefaults,
    UniqueWindows,
    HistoryDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "QueueDefaults",
    "JobDefaults",
    "UniqueWindows",
    "HistoryDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
