# ============================================================================
# JOB HISTORY DIFF
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Service - Audit trail for recurring steps
# PURPOSE: Field-level changes between successive runs of one step kind
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job History Diff

Compares a fixed set of audited fields between two runs of the same
step for the same subject. Pure functions: no I/O, inputs untouched.
"""

from typing import Dict, List, Sequence

from core.models import Diff, WorkstationJobRecord

# Audited field names
FIELD_CONTAINER_IMAGE = "container_image"
FIELD_MACHINE_TYPE = "machine_type"

AUDITED_FIELDS = (FIELD_MACHINE_TYPE, FIELD_CONTAINER_IMAGE)


def job_difference(older: WorkstationJobRecord, newer: WorkstationJobRecord) -> Dict[str, Diff]:
    """
    Diff the audited fields of two runs.

    Returns:
        {field: Diff(added=[new], removed=[old])} for every changed field;
        empty when nothing changed
    """
    diff: Dict[str, Diff] = {}
    for name in AUDITED_FIELDS:
        old_value = getattr(older, name)
        new_value = getattr(newer, name)
        if old_value != new_value:
            diff[name] = Diff(added=[new_value], removed=[old_value])
    return diff


def diff_history(records: Sequence[WorkstationJobRecord]) -> List[WorkstationJobRecord]:
    """
    Attach to each run its change from the run before it.

    Args:
        records: Runs ordered newest first

    Returns:
        Copies of the records; the oldest run (and a lone run) carries
        an empty diff
    """
    result = [record.model_copy(update={"diff": {}}) for record in records]
    if len(result) < 2:
        return result

    for i in range(1, len(result)):
        result[i - 1].diff = job_difference(result[i], result[i - 1])
    return result


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "FIELD_CONTAINER_IMAGE",
    "FIELD_MACHINE_TYPE",
    "AUDITED_FIELDS",
    "job_difference",
    "diff_history",
]
